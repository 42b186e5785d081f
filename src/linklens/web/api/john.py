"""REST API for John the Ripper hash cracking."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from linklens.tools.john import crack

router = APIRouter(prefix="/john", tags=["john"])


class CrackRequest(BaseModel):
    hash: str
    wordlist: str | None = None
    format: str | None = Field(default=None, max_length=64)


@router.post("/crack")
async def crack_hash(body: CrackRequest, request: Request):
    config = request.app.state.config
    result = await crack(
        body.hash,
        wordlist=body.wordlist,
        fmt=body.format,
        john=config.john_path,
        timeout=config.crack_timeout,
    )
    return result.to_dict()

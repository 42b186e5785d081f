"""REST API for nmap port scans."""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from linklens.tools.nmap import run_scan

router = APIRouter(prefix="/nmap", tags=["nmap"])


class ScanRequest(BaseModel):
    target: str
    options: str = "-sV"


@router.post("/scan")
async def scan(body: ScanRequest, request: Request):
    config = request.app.state.config
    result = await run_scan(
        body.target,
        body.options,
        nmap=config.nmap_path,
        timeout=config.scan_timeout,
    )
    return result.to_dict()

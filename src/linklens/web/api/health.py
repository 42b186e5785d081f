"""Portal health and tool availability."""

from __future__ import annotations

import shutil

from fastapi import APIRouter, Request

from linklens import __version__

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(request: Request):
    config = request.app.state.config
    tools = {
        "tshark": config.tshark_path,
        "nmap": config.nmap_path,
        "john": config.john_path,
    }
    return {
        "status": "Server is running",
        "version": __version__,
        "tools": {name: shutil.which(path) is not None for name, path in tools.items()},
        "activeCaptures": request.app.state.manager.registry.active_count(),
    }

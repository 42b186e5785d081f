"""REST API for capture sessions (the polling path)."""

from __future__ import annotations

import tempfile
from pathlib import Path

from fastapi import APIRouter, Query, Request, UploadFile
from pydantic import BaseModel

from linklens.capture.snapshot import read_snapshot
from linklens.errors import InvalidRequest

router = APIRouter(tags=["captures"])

_MAX_UPLOAD_BYTES = 100 * 1024 * 1024
_UPLOAD_CHUNK = 1024 * 1024


class StartCapture(BaseModel):
    target: str
    duration: int | None = None
    interface: str | None = None


@router.get("/interfaces")
async def list_interfaces(request: Request):
    manager = request.app.state.manager
    return {
        "interfaces": await manager.interfaces(),
        "default": manager.config.default_interface,
    }


@router.get("/captures")
async def list_captures(request: Request):
    return [s.to_dict() for s in request.app.state.manager.list()]


@router.post("/captures", status_code=201)
async def start_capture(body: StartCapture, request: Request):
    session = await request.app.state.manager.start(
        body.target,
        duration=body.duration,
        interface=body.interface,
    )
    return {
        "sessionId": session.id,
        "state": session.state.value,
        "target": session.target,
        "interface": session.interface,
        "duration": session.duration,
        "message": f"Capturing traffic for {session.target}",
    }


@router.post("/captures/analyze")
async def analyze_upload(pcap: UploadFile, request: Request):
    """Summarise an uploaded capture file; the upload is not kept."""
    config = request.app.state.config
    with tempfile.TemporaryDirectory(prefix="linklens_upload_") as tmp_dir:
        path = Path(tmp_dir) / "upload.pcap"
        size = 0
        with path.open("wb") as fh:
            while chunk := await pcap.read(_UPLOAD_CHUNK):
                size += len(chunk)
                if size > _MAX_UPLOAD_BYTES:
                    raise InvalidRequest("Capture file exceeds the 100 MB upload limit")
                fh.write(chunk)
        if size == 0:
            raise InvalidRequest("Capture file is empty")
        snapshot = await read_snapshot(
            path,
            limit=0,
            tshark=config.tshark_path,
            timeout=config.snapshot_timeout,
        )
    body = snapshot.to_dict()
    body["status"] = "completed"
    return body


@router.get("/captures/{session_id}")
async def capture_status(session_id: str, request: Request):
    return request.app.state.manager.status(session_id).to_dict()


@router.post("/captures/{session_id}/stop")
async def stop_capture(session_id: str, request: Request):
    session = request.app.state.manager.stop(session_id)
    return {"acknowledged": True, "sessionId": session.id, "state": session.state.value}


@router.get("/captures/{session_id}/snapshot")
async def capture_snapshot(
    session_id: str,
    request: Request,
    limit: int = Query(100, ge=0, le=10000),
):
    snapshot = await request.app.state.manager.snapshot(session_id, limit=limit)
    session = request.app.state.manager.status(session_id)
    body = snapshot.to_dict()
    body["sessionId"] = session_id
    # Streamed count; may differ from totalRecordCount, which is re-decoded.
    body["livePacketCount"] = session.packet_count
    return body


@router.delete("/captures/{session_id}")
async def remove_capture(session_id: str, request: Request):
    request.app.state.manager.remove(session_id)
    return {"removed": True, "sessionId": session_id}

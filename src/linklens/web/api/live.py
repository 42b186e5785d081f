"""WebSocket endpoint for live capture control and streaming (the push path).

Client → server messages are JSON objects with an ``action``
(``start``, ``stop`` or ``get_interfaces``) and an optional ``requestId``
that is echoed back on the direct reply.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from linklens.errors import InvalidRequest, LinkLensError, SessionNotFound
from linklens.session.manager import CaptureManager, Subscription
from linklens.session.models import (
    CaptureEvent,
    Record,
    Started,
    StatusTick,
    Terminated,
)

logger = logging.getLogger(__name__)

router = APIRouter(tags=["live"])

_INVALID_MESSAGE = {
    "type": "error",
    "error": "invalid_message",
    "message": "Invalid message format",
}


class LiveConnection:
    """One connected consumer; owner of the sessions it starts."""

    def __init__(self, websocket: WebSocket, manager: CaptureManager) -> None:
        self._websocket = websocket
        self._manager = manager
        self._send_lock = asyncio.Lock()
        self._forwarders: dict[str, asyncio.Task] = {}

    async def send(self, message: dict[str, Any]) -> None:
        async with self._send_lock:
            await self._websocket.send_text(json.dumps(message))

    async def handle(self, raw: str) -> None:
        try:
            data = json.loads(raw)
        except ValueError:
            data = None
        if not isinstance(data, dict):
            await self.send(_INVALID_MESSAGE)
            return

        request_id = data.get("requestId")
        action = data.get("action")
        try:
            if action == "get_interfaces":
                await self.send(
                    {
                        "type": "interfaces",
                        "requestId": request_id,
                        "interfaces": await self._manager.interfaces(),
                    }
                )
            elif action == "start":
                await self._start(data, request_id)
            elif action == "stop":
                await self._stop(data, request_id)
            else:
                raise InvalidRequest(f"Unknown action: {action!r}")
        except LinkLensError as exc:
            await self.send({"type": "error", "requestId": request_id, **exc.to_dict()})
        except Exception:
            logger.exception("Live command %r failed", action)
            await self.send(
                {
                    "type": "error",
                    "requestId": request_id,
                    "error": "internal_error",
                    "message": "Internal server error",
                }
            )

    def close(self) -> list[str]:
        """Tear down after disconnect: stop this connection's captures."""
        for task in self._forwarders.values():
            task.cancel()
        self._forwarders.clear()
        return self._manager.release_owner(self)

    async def _start(self, data: dict[str, Any], request_id: Any) -> None:
        session = await self._manager.start(
            data.get("target", ""),
            duration=data.get("duration"),
            interface=data.get("interface"),
            owner=self,
        )
        # Subscribe before the first await so no early event is missed.
        subscription = self._manager.subscribe(session.id)
        self._forwarders[session.id] = asyncio.create_task(self._forward(subscription))
        await self.send(
            {
                "type": "status",
                "requestId": request_id,
                "sessionId": session.id,
                "status": "capture_started",
                "target": session.target,
                "interface": session.interface,
                "duration": session.duration,
                "message": f"Started capturing traffic for {session.target} on {session.interface}",
            }
        )

    async def _stop(self, data: dict[str, Any], request_id: Any) -> None:
        session_id = data.get("sessionId") or data.get("captureId")
        if not session_id:
            raise InvalidRequest("sessionId is required")
        session = self._manager.stop(str(session_id))
        await self.send(
            {
                "type": "status",
                "requestId": request_id,
                "sessionId": session.id,
                "status": "stop_requested",
                "acknowledged": True,
                "state": session.state.value,
            }
        )

    async def _forward(self, subscription: Subscription) -> None:
        try:
            async for event in subscription:
                await self.send(self._render(subscription.session_id, event))
        except (WebSocketDisconnect, RuntimeError) as exc:
            logger.debug("Stopped forwarding %s: %s", subscription.session_id, exc)
        finally:
            subscription.close()
            self._forwarders.pop(subscription.session_id, None)

    def _render(self, session_id: str, event: CaptureEvent) -> dict[str, Any]:
        if isinstance(event, Record):
            return {"type": "packet", "sessionId": session_id, "packet": event.record.to_dict()}
        if isinstance(event, StatusTick):
            return {
                "type": "status",
                "sessionId": session_id,
                "status": "running",
                "packets": event.packet_count,
                "elapsed": int(event.elapsed),
            }
        if isinstance(event, Started):
            return {"type": "status", "sessionId": session_id, "status": "running", "pid": event.pid}
        if isinstance(event, Terminated):
            message: dict[str, Any] = {
                "type": "status",
                "sessionId": session_id,
                "status": event.reason.final_state.value,
                "reason": event.reason.value,
            }
            try:
                session = self._manager.status(session_id)
            except SessionNotFound:
                pass
            else:
                message["status"] = session.state.value
                message["packets"] = session.packet_count
                message["elapsed"] = int(session.elapsed())
            if event.error:
                message["error"] = event.error
            return message
        raise TypeError(f"Unknown capture event {event!r}")


@router.websocket("/ws/captures")
async def capture_ws(websocket: WebSocket):
    """Accept start/stop commands and stream capture events back."""
    await websocket.accept()
    connection = LiveConnection(websocket, websocket.app.state.manager)
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
            text = message.get("text")
            if text is None:
                # Commands are JSON text frames only.
                await connection.send(_INVALID_MESSAGE)
                continue
            await connection.handle(text)
    except WebSocketDisconnect:
        pass
    finally:
        connection.close()

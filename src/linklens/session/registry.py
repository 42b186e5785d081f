"""In-memory registry of capture sessions."""

from __future__ import annotations

import copy
import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

from linklens.errors import SessionNotFound
from linklens.session.models import CaptureSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionRegistry:
    """Maps session id → CaptureSession.

    Thread-safe: every read and mutation holds one lock, and readers only
    ever receive copies, so a half-applied update is never observable.
    """

    def __init__(self) -> None:
        self._sessions: dict[str, CaptureSession] = {}
        self._lock = threading.Lock()

    def create(self, session: CaptureSession) -> CaptureSession:
        """Register a new session under an id not currently in use.

        Ids are uuid4 hex, so a removed session's id does not come back.
        """
        with self._lock:
            if session.id in self._sessions:
                raise ValueError(f"Session id {session.id} already registered")
            self._sessions[session.id] = session
            return copy.copy(session)

    def get(self, session_id: str) -> CaptureSession:
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            return copy.copy(session)

    def update(
        self,
        session_id: str,
        mutation: Callable[[CaptureSession], T],
    ) -> T:
        """Apply *mutation* to the stored session atomically; return its result."""
        with self._lock:
            session = self._sessions.get(session_id)
            if session is None:
                raise SessionNotFound(session_id)
            return mutation(session)

    def remove(self, session_id: str) -> CaptureSession | None:
        """Drop a session. Unknown ids are ignored."""
        with self._lock:
            return self._sessions.pop(session_id, None)

    def list(self) -> list[CaptureSession]:
        with self._lock:
            return [copy.copy(s) for s in self._sessions.values()]

    def active_count(self) -> int:
        with self._lock:
            return sum(1 for s in self._sessions.values() if not s.state.is_terminal)

    def expired(self, retention: float, now: float | None = None) -> list[str]:
        """Ids of sessions that have been terminal for longer than *retention*."""
        now = now if now is not None else time.time()
        with self._lock:
            return [
                s.id
                for s in self._sessions.values()
                if s.state.is_terminal
                and s.ended_at is not None
                and now - s.ended_at > retention
            ]

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

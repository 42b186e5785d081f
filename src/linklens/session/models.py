"""Capture session state and the typed events a capture process emits."""

from __future__ import annotations

import enum
import time
import uuid
import weakref
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Union

from linklens.capture.parser import PacketRecord


class SessionState(enum.Enum):
    """Lifecycle state of a capture session."""

    STARTING = "starting"
    RUNNING = "running"
    COMPLETED = "completed"
    STOPPED = "stopped"
    ERRORED = "errored"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL_STATES


_TERMINAL_STATES = frozenset(
    {SessionState.COMPLETED, SessionState.STOPPED, SessionState.ERRORED}
)


class TerminationReason(enum.Enum):
    """Why a capture process ended."""

    NORMAL = "normal"
    KILLED_BY_REQUEST = "killedByRequest"
    PROCESS_ERROR = "processError"
    SIGNALED = "signaled"

    @property
    def final_state(self) -> SessionState:
        if self is TerminationReason.NORMAL:
            return SessionState.COMPLETED
        if self is TerminationReason.KILLED_BY_REQUEST:
            return SessionState.STOPPED
        return SessionState.ERRORED


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Started:
    pid: int


@dataclass(frozen=True)
class Record:
    record: PacketRecord


@dataclass(frozen=True)
class StatusTick:
    elapsed: float
    packet_count: int


@dataclass(frozen=True)
class Terminated:
    reason: TerminationReason
    return_code: int | None = None
    error: str | None = None


CaptureEvent = Union[Started, Record, StatusTick, Terminated]


# ---------------------------------------------------------------------------
# Session
# ---------------------------------------------------------------------------


@dataclass
class CaptureSession:
    """One in-flight or finished capture.

    Mutable fields change only through SessionRegistry.update(); callers
    outside the registry see copies.
    """

    target: str
    interface: str
    duration: int
    capture_file: Path
    state: SessionState = SessionState.STARTING
    packet_count: int = 0
    started_at: float = field(default_factory=time.time)
    ended_at: float | None = None
    last_error: str | None = None
    termination_reason: TerminationReason | None = None
    # Weak so a vanished push connection never keeps a session alive.
    owner: weakref.ref | None = field(default=None, repr=False, compare=False)
    id: str = field(default_factory=lambda: uuid.uuid4().hex)

    def transition(self, state: SessionState) -> bool:
        """Move to *state* unless already terminal. Returns whether it moved."""
        if self.state.is_terminal or state == self.state:
            return False
        if state == SessionState.STARTING:
            return False
        self.state = state
        if state.is_terminal:
            self.ended_at = time.time()
        return True

    def add_packets(self, count: int) -> None:
        if count > 0:
            self.packet_count += count

    def owned_by(self, owner: object) -> bool:
        return self.owner is not None and self.owner() is owner

    def elapsed(self, now: float | None = None) -> float:
        end = self.ended_at if self.ended_at is not None else (now or time.time())
        return max(0.0, end - self.started_at)

    def to_dict(self) -> dict[str, Any]:
        try:
            file_size = self.capture_file.stat().st_size
        except OSError:
            file_size = 0
        body: dict[str, Any] = {
            "sessionId": self.id,
            "target": self.target,
            "interface": self.interface,
            "duration": self.duration,
            "state": self.state.value,
            "startedAt": self.started_at,
            "endedAt": self.ended_at,
            "elapsed": round(self.elapsed(), 3),
            "packetCount": self.packet_count,
            "fileSize": file_size,
        }
        if self.termination_reason is not None:
            body["reason"] = self.termination_reason.value
        if self.last_error:
            body["error"] = self.last_error
        return body

"""Capture manager — orchestrates registry, capture processes and consumers."""

from __future__ import annotations

import asyncio
import logging
import shutil
import uuid
import weakref
from collections.abc import Callable
from dataclasses import dataclass, field

from linklens.capture.command import (
    build_capture_command,
    list_interfaces,
    normalize_target,
    resolve_interface,
    validate_duration,
)
from linklens.capture.process import CaptureProcess
from linklens.capture.snapshot import DEFAULT_LIMIT, Snapshot, read_snapshot
from linklens.config import LinkLensConfig
from linklens.errors import (
    CapacityExceeded,
    DependencyMissing,
    SessionActive,
    SessionNotFound,
)
from linklens.session.models import (
    CaptureEvent,
    CaptureSession,
    Record,
    SessionState,
    Started,
    Terminated,
    TerminationReason,
)
from linklens.session.registry import SessionRegistry

logger = logging.getLogger(__name__)

_TSHARK_HINT = (
    "Install Wireshark/tshark (e.g. 'apt install tshark') "
    "and make sure it is on PATH."
)

# Marks the end of a subscription's event queue.
_CLOSED = object()

# Events buffered per subscriber before the oldest are dropped.
DEFAULT_MAX_PENDING = 10_000


class Subscription:
    """One consumer's view of a session's event stream.

    Iterate with ``async for``; iteration ends after the Terminated event.
    Events published before subscribing are not replayed. A consumer that
    falls more than *max_pending* events behind loses the oldest ones;
    Terminated is always delivered.
    """

    def __init__(
        self,
        session_id: str,
        on_close: Callable[[Subscription], None],
        max_pending: int = DEFAULT_MAX_PENDING,
    ) -> None:
        self.session_id = session_id
        self.dropped = 0
        self._queue: asyncio.Queue[object] = asyncio.Queue()
        self._on_close = on_close
        self._max_pending = max_pending
        self._closed = False

    def put(self, event: CaptureEvent) -> None:
        if self._closed:
            return
        if not isinstance(event, Terminated) and self._queue.qsize() >= self._max_pending:
            self._queue.get_nowait()
            self.dropped += 1
            if self.dropped == 1:
                logger.warning(
                    "Subscriber of %s is falling behind, dropping events",
                    self.session_id,
                )
        self._queue.put_nowait(event)

    def finish(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def close(self) -> None:
        """Stop receiving events."""
        self.finish()
        self._on_close(self)

    def __aiter__(self) -> Subscription:
        return self

    async def __anext__(self) -> CaptureEvent:
        item = await self._queue.get()
        if item is _CLOSED:
            raise StopAsyncIteration
        return item  # type: ignore[return-value]


@dataclass
class _ActiveCapture:
    process: CaptureProcess
    task: asyncio.Task | None = None
    subscribers: list[Subscription] = field(default_factory=list)
    stop_pending: bool = False


class CaptureManager:
    """Starts, tracks and stops capture sessions.

    The registry is injected so tests (and multiple adapters) can share or
    isolate state explicitly.
    """

    def __init__(
        self,
        config: LinkLensConfig | None = None,
        registry: SessionRegistry | None = None,
        process_factory: Callable[..., CaptureProcess] = CaptureProcess,
        interface_lister: Callable[[], list[str]] = list_interfaces,
    ) -> None:
        self._config = config or LinkLensConfig()
        self._registry = registry if registry is not None else SessionRegistry()
        self._process_factory = process_factory
        self._interface_lister = interface_lister
        self._active: dict[str, _ActiveCapture] = {}

    @property
    def registry(self) -> SessionRegistry:
        return self._registry

    @property
    def config(self) -> LinkLensConfig:
        return self._config

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    async def interfaces(self) -> list[str]:
        return await asyncio.to_thread(self._interface_lister)

    async def start(
        self,
        target: str,
        duration: int | str | None = None,
        interface: str | None = None,
        owner: object | None = None,
    ) -> CaptureSession:
        """Validate, spawn and begin tracking a new capture."""
        host = normalize_target(target)
        limit = validate_duration(
            duration if duration is not None else self._config.default_duration,
            self._config.max_duration,
        )
        tshark = shutil.which(self._config.tshark_path)
        if tshark is None:
            raise DependencyMissing("tshark", hint=_TSHARK_HINT)

        available = await self.interfaces()
        iface = resolve_interface(interface, available, self._config.default_interface)

        # No awaits between the capacity check and registration.
        active = self._registry.active_count()
        if active >= self._config.max_sessions:
            logger.warning(
                "Rejecting capture of %s: %d/%d sessions active",
                host,
                active,
                self._config.max_sessions,
            )
            raise CapacityExceeded(
                f"Too many active captures ({active}/{self._config.max_sessions})",
                hint="Stop a running capture or wait for one to finish.",
            )

        session_id = uuid.uuid4().hex
        self._config.capture_dir.mkdir(parents=True, exist_ok=True)
        session = CaptureSession(
            id=session_id,
            target=host,
            interface=iface,
            duration=limit,
            capture_file=self._config.capture_dir / f"capture_{session_id}.pcapng",
            owner=weakref.ref(owner) if owner is not None else None,
        )
        argv = build_capture_command(tshark, host, iface, limit, session.capture_file)
        self._registry.create(session)

        process = self._process_factory(
            argv,
            duration=limit,
            tick_interval=self._config.tick_interval,
            kill_grace=self._config.kill_grace,
        )
        entry = _ActiveCapture(process=process)
        self._active[session_id] = entry
        logger.info(
            "Starting capture %s: host %s on %s for %ds",
            session_id,
            host,
            iface,
            limit,
        )

        try:
            await process.start()
        except BaseException:
            self._active.pop(session_id, None)
            self._apply(
                session_id,
                Terminated(TerminationReason.PROCESS_ERROR, error="Capture start aborted"),
            )
            raise
        if entry.stop_pending:
            process.stop()
        entry.task = asyncio.create_task(self._pump(session_id, entry))
        return self._registry.get(session_id)

    def stop(self, session_id: str) -> CaptureSession:
        """Request termination. Returns immediately; no-op if already terminal."""
        session = self._registry.get(session_id)
        if session.state.is_terminal:
            return session
        entry = self._active.get(session_id)
        if entry is not None:
            if entry.process.pid is None:
                entry.stop_pending = True
            else:
                entry.process.stop()
        return self._registry.get(session_id)

    def status(self, session_id: str) -> CaptureSession:
        return self._registry.get(session_id)

    def list(self) -> list[CaptureSession]:
        return sorted(self._registry.list(), key=lambda s: s.started_at)

    async def snapshot(self, session_id: str, limit: int = DEFAULT_LIMIT) -> Snapshot:
        """Re-decode the session's capture file. Never fails for a missing file."""
        session = self._registry.get(session_id)
        return await read_snapshot(
            session.capture_file,
            limit=limit,
            tshark=shutil.which(self._config.tshark_path) or self._config.tshark_path,
            timeout=self._config.snapshot_timeout,
        )

    def subscribe(self, session_id: str) -> Subscription:
        """Open an event channel for a session.

        For a session that is no longer running the channel is already closed.
        """
        self._registry.get(session_id)
        subscription = Subscription(session_id, self._unsubscribe)
        entry = self._active.get(session_id)
        if entry is None:
            subscription.finish()
        else:
            entry.subscribers.append(subscription)
        return subscription

    def remove(self, session_id: str) -> None:
        """Forget a finished session and delete its capture file."""
        session = self._registry.get(session_id)
        if not session.state.is_terminal:
            raise SessionActive(
                f"Capture session '{session_id}' is still {session.state.value}",
                hint="Stop the capture first.",
            )
        self._discard(session_id)

    def release_owner(self, owner: object) -> list[str]:
        """Stop every active session started by *owner*. Returns their ids."""
        released = []
        for session in self._registry.list():
            if session.owned_by(owner) and not session.state.is_terminal:
                self.stop(session.id)
                released.append(session.id)
        if released:
            logger.info("Released %d capture(s) of a closed connection", len(released))
        return released

    def cleanup(self, retention: float | None = None, now: float | None = None) -> list[str]:
        """Remove sessions terminal for longer than the retention window."""
        if retention is None:
            retention = self._config.retention_seconds
        expired = self._registry.expired(retention, now=now)
        for session_id in expired:
            self._discard(session_id)
        if expired:
            logger.info("Cleaned up %d expired capture session(s)", len(expired))
        return expired

    async def wait(self, session_id: str) -> CaptureSession:
        """Wait until the session's process has been reaped."""
        entry = self._active.get(session_id)
        if entry is not None and entry.task is not None:
            await asyncio.shield(entry.task)
        return self._registry.get(session_id)

    async def shutdown(self, timeout: float = 10.0) -> None:
        """Stop all running captures and wait for them to end."""
        tasks = []
        for session_id, entry in list(self._active.items()):
            entry.process.stop()
            if entry.task is not None:
                tasks.append(entry.task)
        if not tasks:
            return
        logger.info("Stopping %d running capture(s)", len(tasks))
        done, pending = await asyncio.wait(tasks, timeout=timeout)
        for task in pending:
            task.cancel()

    # ------------------------------------------------------------------
    # Event pump
    # ------------------------------------------------------------------

    async def _pump(self, session_id: str, entry: _ActiveCapture) -> None:
        try:
            async for event in entry.process.events():
                self._apply(session_id, event)
                for subscriber in list(entry.subscribers):
                    subscriber.put(event)
        except Exception as exc:
            logger.exception("Capture session %s failed", session_id)
            terminated = Terminated(TerminationReason.PROCESS_ERROR, error=str(exc))
            self._apply(session_id, terminated)
            for subscriber in list(entry.subscribers):
                subscriber.put(terminated)
        finally:
            self._active.pop(session_id, None)
            # Only takes effect if cancelled before Terminated arrived.
            self._apply(session_id, Terminated(TerminationReason.KILLED_BY_REQUEST))
            for subscriber in entry.subscribers:
                subscriber.finish()

    def _apply(self, session_id: str, event: CaptureEvent) -> None:
        def mutate(session: CaptureSession) -> None:
            if isinstance(event, Started):
                session.transition(SessionState.RUNNING)
            elif isinstance(event, Record):
                if not session.state.is_terminal:
                    session.add_packets(1)
            elif isinstance(event, Terminated):
                if session.transition(event.reason.final_state):
                    session.termination_reason = event.reason
                    session.last_error = event.error

        try:
            self._registry.update(session_id, mutate)
        except SessionNotFound:
            pass

    def _unsubscribe(self, subscription: Subscription) -> None:
        entry = self._active.get(subscription.session_id)
        if entry is not None and subscription in entry.subscribers:
            entry.subscribers.remove(subscription)

    def _discard(self, session_id: str) -> None:
        session = self._registry.remove(session_id)
        if session is not None:
            session.capture_file.unlink(missing_ok=True)


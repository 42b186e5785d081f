"""Lifecycle of a single tshark capture subprocess.

A CaptureProcess is spawned with start(), consumed once through the async
iterator returned by events(), and may be asked to stop() at any time.
The event stream is ordered: Started, then Record/StatusTick interleaved,
then exactly one Terminated.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
from collections import deque
from collections.abc import AsyncIterator, Sequence

from linklens.capture.parser import LineBuffer, parse_lines
from linklens.session.models import (
    CaptureEvent,
    Record,
    Started,
    StatusTick,
    Terminated,
    TerminationReason,
)

logger = logging.getLogger(__name__)

_CHUNK_SIZE = 64 * 1024
_STDERR_TAIL = 20
_PERMISSION_HINT = (
    "run the capture helper as root or grant dumpcap the "
    "CAP_NET_RAW/CAP_NET_ADMIN capabilities"
)


class CaptureProcess:
    """Owns exactly one capture subprocess."""

    def __init__(
        self,
        argv: Sequence[str],
        duration: float,
        tick_interval: float = 1.0,
        kill_grace: float = 5.0,
    ) -> None:
        self._argv = list(argv)
        self._duration = duration
        self._tick_interval = tick_interval
        self._kill_grace = kill_grace
        self._proc: asyncio.subprocess.Process | None = None
        self._spawn_error: str | None = None
        self._started_at = 0.0
        self._stop_requested = False
        self._deadline_hit = False
        self._consumed = False
        self._stderr_tail: deque[str] = deque(maxlen=_STDERR_TAIL)

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc is not None else None

    @property
    def is_running(self) -> bool:
        return self._proc is not None and self._proc.returncode is None

    async def start(self) -> None:
        """Spawn the subprocess.

        Spawn failures are not raised; they surface as a Terminated event
        with reason PROCESS_ERROR.
        """
        if self._proc is not None or self._spawn_error is not None:
            raise RuntimeError("Capture process already started")
        loop = asyncio.get_running_loop()
        self._started_at = loop.time()
        try:
            self._proc = await asyncio.create_subprocess_exec(
                *self._argv,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                start_new_session=True,
            )
        except OSError as exc:
            self._spawn_error = f"Failed to start {self._argv[0]}: {exc}"
            if isinstance(exc, PermissionError):
                self._spawn_error += f" ({_PERMISSION_HINT})"
            logger.error(self._spawn_error)
            return
        logger.info("Spawned capture process PID %d", self._proc.pid)

    def stop(self) -> bool:
        """Ask the subprocess to terminate. Does not wait for it to exit.

        Returns False if there was nothing running to stop.
        """
        if not self.is_running:
            return False
        if not self._stop_requested:
            self._stop_requested = True
            logger.info("Stopping capture process PID %d", self.pid)
            self._send(signal.SIGTERM)
        return True

    async def events(self) -> AsyncIterator[CaptureEvent]:
        """Yield lifecycle and record events until the process is gone."""
        if self._consumed:
            raise RuntimeError("events() can only be consumed once")
        self._consumed = True

        proc = self._proc
        if proc is None:
            yield Terminated(
                TerminationReason.PROCESS_ERROR,
                error=self._spawn_error or "Capture process was never started",
            )
            return

        loop = asyncio.get_running_loop()
        yield Started(pid=proc.pid)

        assert proc.stdout is not None
        assert proc.stderr is not None
        stderr_task = asyncio.ensure_future(self._drain_stderr(proc.stderr))
        watchdog = loop.call_later(
            max(0.0, self._started_at + self._duration + self._kill_grace - loop.time()),
            self._deadline_kill,
        )
        buffer = LineBuffer()
        count = 0
        next_tick = self._started_at + self._tick_interval
        read_task: asyncio.Future[bytes] | None = None

        try:
            while True:
                if read_task is None:
                    read_task = asyncio.ensure_future(proc.stdout.read(_CHUNK_SIZE))
                timeout = max(0.0, next_tick - loop.time())
                done, _ = await asyncio.wait({read_task}, timeout=timeout)

                if read_task in done:
                    chunk = read_task.result()
                    read_task = None
                    if not chunk:
                        break
                    for record in parse_lines(buffer.feed(chunk)):
                        count += 1
                        yield Record(record)

                now = loop.time()
                if now >= next_tick:
                    yield StatusTick(
                        elapsed=round(now - self._started_at, 3),
                        packet_count=count,
                    )
                    next_tick = now + self._tick_interval

            # EOF: whatever is left is the last line, newline or not.
            for record in parse_lines(buffer.flush()):
                count += 1
                yield Record(record)

            return_code = await proc.wait()
            await stderr_task
            terminated = self._termination(return_code)
            logger.info(
                "Capture process PID %d ended: %s (rc=%s, %d packets)",
                proc.pid,
                terminated.reason.value,
                return_code,
                count,
            )
            yield terminated
        finally:
            watchdog.cancel()
            if read_task is not None and not read_task.done():
                read_task.cancel()
            if not stderr_task.done():
                stderr_task.cancel()
            if proc.returncode is None:
                # Consumer went away mid-stream; don't leave tshark running.
                self._send(signal.SIGKILL)

    def _termination(self, return_code: int) -> Terminated:
        if self._stop_requested:
            return Terminated(TerminationReason.KILLED_BY_REQUEST, return_code)
        if self._deadline_hit or return_code == 0:
            return Terminated(TerminationReason.NORMAL, return_code)
        if return_code < 0:
            return Terminated(
                TerminationReason.SIGNALED,
                return_code,
                error=f"Capture process killed by signal {-return_code}",
            )
        stderr = "\n".join(self._stderr_tail).strip()
        error = stderr or f"Capture process exited with code {return_code}"
        if "permission" in stderr.lower():
            error += f" ({_PERMISSION_HINT})"
        return Terminated(TerminationReason.PROCESS_ERROR, return_code, error=error)

    def _deadline_kill(self) -> None:
        if not self.is_running:
            return
        self._deadline_hit = True
        logger.warning(
            "Capture process PID %d outlived its %ss limit, killing",
            self.pid,
            self._duration,
        )
        self._send(signal.SIGKILL)

    def _send(self, sig: int) -> None:
        if self._proc is None:
            return
        # tshark runs dumpcap as a child; signal the whole process group.
        try:
            os.killpg(self._proc.pid, sig)
        except ProcessLookupError:
            pass

    async def _drain_stderr(self, stream: asyncio.StreamReader) -> None:
        async for raw in stream:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                self._stderr_tail.append(line)
                logger.debug("tshark: %s", line)

"""Run a one-shot CLI tool without a shell and collect its output."""

from __future__ import annotations

import asyncio
import logging
import shutil
from collections.abc import Sequence
from dataclasses import dataclass

from linklens.errors import DependencyMissing

logger = logging.getLogger(__name__)

MAX_OUTPUT_CHUNK = 50 * 1024


@dataclass
class ToolRun:
    """Outcome of a finished (or timed-out) tool invocation."""

    argv: list[str]
    returncode: int | None
    stdout: str
    stderr: str
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out


def require_tool(name: str, hint: str | None = None) -> str:
    """Return the absolute path of *name* or raise DependencyMissing."""
    path = shutil.which(name)
    if path is None:
        raise DependencyMissing(name, hint=hint)
    return path


def truncate_output(stream: str) -> str:
    if len(stream) <= MAX_OUTPUT_CHUNK * 2:
        return stream
    head = stream[:MAX_OUTPUT_CHUNK]
    tail = stream[-MAX_OUTPUT_CHUNK:]
    omitted = len(stream) - (len(head) + len(tail))
    return f"{head}\n...[truncated {omitted} bytes]...\n{tail}"


async def run_tool(argv: Sequence[str], timeout: float) -> ToolRun:
    """Execute *argv* and wait at most *timeout* seconds for it."""
    argv = [str(a) for a in argv]
    logger.info("Running %s", " ".join(argv))
    proc = await asyncio.create_subprocess_exec(
        *argv,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("%s timed out after %ss", argv[0], timeout)
        proc.kill()
        stdout, stderr = await proc.communicate()
        return ToolRun(
            argv=argv,
            returncode=proc.returncode,
            stdout=truncate_output(stdout.decode("utf-8", errors="replace")),
            stderr=truncate_output(stderr.decode("utf-8", errors="replace")),
            timed_out=True,
        )

    return ToolRun(
        argv=argv,
        returncode=proc.returncode,
        stdout=truncate_output(stdout.decode("utf-8", errors="replace")),
        stderr=truncate_output(stderr.decode("utf-8", errors="replace")),
    )

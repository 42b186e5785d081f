"""Point-in-time summaries of a capture file, re-decoded with tshark -r.

Independent of the live process: the file may still be growing, and tshark
will complain about a cut-short trailing packet. Whatever decoded cleanly
before that is used.
"""

from __future__ import annotations

import asyncio
import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path

from linklens.capture.command import build_read_command
from linklens.capture.parser import PacketRecord, parse_lines

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


@dataclass
class Snapshot:
    """Decoded records (capped) plus histograms over every decoded record."""

    records: list[PacketRecord] = field(default_factory=list)
    protocols: Counter[str] = field(default_factory=Counter)
    sources: Counter[str] = field(default_factory=Counter)
    destinations: Counter[str] = field(default_factory=Counter)
    total: int = 0

    @classmethod
    def from_records(cls, records: list[PacketRecord], limit: int) -> Snapshot:
        snapshot = cls(records=records[: max(0, limit)], total=len(records))
        for record in records:
            if record.protocol:
                snapshot.protocols[record.protocol] += 1
            if record.source:
                snapshot.sources[record.source] += 1
            if record.destination:
                snapshot.destinations[record.destination] += 1
        return snapshot

    def to_dict(self) -> dict:
        return {
            "records": [r.to_dict() for r in self.records],
            "histograms": {
                "protocols": dict(self.protocols.most_common()),
                "sources": dict(self.sources.most_common()),
                "destinations": dict(self.destinations.most_common()),
            },
            "totalRecordCount": self.total,
            "shown": len(self.records),
        }


async def read_snapshot(
    capture_file: Path,
    limit: int = DEFAULT_LIMIT,
    tshark: str = "tshark",
    timeout: float = 15.0,
) -> Snapshot:
    """Decode *capture_file* and summarise it.

    A missing, empty or unreadable file gives an empty snapshot.
    """
    try:
        if capture_file.stat().st_size == 0:
            return Snapshot()
    except OSError:
        return Snapshot()

    argv = build_read_command(tshark, capture_file)
    try:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except OSError as exc:
        logger.warning("Cannot run %s for snapshot: %s", tshark, exc)
        return Snapshot()

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Snapshot of %s timed out after %ss", capture_file, timeout)
        proc.kill()
        await proc.wait()
        return Snapshot()

    if proc.returncode != 0:
        # Typical while the file is mid-write ("cut short in the middle of a packet").
        logger.debug(
            "tshark -r %s exited %s: %s",
            capture_file,
            proc.returncode,
            stderr.decode("utf-8", errors="replace").strip(),
        )

    lines = stdout.decode("utf-8", errors="replace").splitlines()
    return Snapshot.from_records(parse_lines(lines), limit)

"""Parse tshark field output into packet records.

tshark is asked for a fixed list of fields separated by the ASCII unit
separator (0x1f). tshark escapes non-printable characters inside column
text, so the separator never occurs inside a field. Commas do, in the Info
column.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

FIELD_SEPARATOR = "\x1f"

# Order matters: parse_line() maps positions onto PacketRecord attributes.
CAPTURE_FIELDS: tuple[str, ...] = (
    "frame.time_relative",
    "_ws.col.Source",
    "_ws.col.Destination",
    "_ws.col.Protocol",
    "frame.len",
    "_ws.col.Info",
)


@dataclass(frozen=True)
class PacketRecord:
    """One decoded packet summary line."""

    time_offset: float
    source: str
    destination: str
    protocol: str
    length: int
    info: str

    def to_dict(self) -> dict:
        return {
            "time": self.time_offset,
            "source": self.source,
            "destination": self.destination,
            "protocol": self.protocol,
            "length": self.length,
            "info": self.info,
        }


def parse_line(raw_line: str) -> PacketRecord | None:
    """Parse one line of field output.

    Returns None for lines with fewer fields than expected. Numeric fields
    that do not parse become 0.
    """
    line = raw_line.rstrip("\r\n")
    if not line:
        return None
    # Info is last, so any surplus separators stay inside it.
    parts = line.split(FIELD_SEPARATOR, len(CAPTURE_FIELDS) - 1)
    if len(parts) < len(CAPTURE_FIELDS):
        return None

    time_text, source, destination, protocol, length_text, info = parts
    return PacketRecord(
        time_offset=_to_float(time_text),
        source=source.strip(),
        destination=destination.strip(),
        protocol=protocol.strip(),
        length=_to_int(length_text),
        info=info.strip(),
    )


def _to_float(text: str) -> float:
    # float() also takes "nan", "inf" and "1_0"; none of them is a field value.
    if "_" in text:
        return 0.0
    try:
        value = float(text.strip())
    except ValueError:
        return 0.0
    return value if math.isfinite(value) else 0.0


def _to_int(text: str) -> int:
    if "_" in text:
        return 0
    try:
        return int(text.strip())
    except ValueError:
        return 0


class LineBuffer:
    """Reassemble complete lines from arbitrarily sized output chunks.

    Bytes are kept undecoded until a full line is available so multi-byte
    characters split across chunks decode correctly.
    """

    def __init__(self) -> None:
        self._pending = b""

    def feed(self, chunk: bytes) -> list[str]:
        """Add a chunk; return the complete lines it finished."""
        data = self._pending + chunk
        *complete, self._pending = data.split(b"\n")
        return [line.decode("utf-8", errors="replace") for line in complete]

    def flush(self) -> list[str]:
        """Return the trailing partial line (at EOF), if any."""
        pending, self._pending = self._pending, b""
        if not pending:
            return []
        return [pending.decode("utf-8", errors="replace")]

    @property
    def pending(self) -> bytes:
        return self._pending


def parse_lines(lines: list[str]) -> list[PacketRecord]:
    """Parse many lines, dropping the malformed ones."""
    records = []
    for line in lines:
        record = parse_line(line)
        if record is not None:
            records.append(record)
    return records

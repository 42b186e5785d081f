"""Hash cracking through John the Ripper via a temporary hash file."""

from __future__ import annotations

import logging
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

from linklens.errors import InvalidRequest, ToolFailed
from linklens.tools.runner import require_tool, run_tool

logger = logging.getLogger(__name__)

_FORMAT_NAME = re.compile(r"^[A-Za-z0-9_\-]{1,64}$")
_SUMMARY_LINE = re.compile(r"^\d+ password hash(es)? cracked")
_JOHN_HINT = "Install John the Ripper (e.g. 'apt install john') and make sure it is on PATH."


@dataclass
class CrackResult:
    output: str
    results: str
    hash_file: str
    cracked: list[str] = field(default_factory=list)
    timed_out: bool = False

    def to_dict(self) -> dict:
        return {
            "status": "completed",
            "output": self.output,
            "results": self.results,
            "cracked": self.cracked,
            "hashFile": self.hash_file,
            "timedOut": self.timed_out,
        }


def parse_show_output(text: str) -> list[str]:
    """Return the ``user:password`` lines printed by ``john --show``."""
    lines = []
    for line in text.splitlines():
        line = line.strip()
        if not line or _SUMMARY_LINE.match(line):
            continue
        lines.append(line)
    return lines


async def crack(
    hash_value: str,
    wordlist: str | None = None,
    fmt: str | None = None,
    john: str = "john",
    timeout: float = 60.0,
) -> CrackResult:
    """Try to crack *hash_value*.

    The hash is written to a private temporary directory that is removed once
    both the crack attempt and the ``--show`` listing are done, whatever
    their outcome.
    """
    hash_value = (hash_value or "").strip()
    if not hash_value:
        raise InvalidRequest("Hash is required")
    if "\n" in hash_value or "\r" in hash_value:
        raise InvalidRequest("Submit a single hash per request")
    if fmt and not _FORMAT_NAME.match(fmt):
        raise InvalidRequest(f"Invalid hash format name: {fmt!r}")
    if wordlist and not Path(wordlist).is_file():
        raise InvalidRequest(f"Wordlist not found: {wordlist}")

    binary = require_tool(john, hint=_JOHN_HINT)

    with tempfile.TemporaryDirectory(prefix="linklens_john_") as tmp_dir:
        hash_file = Path(tmp_dir) / "hashes.txt"
        hash_file.write_text(f"{hash_value}\n", encoding="utf-8")

        args = [binary]
        if wordlist:
            args.append(f"--wordlist={wordlist}")
        if fmt:
            args.append(f"--format={fmt}")
        args.append(str(hash_file))

        attempt = await run_tool(args, timeout=timeout)

        show_args = [binary, "--show"]
        if fmt:
            show_args.append(f"--format={fmt}")
        show_args.append(str(hash_file))
        show = await run_tool(show_args, timeout=timeout)

    if not attempt.ok and not show.stdout.strip():
        raise ToolFailed(
            "john failed",
            details=attempt.stderr or attempt.stdout or "no output",
        )

    cracked = parse_show_output(show.stdout)
    logger.info("john finished: %d hash(es) cracked", len(cracked))
    return CrackResult(
        output=attempt.stdout,
        results=show.stdout,
        hash_file=str(hash_file),
        cracked=cracked,
        timed_out=attempt.timed_out,
    )

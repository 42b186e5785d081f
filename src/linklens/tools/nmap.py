"""Port scans through nmap, restricted to an allow-list of flags."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from linklens.capture.command import normalize_target
from linklens.errors import DisallowedOption, ToolFailed
from linklens.tools.runner import require_tool, run_tool

logger = logging.getLogger(__name__)

ALLOWED_FLAGS: tuple[str, ...] = ("-T4", "-F", "-sV", "-A", "-v", "--script=vuln")

# Whitespace and shell metacharacters all count as token boundaries.
_TOKEN_SPLIT = re.compile(r"[\s;&|`$()<>'\"\\]+")
_PORT_LINE = re.compile(
    r"^(?P<port>\d+)/(?P<protocol>tcp|udp|sctp)\s+(?P<state>\S+)\s*(?P<service>.*)$"
)

_NMAP_HINT = "Install nmap (e.g. 'apt install nmap') and make sure it is on PATH."


@dataclass
class ScanResult:
    command: list[str]
    output: str
    ports: list[dict] = field(default_factory=list)
    rejected: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "status": "Scan completed",
            "command": " ".join(self.command),
            "results": self.output,
            "ports": self.ports,
            "rejectedOptions": self.rejected,
        }


def sanitize_options(options: str | list[str] | None) -> tuple[list[str], list[str]]:
    """Split *options* into (allowed flags, rejected tokens).

    Allowed flags keep their first-seen order and appear once.
    """
    if not options:
        return [], []
    text = options if isinstance(options, str) else " ".join(options)
    allowed: list[str] = []
    rejected: list[str] = []
    for token in _TOKEN_SPLIT.split(text):
        if not token:
            continue
        if token in ALLOWED_FLAGS:
            if token not in allowed:
                allowed.append(token)
        else:
            rejected.append(token)
    return allowed, rejected


def parse_ports(output: str) -> list[dict]:
    """Extract the PORT/STATE/SERVICE table from nmap's normal output."""
    ports = []
    for line in output.splitlines():
        match = _PORT_LINE.match(line.strip())
        if match:
            ports.append(
                {
                    "port": int(match.group("port")),
                    "protocol": match.group("protocol"),
                    "state": match.group("state"),
                    "service": match.group("service").strip(),
                }
            )
    return ports


async def run_scan(
    target: str,
    options: str | list[str] | None = "-sV",
    nmap: str = "nmap",
    timeout: float = 600.0,
    strict: bool = False,
) -> ScanResult:
    """Scan *target* with the allow-listed subset of *options*.

    With ``strict`` any rejected token raises DisallowedOption instead of
    being dropped.
    """
    host = normalize_target(target)
    flags, rejected = sanitize_options(options)
    if rejected:
        if strict:
            raise DisallowedOption(
                f"Options not allowed: {' '.join(rejected)}",
                hint=f"Allowed flags: {' '.join(ALLOWED_FLAGS)}",
            )
        logger.warning("Dropped nmap options %s", rejected)

    binary = require_tool(nmap, hint=_NMAP_HINT)
    run = await run_tool([binary, *flags, host], timeout=timeout)
    if not run.ok:
        reason = "timed out" if run.timed_out else f"exited with code {run.returncode}"
        raise ToolFailed(f"Scan failed: nmap {reason}", details=run.stderr or run.stdout)

    return ScanResult(
        command=["nmap", *flags, host],
        output=run.stdout,
        ports=parse_ports(run.stdout),
        rejected=rejected,
    )

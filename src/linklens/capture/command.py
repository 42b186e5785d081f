"""Validation and argv construction for tshark invocations.

Nothing here goes through a shell. Every externally supplied value (target,
interface, duration) is validated and then placed into its own argv slot.
"""

from __future__ import annotations

import ipaddress
import logging
import re
import sys
from pathlib import Path
from urllib.parse import urlsplit

import psutil

from linklens.capture.parser import CAPTURE_FIELDS, FIELD_SEPARATOR
from linklens.errors import InvalidRequest, InvalidTarget

logger = logging.getLogger(__name__)

_HOST_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")
_INTERFACE_NAME = re.compile(r"^[A-Za-z0-9_.:@\-]{1,64}$")

# Pseudo-interface tshark offers on Linux that captures on all devices.
ANY_INTERFACE = "any"


def normalize_target(raw: str) -> str:
    """Return the validated host (IP or hostname) named by *raw*.

    Accepts a bare host, an IP literal or a URL; for URLs only the hostname
    is kept. Raises InvalidTarget otherwise.
    """
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidTarget("Target is required")
    text = raw.strip()

    if "://" in text:
        try:
            host = urlsplit(text).hostname or ""
        except ValueError:
            host = ""
    else:
        host = text.strip("[]")

    if not host:
        raise InvalidTarget(
            f"Invalid target: {raw!r}",
            hint="Use a hostname, IP address or URL (e.g. example.com).",
        )

    try:
        return str(ipaddress.ip_address(host))
    except ValueError:
        pass

    hostname = host.rstrip(".").lower()
    labels = hostname.split(".")
    # An all-numeric last label is a malformed address, not a hostname.
    if (
        len(hostname) > 253
        or not all(_HOST_LABEL.match(label) for label in labels)
        or labels[-1].isdigit()
    ):
        raise InvalidTarget(
            f"Invalid target: {raw!r}",
            hint="Use a hostname, IP address or URL (e.g. example.com).",
        )
    return hostname


def validate_duration(value: object, maximum: int) -> int:
    """Coerce a duration to a positive int no larger than *maximum*."""
    try:
        duration = int(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        raise InvalidRequest(f"Duration must be an integer, got {value!r}")
    if duration < 1:
        raise InvalidRequest("Duration must be at least 1 second")
    if duration > maximum:
        raise InvalidRequest(f"Duration must not exceed {maximum} seconds")
    return duration


def list_interfaces() -> list[str]:
    """Return the capture interfaces present on this host."""
    try:
        names = sorted(psutil.net_if_addrs())
    except (OSError, psutil.Error) as exc:
        logger.warning("Interface discovery failed: %s", exc)
        names = []
    names = [n for n in names if _INTERFACE_NAME.match(n)]
    if sys.platform.startswith("linux") and ANY_INTERFACE not in names:
        names.insert(0, ANY_INTERFACE)
    return names


def resolve_interface(
    requested: str | None,
    available: list[str],
    default: str,
) -> str:
    """Pick the interface to capture on.

    The requested name is used only if it is among *available*; otherwise
    the default is used (or, failing that, the first available interface).
    """
    if requested and requested in available:
        return requested
    if requested:
        logger.info("Interface '%s' not available, falling back", requested)
    if default in available or not available:
        return default
    return available[0]


def build_capture_command(
    tshark: str,
    target: str,
    interface: str,
    duration: int,
    capture_file: Path,
) -> list[str]:
    """argv for a live capture that writes *capture_file* and prints fields."""
    if not _INTERFACE_NAME.match(interface):
        raise InvalidRequest(f"Invalid interface name: {interface!r}")
    return [
        tshark,
        "-i", interface,
        "-f", f"host {target}",
        "-a", f"duration:{duration}",
        "-w", str(capture_file),
        "-P",  # print while writing
        "-l",  # flush after each packet
        "-n",
        *_field_args(),
    ]


def build_read_command(tshark: str, capture_file: Path) -> list[str]:
    """argv for a read-only decode of an existing capture file."""
    return [tshark, "-r", str(capture_file), "-n", *_field_args()]


def _field_args() -> list[str]:
    args = [
        "-T", "fields",
        "-E", "header=n",
        "-E", f"separator={FIELD_SEPARATOR}",
        "-E", "quote=n",
        "-E", "occurrence=f",
    ]
    for name in CAPTURE_FIELDS:
        args += ["-e", name]
    return args

"""Tests for target validation, interface resolution and argv construction."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from linklens.capture import command
from linklens.capture.command import (
    build_capture_command,
    build_read_command,
    normalize_target,
    resolve_interface,
    validate_duration,
)
from linklens.capture.parser import CAPTURE_FIELDS, FIELD_SEPARATOR
from linklens.errors import InvalidRequest, InvalidTarget


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("example.com", "example.com"),
        ("Example.COM.", "example.com"),
        ("https://example.com/login?x=1", "example.com"),
        ("http://sub.example.org:8080", "sub.example.org"),
        ("192.168.1.10", "192.168.1.10"),
        ("[2001:db8::1]", "2001:db8::1"),
        ("http://[2001:db8::1]:80/", "2001:db8::1"),
        ("localhost", "localhost"),
    ],
)
def test_normalize_target_accepts(raw, expected):
    assert normalize_target(raw) == expected


@pytest.mark.parametrize(
    "raw",
    [
        "",
        "   ",
        "example.com; rm -rf /",
        "example.com and port 22",
        "$(reboot)",
        "-i eth0",
        "bad_host.com",
        "a" * 64 + ".com",
        "https://",
        "999.999.999.999",
        "1.2.3",
        "http://300.1.1.1/",
    ],
)
def test_normalize_target_rejects(raw):
    with pytest.raises(InvalidTarget):
        normalize_target(raw)


def test_validate_duration():
    assert validate_duration("30", 60) == 30
    with pytest.raises(InvalidRequest):
        validate_duration(0, 60)
    with pytest.raises(InvalidRequest):
        validate_duration(61, 60)
    with pytest.raises(InvalidRequest):
        validate_duration("ten", 60)


class TestResolveInterface:
    def test_requested_and_available(self):
        assert resolve_interface("eth0", ["any", "eth0"], "any") == "eth0"

    def test_unavailable_falls_back_to_default(self):
        assert resolve_interface("wlan9", ["any", "eth0"], "any") == "any"

    def test_none_requested(self):
        assert resolve_interface(None, ["any", "eth0"], "any") == "any"

    def test_default_missing_uses_first_available(self):
        assert resolve_interface("wlan9", ["en0", "lo0"], "any") == "en0"

    def test_nothing_discovered(self):
        assert resolve_interface("eth0", [], "any") == "any"


def test_list_interfaces_filters_odd_names():
    fake = {"eth0": [], "lo": [], "weird name;": []}
    with patch.object(command.psutil, "net_if_addrs", return_value=fake), \
            patch.object(command.sys, "platform", "linux"):
        names = command.list_interfaces()
    assert names == ["any", "eth0", "lo"]


def test_capture_command_is_structured(tmp_path: Path):
    out = tmp_path / "c.pcapng"
    argv = build_capture_command("/usr/bin/tshark", "example.com", "eth0", 10, out)

    assert argv[0] == "/usr/bin/tshark"
    assert argv[argv.index("-i") + 1] == "eth0"
    assert argv[argv.index("-f") + 1] == "host example.com"
    assert argv[argv.index("-a") + 1] == "duration:10"
    assert argv[argv.index("-w") + 1] == str(out)
    assert "-P" in argv and "-l" in argv
    assert f"separator={FIELD_SEPARATOR}" in argv
    fields = [argv[i + 1] for i, a in enumerate(argv) if a == "-e"]
    assert tuple(fields) == CAPTURE_FIELDS


def test_capture_command_rejects_bad_interface(tmp_path: Path):
    with pytest.raises(InvalidRequest):
        build_capture_command("tshark", "example.com", "eth0 -w /etc/passwd", 10, tmp_path / "x")


def test_read_command(tmp_path: Path):
    argv = build_read_command("tshark", tmp_path / "c.pcapng")
    assert argv[:3] == ["tshark", "-r", str(tmp_path / "c.pcapng")]
    assert "-w" not in argv

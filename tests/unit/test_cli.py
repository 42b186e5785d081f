"""Tests for CLI commands using Click's CliRunner."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from click.testing import CliRunner

from linklens.cli import main

FAKE_TSHARK = """
import sys

rows = [
    ["0.1", "10.0.0.5", "93.184.216.34", "TCP", "66", "SYN"],
    ["0.2", "93.184.216.34", "10.0.0.5", "TCP", "66", "SYN, ACK"],
]
for row in rows:
    print("\\x1f".join(row), flush=True)
"""


@pytest.fixture
def tool_env(tmp_path, fake_executable, monkeypatch):
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("LINKLENS_CAPTURE_DIR", str(tmp_path / "captures"))
    monkeypatch.setenv("LINKLENS_TSHARK", str(fake_executable("tshark", FAKE_TSHARK)))


def test_main_help():
    runner = CliRunner()
    result = runner.invoke(main, ["--help"])
    assert result.exit_code == 0
    assert "LinkLens" in result.output
    for command in ("capture", "interfaces", "server", "snapshot"):
        assert command in result.output


def test_main_version():
    runner = CliRunner()
    result = runner.invoke(main, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_capture_help():
    runner = CliRunner()
    result = runner.invoke(main, ["capture", "--help"])
    assert result.exit_code == 0
    assert "TARGET" in result.output
    assert "--duration" in result.output


def test_capture_invalid_target(tool_env):
    runner = CliRunner()
    result = runner.invoke(main, ["capture", "not a host!"])
    assert result.exit_code == 2


def test_capture_runs_to_completion(tool_env):
    runner = CliRunner()
    result = runner.invoke(main, ["capture", "example.com", "-d", "5"])
    assert result.exit_code == 0, result.output
    assert "93.184.216.34" in result.output


@patch("linklens.cli.interfaces.list_interfaces", return_value=["any", "eth0"])
def test_interfaces(mock_list, tool_env):
    runner = CliRunner()
    result = runner.invoke(main, ["interfaces"])
    assert result.exit_code == 0
    assert "eth0" in result.output
    assert "(default)" in result.output


def test_snapshot_missing_file(tool_env, tmp_path):
    runner = CliRunner()
    result = runner.invoke(main, ["snapshot", str(tmp_path / "missing.pcapng")])
    assert result.exit_code == 0
    assert "No packets decoded" in result.output


def test_snapshot_prints_tables(tool_env, tmp_path):
    capture = tmp_path / "trace.pcapng"
    capture.write_bytes(b"\x0a\x0d\x0d\x0a")
    runner = CliRunner()
    result = runner.invoke(main, ["snapshot", str(capture), "-n", "1"])
    assert result.exit_code == 0
    assert "First 1 of 2 packets" in result.output
    assert "Protocols" in result.output


def test_config_file_option(tool_env, tmp_path):
    config_file = tmp_path / "linklens.yaml"
    config_file.write_text("default_interface: eth0\n", encoding="utf-8")
    runner = CliRunner()
    with patch("linklens.cli.interfaces.list_interfaces", return_value=["any", "eth0"]):
        result = runner.invoke(main, ["-c", str(config_file), "interfaces"])
    assert result.exit_code == 0
    lines = [line for line in result.output.splitlines() if "(default)" in line]
    assert lines and "eth0" in lines[0]

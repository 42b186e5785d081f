"""Shared test fixtures."""

from __future__ import annotations

import itertools
import json
import stat
import sys
from collections.abc import Callable
from pathlib import Path

import pytest

from linklens.capture.parser import FIELD_SEPARATOR
from linklens.capture.process import CaptureProcess
from linklens.config import LinkLensConfig
from linklens.session.manager import CaptureManager

# Stand-in for tshark: replays a JSON script of writes/sleeps, then exits.
FAKE_TOOL = r'''
import json
import os
import sys
import time

with open(sys.argv[1], encoding="utf-8") as fh:
    spec = json.load(fh)
for step in spec.get("steps", []):
    if "write" in step:
        sys.stdout.buffer.write(step["write"].encode("utf-8"))
        sys.stdout.buffer.flush()
    elif "sleep" in step:
        time.sleep(step["sleep"])
    elif "signal" in step:
        os.kill(os.getpid(), step["signal"])
if spec.get("stderr"):
    sys.stderr.write(spec["stderr"])
    sys.stderr.flush()
if spec.get("hang"):
    time.sleep(60)
sys.exit(spec.get("exit", 0))
'''


def _packet_line(
    source: str = "10.0.0.5",
    destination: str = "93.184.216.34",
    protocol: str = "TCP",
    length: int | str = 66,
    info: str = "51000 → 443 [SYN] Seq=0 Win=64240 Len=0",
    time: float | str = 0.25,
) -> str:
    """One line of field output as the capture tool prints it."""
    fields = [str(time), source, destination, protocol, str(length), info]
    return FIELD_SEPARATOR.join(fields) + "\n"


@pytest.fixture
def packet_line() -> Callable[..., str]:
    return _packet_line


@pytest.fixture
def fake_tool(tmp_path: Path) -> Callable[..., list[str]]:
    """Build argv for the stand-in tool: fake_tool(steps=[...], exit=0, ...)."""
    script = tmp_path / "fake_tool.py"
    script.write_text(FAKE_TOOL, encoding="utf-8")
    counter = itertools.count()

    def make(**spec) -> list[str]:
        spec_path = tmp_path / f"spec_{next(counter)}.json"
        spec_path.write_text(json.dumps(spec), encoding="utf-8")
        return [sys.executable, str(script), str(spec_path)]

    return make


@pytest.fixture
def fake_executable(tmp_path: Path) -> Callable[[str, str], Path]:
    """Write an executable Python script and return its path."""

    def make(name: str, body: str) -> Path:
        path = tmp_path / name
        path.write_text(f"#!{sys.executable}\n{body}", encoding="utf-8")
        path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
        return path

    return make


@pytest.fixture
def config(tmp_path: Path) -> LinkLensConfig:
    return LinkLensConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        capture_dir=tmp_path / "captures",
        # Any executable satisfies the pre-flight check; the fake replaces the argv.
        tshark_path=sys.executable,
        max_sessions=2,
        tick_interval=0.1,
        kill_grace=2.0,
        snapshot_timeout=5.0,
    )


@pytest.fixture
def make_manager(
    config: LinkLensConfig,
    fake_tool: Callable[..., list[str]],
) -> Callable[..., CaptureManager]:
    """make_manager(spec) → CaptureManager whose captures run the fake tool.

    *spec* is a fake_tool() keyword dict, or a callable mapping the real
    tshark argv to one.
    """

    def make(spec: dict | Callable[[list[str]], dict]) -> CaptureManager:
        def factory(argv: list[str], **kwargs) -> CaptureProcess:
            resolved = spec(argv) if callable(spec) else spec
            return CaptureProcess(fake_tool(**resolved), **kwargs)

        return CaptureManager(
            config,
            process_factory=factory,
            interface_lister=lambda: ["any", "eth0", "lo"],
        )

    return make

"""Global configuration — XDG paths, optional YAML file, env vars, defaults."""

from __future__ import annotations

import dataclasses
import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)


def _default_data_dir() -> Path:
    xdg = os.environ.get("XDG_DATA_HOME")
    if xdg:
        return Path(xdg) / "linklens"
    return Path.home() / ".local" / "share" / "linklens"


def _default_config_dir() -> Path:
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "linklens"
    return Path.home() / ".config" / "linklens"


def _default_capture_dir() -> Path:
    return Path(tempfile.gettempdir()) / "linklens_captures"


# Env var → (field name, converter)
_ENV_OVERRIDES: dict[str, tuple[str, type]] = {
    "LINKLENS_WEB_PORT": ("web_port", int),
    "LINKLENS_MAX_SESSIONS": ("max_sessions", int),
    "LINKLENS_RETENTION": ("retention_seconds", float),
    "LINKLENS_CAPTURE_DIR": ("capture_dir", Path),
    "LINKLENS_TSHARK": ("tshark_path", str),
    "LINKLENS_DEFAULT_INTERFACE": ("default_interface", str),
    "ZAP_API_URL": ("zap_url", str),
    "ZAP_API_KEY": ("zap_api_key", str),
}

_PATH_FIELDS = {"data_dir", "config_dir", "capture_dir"}


@dataclass
class LinkLensConfig:
    """Application-wide configuration."""

    data_dir: Path = field(default_factory=_default_data_dir)
    config_dir: Path = field(default_factory=_default_config_dir)
    capture_dir: Path = field(default_factory=_default_capture_dir)
    web_host: str = "127.0.0.1"  # loopback only
    web_port: int = 5001

    # Capture sessions
    max_sessions: int = 4
    retention_seconds: float = 600.0
    cleanup_interval: float = 60.0
    tick_interval: float = 1.0
    kill_grace: float = 5.0
    snapshot_timeout: float = 15.0
    default_duration: int = 30
    max_duration: int = 3600
    default_interface: str = "any"

    # External tools
    tshark_path: str = "tshark"
    nmap_path: str = "nmap"
    john_path: str = "john"
    zap_url: str = "http://localhost:8080"
    zap_api_key: str = ""
    scan_timeout: float = 600.0
    crack_timeout: float = 60.0

    verbose: bool = False

    @classmethod
    def load(cls, path: str | Path | None = None) -> LinkLensConfig:
        """Load config from an optional YAML file, then environment variables."""
        config = cls()

        config_file = Path(path) if path else config.config_dir / "config.yaml"
        if config_file.is_file():
            config.apply_mapping(_read_yaml(config_file))

        for env_name, (attr, convert) in _ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value:
                setattr(config, attr, convert(value))

        return config

    def apply_mapping(self, data: dict) -> None:
        """Overlay recognised keys from a mapping onto this config."""
        known = {f.name for f in dataclasses.fields(self)}
        for key, value in data.items():
            if key not in known:
                logger.warning("Ignoring unknown config key '%s'", key)
                continue
            if key in _PATH_FIELDS:
                value = Path(value).expanduser()
            setattr(self, key, value)


def _read_yaml(path: Path) -> dict:
    data = yaml.safe_load(path.read_text(encoding="utf-8"))
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a mapping")
    return data

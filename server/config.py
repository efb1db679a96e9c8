"""
Server configuration file support.

Reads/writes ``~/.speedtest-nojs/config.json``.  Command-line flags override
whatever is stored here.

Supported keys::

    host = "0.0.0.0"          # listening address
    port = 8080
    probe_count = 8           # latency probes per test run
    download_size = 8388608   # default payload in bytes
    wait_timeout = 30.0       # seconds the results page waits for a download
    poll_interval = 0.15      # seconds between session re-reads
    session_ttl = 3600.0      # idle seconds before eviction (0 = never)
    log_level = "INFO"
"""
from __future__ import annotations

import json
import os
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any, Dict

from .constants import (
    DEFAULT_DOWNLOAD_SIZE,
    DEFAULT_HOST,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_PORT,
    DEFAULT_PROBE_COUNT,
    DEFAULT_SESSION_TTL,
    DEFAULT_WAIT_TIMEOUT,
)

_CONFIG_DIR = os.path.join(Path.home(), ".speedtest-nojs")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "host": DEFAULT_HOST,
    "port": DEFAULT_PORT,
    "probe_count": DEFAULT_PROBE_COUNT,
    "download_size": DEFAULT_DOWNLOAD_SIZE,
    "wait_timeout": DEFAULT_WAIT_TIMEOUT,
    "poll_interval": DEFAULT_POLL_INTERVAL,
    "session_ttl": DEFAULT_SESSION_TTL,
    "log_level": "INFO",
}


@dataclass
class Settings:
    """Typed view of the merged configuration, handed to ``create_app``."""

    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    probe_count: int = DEFAULT_PROBE_COUNT
    download_size: int = DEFAULT_DOWNLOAD_SIZE
    wait_timeout: float = DEFAULT_WAIT_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    session_ttl: float = DEFAULT_SESSION_TTL
    log_level: str = "INFO"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Settings:
        """Build from a config dict, ignoring unknown keys and ``None`` values."""
        known = {f.name for f in fields(cls)}
        kwargs: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known or value is None:
                continue
            default = getattr(cls, key)
            kwargs[key] = type(default)(value)
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# ---------------------------------------------------------------------------
# Read / Write
# ---------------------------------------------------------------------------

def load_config() -> Dict[str, Any]:
    """Load config from disk, returning defaults for missing keys."""
    path = _config_path()
    config = dict(DEFAULTS)

    if not os.path.isfile(path):
        return config

    try:
        with open(path, encoding="utf-8") as fh:
            user = json.load(fh)
        if isinstance(user, dict):
            config.update(user)
    except (json.JSONDecodeError, IOError):
        pass  # corrupt file; use defaults

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()

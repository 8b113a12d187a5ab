"""
User configuration file support.

Reads/writes ``~/.speedlog/config.json``.  Missing keys fall back to
``DEFAULTS``; command-line flags override both.

Supported keys::

    server_url = "http://localhost:3000"
    server_label = ""           # defaults to the URL's host name
    ping_attempts = 5
    ping_interval_ms = 300
    timeout = 10.0              # seconds per echo / leg
    upload_timing = "server"    # "server" or "client"
    download_legs = [1048576, 2097152, 5242880]
    upload_legs = [524288, 1048576, 2097152]
    user = ""                   # identity to save results under
    csv_file = ""               # auto-append CSV path
"""
from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict

from .constants import (
    DEFAULT_PING_ATTEMPTS,
    DEFAULT_PING_INTERVAL_MS,
    DEFAULT_SERVER_URL,
    DEFAULT_TIMEOUT,
    DOWNLOAD_LEG_SIZES,
    UPLOAD_LEG_SIZES,
)

logger = logging.getLogger(__name__)

_CONFIG_DIR = os.path.join(Path.home(), ".speedlog")
_CONFIG_FILE = "config.json"


def _config_path() -> str:
    return os.path.join(_CONFIG_DIR, _CONFIG_FILE)


# ---------------------------------------------------------------------------
# Defaults
# ---------------------------------------------------------------------------

DEFAULTS: Dict[str, Any] = {
    "server_url": DEFAULT_SERVER_URL,
    "server_label": "",
    "ping_attempts": DEFAULT_PING_ATTEMPTS,
    "ping_interval_ms": DEFAULT_PING_INTERVAL_MS,
    "timeout": DEFAULT_TIMEOUT,
    "upload_timing": "server",
    "download_legs": list(DOWNLOAD_LEG_SIZES),
    "upload_legs": list(UPLOAD_LEG_SIZES),
    "user": "",
    "csv_file": "",
}


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
    except (json.JSONDecodeError, IOError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", path, exc)

    return config


def save_config(config: Dict[str, Any]) -> str:
    """Write *config* to disk.  Returns the file path."""
    path = _config_path()
    os.makedirs(os.path.dirname(path), exist_ok=True)

    with open(path, "w", encoding="utf-8") as fh:
        json.dump(config, fh, indent=2, ensure_ascii=False)

    return path


def get_config_value(key: str) -> Any:
    """Get a single config value."""
    return load_config().get(key, DEFAULTS.get(key))


def set_config_value(key: str, value: Any) -> str:
    """Set a single config value and persist.  Returns file path."""
    config = load_config()
    config[key] = value
    return save_config(config)


def config_path() -> str:
    """Return the config file path (for display purposes)."""
    return _config_path()

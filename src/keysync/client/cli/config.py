"""Configuration utilities for the keysync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from keysync.core.config import SyncConfig

TOKEN_ENV_VAR = "KEYSYNC_DRIVE_TOKEN"


def get_config_dir() -> Path:
    """Get the configuration directory for keysync.

    Returns:
        Path to ~/.keysync or equivalent.
    """
    return Path.home() / ".keysync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_data_dir() -> Path:
    """Get the local data directory.

    Returns:
        Path to the data directory (configured or default ~/.keysync/data).
    """
    config = load_config()
    if config.get("data_dir"):
        return Path(config["data_dir"]).expanduser().resolve()
    return get_config_dir() / "data"


def get_drive_token() -> str | None:
    """Get the Drive access token from the environment or the config file."""
    return os.environ.get(TOKEN_ENV_VAR) or load_config().get("drive_token")


def build_sync_config() -> SyncConfig:
    """Build the engine configuration from the config file.

    Raises:
        ValueError: If a configured value is out of range.
    """
    config = load_config()
    kwargs: dict[str, Any] = {}
    for key in (
        "debounce_seconds",
        "poll_interval",
        "tombstone_ttl_days",
        "auto_sync",
        "keyring_service",
        "drive_timeout",
    ):
        if key in config:
            kwargs[key] = config[key]
    return SyncConfig(data_dir=get_data_dir(), **kwargs)

"""Shared configuration classes for keysync.

This module defines the configuration used by the sync engine and the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path


@dataclass
class SyncConfig:
    """Configuration for a SyncEngine.

    Attributes:
        data_dir: Root of the local state tree (holds the ``sync/`` folder).
        debounce_seconds: Quiet period before pending local changes are uploaded.
        poll_interval: Seconds between remote polls.
        tombstone_ttl_days: Retention window for deleted entries.
        auto_sync: Whether debounced uploads run at all.
        keyring_service: Service name for the OS keyring password cache.
        drive_timeout: Remote store request timeout in seconds.
    """

    data_dir: Path
    debounce_seconds: float = 10.0
    poll_interval: float = 180.0
    tombstone_ttl_days: int = 30
    auto_sync: bool = True
    keyring_service: str = "keysync"
    drive_timeout: float = 30.0

    def __post_init__(self) -> None:
        """Normalize paths and validate intervals."""
        self.data_dir = Path(self.data_dir).expanduser()
        if self.debounce_seconds < 0:
            raise ValueError("debounce_seconds must be >= 0")
        if self.poll_interval <= 0:
            raise ValueError("poll_interval must be > 0")
        if self.tombstone_ttl_days <= 0:
            raise ValueError("tombstone_ttl_days must be > 0")

    @property
    def tombstone_ttl(self) -> timedelta:
        """Tombstone retention window."""
        return timedelta(days=self.tombstone_ttl_days)

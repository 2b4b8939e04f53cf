"""Shared types for keysync.

This module defines enums used by the engine, the CLI and progress listeners,
plus the timestamp format written into documents and envelopes.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum


def now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class SyncState(str, Enum):
    """State of the sync engine.

    The engine is either idle or running exactly one sync pass.
    """

    IDLE = "idle"
    SYNCING = "syncing"


class SyncDirection(str, Enum):
    """Direction of a sync pass."""

    UPLOAD = "upload"
    DOWNLOAD = "download"


class SyncStatus(str, Enum):
    """Status carried by a progress event."""

    SYNCING = "syncing"
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"

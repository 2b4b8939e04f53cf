"""Domain modules for sync business rules.

This package centralizes the pure merge logic of the sync system:
- merge: per-entry last-writer-wins with tombstones, settings LWW

Architecture:
    domain/ contains pure business logic without I/O.
    Reading and writing local files stays in bundle.py.
"""

from keysync.client.sync.domain.merge import (
    TOMBSTONE_TTL,
    MergeResult,
    SettingsDecision,
    effective_time,
    gc_tombstones,
    is_tombstone,
    merge_entries,
    merge_settings,
    safe_timestamp,
    settings_timestamp,
)

__all__ = [
    "TOMBSTONE_TTL",
    "MergeResult",
    "SettingsDecision",
    "effective_time",
    "gc_tombstones",
    "is_tombstone",
    "merge_entries",
    "merge_settings",
    "safe_timestamp",
    "settings_timestamp",
]

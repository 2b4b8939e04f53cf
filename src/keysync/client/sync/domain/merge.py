"""Entry-level merge rules.

Index based units (favorites, snapshots) merge as a set union keyed by
entry id, with last-writer-wins per entry:

    | Local      | Remote     | Result                  | Remote needs update |
    |------------|------------|-------------------------|---------------------|
    | present    | absent     | local entry             | yes                 |
    | absent     | present    | remote entry (copy file)| no                  |
    | newer      | older      | local entry             | yes                 |
    | older      | newer      | remote entry (copy file)| no                  |
    | same time  | same time  | remote entry (copy file)| no                  |

The effective time of an entry is ``updatedAt`` when present, else
``savedAt``. Deleted entries are tombstones (``deletedAt`` set) and win or
lose like any other entry; they are dropped on both sides once older than
the retention window, before merging.

Settings units are single documents compared on ``_updatedAt``.
Unparsable timestamps count as epoch zero and lose every comparison.
"""

from __future__ import annotations

import json
import time
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Any

from keysync.client.sync.types import Entry

TOMBSTONE_TTL = timedelta(days=30)


@dataclass
class MergeResult:
    """Result of merging two entry lists."""

    entries: list[Entry] = field(default_factory=list)
    remote_files_to_copy: list[str] = field(default_factory=list)
    remote_needs_update: bool = False


@dataclass(frozen=True)
class SettingsDecision:
    """Result of comparing two settings documents."""

    write_remote: bool  # remote is newer: overwrite local
    remote_needs_update: bool  # local is newer: upload


def safe_timestamp(value: Any) -> float:
    """Parse an ISO 8601 timestamp to POSIX seconds.

    Naive timestamps are taken as UTC. Missing or invalid values give 0.
    """
    if not value or not isinstance(value, str):
        return 0.0
    try:
        parsed = datetime.fromisoformat(value)
    except ValueError:
        return 0.0
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed.timestamp()


def effective_time(entry: Entry) -> float:
    """Ordering time of an entry: updatedAt if present, else savedAt."""
    return safe_timestamp(entry.get("updatedAt") or entry.get("savedAt"))


def is_tombstone(entry: Entry) -> bool:
    """Whether the entry has been deleted."""
    return bool(entry.get("deletedAt"))


def gc_tombstones(
    entries: Iterable[Entry],
    now: float | None = None,
    ttl: timedelta = TOMBSTONE_TTL,
) -> list[Entry]:
    """Drop tombstones older than the retention window.

    Args:
        entries: Index entries.
        now: Current POSIX time (defaults to time.time()).
        ttl: Retention window.

    Returns:
        Live entries plus tombstones still inside the window.
    """
    current = time.time() if now is None else now
    limit = ttl.total_seconds()
    return [
        entry
        for entry in entries
        if not is_tombstone(entry)
        or current - safe_timestamp(entry.get("deletedAt")) < limit
    ]


def merge_entries(
    local: Iterable[Entry],
    remote: Iterable[Entry],
    now: float | None = None,
    ttl: timedelta = TOMBSTONE_TTL,
) -> MergeResult:
    """Merge local and remote entries of one sync unit.

    Both sides are tombstone-collected first so that an expired tombstone
    present on one side only does not keep forcing uploads.

    Returns:
        MergeResult with the merged entries (newest first), the data files
        to copy from the remote bundle, and whether remote must be updated.
    """
    local_map = {entry["id"]: entry for entry in gc_tombstones(local, now, ttl)}
    remote_map = {entry["id"]: entry for entry in gc_tombstones(remote, now, ttl)}

    result = MergeResult()

    for entry_id in local_map.keys() | remote_map.keys():
        local_entry = local_map.get(entry_id)
        remote_entry = remote_map.get(entry_id)

        if local_entry is not None and (
            remote_entry is None or effective_time(local_entry) > effective_time(remote_entry)
        ):
            result.entries.append(local_entry)
            result.remote_needs_update = True
            continue

        # Remote only, remote newer, or a tie
        remote_winner: Entry = remote_entry  # type: ignore[assignment]
        result.entries.append(remote_winner)
        if not is_tombstone(remote_winner):
            result.remote_files_to_copy.append(remote_winner["filename"])

    result.entries.sort(key=lambda e: (effective_time(e), str(e["id"])), reverse=True)
    return result


def settings_timestamp(raw: str | None) -> float:
    """Extract ``_updatedAt`` from a raw settings document (0 if unusable)."""
    if raw is None:
        return 0.0
    try:
        data = json.loads(raw)
    except ValueError:
        return 0.0
    if not isinstance(data, dict):
        return 0.0
    return safe_timestamp(data.get("_updatedAt"))


def merge_settings(local_raw: str | None, remote_raw: str | None) -> SettingsDecision:
    """Whole-document last-writer-wins for settings units.

    Args:
        local_raw: Local settings file content (None if absent).
        remote_raw: Remote settings content from the bundle (None if absent).
    """
    if remote_raw is None:
        return SettingsDecision(write_remote=False, remote_needs_update=False)

    local_time = settings_timestamp(local_raw)
    remote_time = settings_timestamp(remote_raw)

    if remote_time > local_time or (local_raw is None and remote_time == local_time):
        return SettingsDecision(write_remote=True, remote_needs_update=False)
    return SettingsDecision(write_remote=False, remote_needs_update=local_time > remote_time)

"""Bundle codec: pack sync units from local disk and merge them back.

This module provides:
- bundle_sync_unit: Build the plaintext Bundle of a unit from local disk
- merge_sync_unit: Reconcile a downloaded Bundle into local disk
- export_local_data / import_local_data: Portable export of every unit

Bundles are rebuilt from disk on every upload. Tombstones past the
retention window are collected before bundling so an upload never
resurrects an expired deletion.
"""

from __future__ import annotations

import json
import logging
from datetime import timedelta
from typing import Any

from keysync.client.sync.domain.merge import (
    TOMBSTONE_TTL,
    gc_tombstones,
    merge_entries,
    merge_settings,
    settings_timestamp,
)
from keysync.client.sync.layout import (
    INDEX_FILENAME,
    SETTINGS_FILENAME,
    LocalLayout,
    is_safe_filename,
)
from keysync.client.sync.types import Bundle, Entry
from keysync.client.sync.units import UnitKind, is_safe_key, parse_sync_unit
from keysync.core.types import now_iso

logger = logging.getLogger(__name__)

EXPORT_VERSION = 1

_BUNDLE_CATEGORIES = {
    "favorite": "favorites",
    "layout": "snapshots",
    "settings": "settings",
}


def _safe_entries(entries: list[Entry], unit: str) -> list[Entry]:
    """Drop entries without an id or whose filename escapes the unit directory."""
    safe: list[Entry] = []
    for entry in entries:
        if not isinstance(entry, dict) or not entry.get("id"):
            logger.warning("Skipping malformed entry in %s", unit)
            continue
        if not is_safe_filename(entry.get("filename")):
            logger.warning("Skipping entry %s in %s: unsafe filename", entry.get("id"), unit)
            continue
        safe.append(entry)
    return safe


def bundle_sync_unit(
    layout: LocalLayout,
    unit: str,
    ttl: timedelta = TOMBSTONE_TTL,
) -> Bundle | None:
    """Build the bundle of a sync unit from local disk.

    Args:
        layout: Local data layout.
        unit: Sync unit identifier.
        ttl: Tombstone retention window.

    Returns:
        The bundle, or None if the unit has no local data.
    """
    parsed = parse_sync_unit(unit)

    if parsed.is_settings:
        content = layout.read_settings(parsed.key)
        if content is None:
            return None
        return Bundle(
            type="settings",
            key=parsed.key,
            index={"uid": parsed.key, "entries": []},
            files={SETTINGS_FILENAME: content},
        )

    directory = layout.unit_dir(parsed)
    index = layout.read_index(directory)
    if index is None:
        return None

    index["entries"] = gc_tombstones(_safe_entries(index["entries"], unit), ttl=ttl)

    files: dict[str, str] = {}
    for entry in index["entries"]:
        if entry.get("deletedAt"):
            continue
        content = layout.read_entry_file(directory, entry["filename"])
        if content is None:
            logger.debug("Data file %s of %s is missing, skipping", entry["filename"], unit)
            continue
        files[entry["filename"]] = content

    files[INDEX_FILENAME] = json.dumps(index, indent=2)

    bundle_type = "favorite" if parsed.kind is UnitKind.FAVORITES else "layout"
    return Bundle(type=bundle_type, key=parsed.key, index=index, files=files)


def merge_sync_unit(
    layout: LocalLayout,
    unit: str,
    remote: Bundle,
    ttl: timedelta = TOMBSTONE_TTL,
) -> bool:
    """Merge a downloaded bundle into local disk.

    Args:
        layout: Local data layout.
        unit: Sync unit the bundle belongs to.
        remote: Decrypted remote bundle.
        ttl: Tombstone retention window.

    Returns:
        True if the remote copy is missing something local has (upload needed).
    """
    parsed = parse_sync_unit(unit)

    if parsed.is_settings:
        remote_content = remote.files.get(SETTINGS_FILENAME)
        decision = merge_settings(layout.read_settings(parsed.key), remote_content)
        if decision.write_remote and remote_content is not None:
            layout.write_settings_raw(parsed.key, remote_content)
            logger.debug("Settings of %s replaced by remote copy", parsed.key)
        return decision.remote_needs_update

    directory = layout.unit_dir(parsed)
    directory.mkdir(parents=True, exist_ok=True)

    local_index = layout.read_index(directory)
    local_entries = _safe_entries(local_index["entries"], unit) if local_index else []
    remote_entries = _safe_entries(remote.entries, unit)

    result = merge_entries(local_entries, remote_entries, ttl=ttl)

    for filename in result.remote_files_to_copy:
        content = remote.files.get(filename)
        if content is not None:
            layout.write_entry_file(directory, filename, content)

    base = local_index if local_index is not None else {**layout.empty_index(parsed), **remote.index}
    layout.write_index(directory, {**base, "entries": result.entries})

    logger.debug(
        "Merged %s: %d entries, %d files copied, remote update=%s",
        unit,
        len(result.entries),
        len(result.remote_files_to_copy),
        result.remote_needs_update,
    )
    return result.remote_needs_update


def export_local_data(layout: LocalLayout) -> dict[str, Any]:
    """Export every local sync unit as a portable document.

    Returns:
        ``{version, exportedAt, favorites, snapshots, settings}`` where each
        category maps a key to ``{index, files}``.
    """
    categories: dict[str, dict[str, Any]] = {"favorites": {}, "snapshots": {}, "settings": {}}
    for unit in layout.collect_all_sync_units():
        bundle = bundle_sync_unit(layout, unit)
        if bundle is None:
            continue
        categories[_BUNDLE_CATEGORIES[bundle.type]][bundle.key] = {
            "index": bundle.index,
            "files": bundle.files,
        }
    return {"version": EXPORT_VERSION, "exportedAt": now_iso(), **categories}


def _import_entries(
    layout: LocalLayout,
    unit: str,
    data: Any,
) -> bool:
    """Add imported entries that are missing locally or only tombstoned."""
    if not isinstance(data, dict):
        return False
    index = data.get("index")
    files = data.get("files")
    if not isinstance(index, dict) or not isinstance(files, dict):
        return False

    parsed = parse_sync_unit(unit)
    directory = layout.unit_dir(parsed)
    local_index = layout.read_index(directory) or layout.empty_index(parsed)
    local_entries: list[Entry] = local_index["entries"]
    positions = {entry.get("id"): i for i, entry in enumerate(local_entries)}
    changed = False

    for entry in _safe_entries(list(index.get("entries") or []), unit):
        position = positions.get(entry["id"])
        if position is not None and not local_entries[position].get("deletedAt"):
            continue
        if position is not None:
            local_entries[position] = entry
        else:
            local_entries.append(entry)
        content = files.get(entry["filename"])
        if isinstance(content, str):
            layout.write_entry_file(directory, entry["filename"], content)
        changed = True

    if changed:
        layout.write_index(directory, local_index)
    return changed


def import_local_data(layout: LocalLayout, data: Any) -> list[str]:
    """Import a document produced by export_local_data.

    Entries are added when missing locally (or only present as tombstones);
    settings documents replace local ones only when strictly newer.

    Returns:
        Sync units that changed (to be reported to the change debouncer).

    Raises:
        ValueError: If the document is not a supported export.
    """
    if not isinstance(data, dict):
        raise ValueError("Invalid export file format")
    if data.get("version") != EXPORT_VERSION:
        raise ValueError("Unsupported export version")

    changed: list[str] = []

    for uid, bundle in _category(data, "snapshots"):
        unit = f"keyboards/{uid}/snapshots"
        if _import_entries(layout, unit, bundle):
            changed.append(unit)

    for uid, bundle in _category(data, "settings"):
        files = bundle.get("files") if isinstance(bundle, dict) else None
        content = files.get(SETTINGS_FILENAME) if isinstance(files, dict) else None
        if not isinstance(content, str):
            continue
        local = layout.read_settings(uid)
        if local is None or settings_timestamp(content) > settings_timestamp(local):
            layout.write_settings_raw(uid, content)
            changed.append(f"keyboards/{uid}/settings")

    for favorite_type, bundle in _category(data, "favorites"):
        unit = f"favorites/{favorite_type}"
        if _import_entries(layout, unit, bundle):
            changed.append(unit)

    logger.info("Imported %d sync unit(s)", len(changed))
    return changed


def _category(data: dict[str, Any], name: str) -> list[tuple[str, Any]]:
    """Items of an export category whose keys are safe path segments."""
    category = data.get(name)
    if not isinstance(category, dict):
        return []
    return [(key, value) for key, value in category.items() if is_safe_key(key)]

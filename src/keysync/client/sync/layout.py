"""Local on-disk layout of synchronized data.

Layout under ``data_dir``::

    sync/
      favorites/{type}/index.json            favorites index
      favorites/{type}/{filename}            one file per entry
      keyboards/{uid}/pipette_settings.json  settings document
      keyboards/{uid}/snapshots/index.json   snapshots index
      keyboards/{uid}/snapshots/{filename}   one file per snapshot

The sync engine only reads and writes through this class. The mutation
helpers (save_entry, tombstone_entry, write_settings) are what UI-level
stores use; they stamp ``updatedAt`` / ``_updatedAt`` so that the merge
engine can order edits.
"""

from __future__ import annotations

import json
import logging
import re
import shutil
import uuid
from pathlib import Path
from typing import Any

from keysync.client.sync.types import Entry
from keysync.client.sync.units import FAVORITE_TYPES, SyncUnit, UnitKind, parse_sync_unit
from keysync.core.types import now_iso

logger = logging.getLogger(__name__)

INDEX_FILENAME = "index.json"
SETTINGS_FILENAME = "pipette_settings.json"

_SAFE_FILENAME_RE = re.compile(r"^[\w.()-]+$")


def is_safe_filename(filename: Any) -> bool:
    """Check that an entry filename stays inside its unit directory."""
    if not isinstance(filename, str) or filename in (".", ".."):
        return False
    return bool(_SAFE_FILENAME_RE.match(filename))


class LocalLayout:
    """Reads and writes sync units on local disk."""

    def __init__(self, data_dir: Path) -> None:
        """Initialize the layout.

        Args:
            data_dir: Root of the local state tree.
        """
        self._data_dir = Path(data_dir)

    @property
    def sync_dir(self) -> Path:
        """Directory holding every synchronized unit."""
        return self._data_dir / "sync"

    def unit_dir(self, unit: str | SyncUnit) -> Path:
        """Directory of a sync unit (the keyboard directory for settings)."""
        parsed = parse_sync_unit(unit) if isinstance(unit, str) else unit
        if parsed.kind is UnitKind.FAVORITES:
            return self.sync_dir / "favorites" / parsed.key
        keyboard_dir = self.sync_dir / "keyboards" / parsed.key
        if parsed.kind is UnitKind.SNAPSHOTS:
            return keyboard_dir / "snapshots"
        return keyboard_dir

    def settings_path(self, uid: str) -> Path:
        """Path of a keyboard's settings document."""
        return self.unit_dir(f"keyboards/{uid}/settings") / SETTINGS_FILENAME

    # === Index files ===

    def read_index(self, directory: Path) -> dict[str, Any] | None:
        """Read an index.json file.

        Returns:
            The index, or None if it is missing or corrupt.
        """
        try:
            data = json.loads((directory / INDEX_FILENAME).read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Ignoring unreadable index in %s: %s", directory, e)
            return None
        if not isinstance(data, dict) or not isinstance(data.get("entries"), list):
            logger.warning("Ignoring malformed index in %s", directory)
            return None
        return data

    def write_index(self, directory: Path, index: dict[str, Any]) -> None:
        """Write an index.json file, creating the directory if needed."""
        directory.mkdir(parents=True, exist_ok=True)
        (directory / INDEX_FILENAME).write_text(json.dumps(index, indent=2), encoding="utf-8")

    def empty_index(self, unit: SyncUnit) -> dict[str, Any]:
        """Fresh index document for a unit."""
        if unit.kind is UnitKind.FAVORITES:
            return {"type": unit.key, "entries": []}
        return {"uid": unit.key, "entries": []}

    # === Entry data files ===

    def read_entry_file(self, directory: Path, filename: str) -> str | None:
        """Read an entry data file, or None if missing or unsafe."""
        if not is_safe_filename(filename):
            logger.warning("Refusing unsafe entry filename %r", filename)
            return None
        try:
            return (directory / filename).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write_entry_file(self, directory: Path, filename: str, content: str) -> None:
        """Write an entry data file.

        Raises:
            ValueError: If the filename would escape the directory.
        """
        if not is_safe_filename(filename):
            raise ValueError(f"Invalid filename: {filename!r}")
        directory.mkdir(parents=True, exist_ok=True)
        (directory / filename).write_text(content, encoding="utf-8")

    # === Settings ===

    def read_settings(self, uid: str) -> str | None:
        """Raw settings document of a keyboard, or None if absent."""
        try:
            return self.settings_path(uid).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def write_settings_raw(self, uid: str, content: str) -> None:
        """Overwrite a keyboard's settings document verbatim."""
        path = self.settings_path(uid)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    def write_settings(self, uid: str, settings: dict[str, Any]) -> dict[str, Any]:
        """Save a keyboard's settings, stamping ``_updatedAt``.

        Returns:
            The document as written.
        """
        document = {**settings, "_updatedAt": now_iso()}
        self.write_settings_raw(uid, json.dumps(document, indent=2))
        return document

    # === Unit enumeration ===

    def collect_all_sync_units(self) -> list[str]:
        """List every local sync unit.

        Every favorite type is always included; keyboards are included for
        each settings document and snapshots index found on disk.
        """
        units = [f"favorites/{favorite_type}" for favorite_type in FAVORITE_TYPES]

        keyboards_dir = self.sync_dir / "keyboards"
        if not keyboards_dir.is_dir():
            return units

        for keyboard_dir in sorted(keyboards_dir.iterdir()):
            if not keyboard_dir.is_dir():
                continue
            uid = keyboard_dir.name
            if (keyboard_dir / SETTINGS_FILENAME).is_file():
                units.append(f"keyboards/{uid}/settings")
            if (keyboard_dir / "snapshots" / INDEX_FILENAME).is_file():
                units.append(f"keyboards/{uid}/snapshots")

        return units

    # === Local mutations ===

    def list_entries(self, unit: str) -> list[Entry]:
        """Live (non-deleted) entries of an index based unit."""
        index = self.read_index(self.unit_dir(unit))
        if index is None:
            return []
        return [entry for entry in index["entries"] if not entry.get("deletedAt")]

    def save_entry(
        self,
        unit: str,
        label: str,
        content: str,
        entry_id: str | None = None,
    ) -> Entry:
        """Create or update an entry and its data file.

        Args:
            unit: Index based sync unit.
            label: User label.
            content: Entry data file content.
            entry_id: Existing entry to update (None creates a new entry).

        Returns:
            The saved entry.

        Raises:
            ValueError: For settings units or unknown / deleted entry ids.
        """
        parsed = parse_sync_unit(unit)
        if parsed.is_settings:
            raise ValueError("Settings units have no entries")

        directory = self.unit_dir(parsed)
        index = self.read_index(directory) or self.empty_index(parsed)
        now = now_iso()

        if entry_id is None:
            new_id = str(uuid.uuid4())
            entry: Entry = {
                "id": new_id,
                "label": label,
                "filename": f"{parsed.key}_{new_id}.json",
                "savedAt": now,
                "updatedAt": now,
            }
            index["entries"].insert(0, entry)
        else:
            found = next((e for e in index["entries"] if e.get("id") == entry_id), None)
            if found is None or found.get("deletedAt"):
                raise ValueError(f"Entry not found: {entry_id}")
            found["label"] = label
            found["updatedAt"] = now
            entry = found

        self.write_entry_file(directory, entry["filename"], content)
        self.write_index(directory, index)
        return entry

    def tombstone_entry(self, unit: str, entry_id: str) -> bool:
        """Mark an entry deleted so the deletion can propagate.

        Returns:
            True if a live entry was tombstoned.
        """
        directory = self.unit_dir(unit)
        index = self.read_index(directory)
        if index is None:
            return False

        for entry in index["entries"]:
            if entry.get("id") == entry_id and not entry.get("deletedAt"):
                now = now_iso()
                entry["deletedAt"] = now
                entry["updatedAt"] = now
                self.write_index(directory, index)
                return True
        return False

    def remove_keyboard(self, uid: str) -> None:
        """Delete all local data of one keyboard.

        Raises:
            ValueError: If the uid is not a safe path segment.
        """
        unit = parse_sync_unit(f"keyboards/{uid}/settings")
        shutil.rmtree(self.unit_dir(unit), ignore_errors=True)

    def remove_all(self, keyboards: bool = False, favorites: bool = False) -> None:
        """Delete local keyboard and/or favorites data."""
        if keyboards:
            shutil.rmtree(self.sync_dir / "keyboards", ignore_errors=True)
        if favorites:
            shutil.rmtree(self.sync_dir / "favorites", ignore_errors=True)

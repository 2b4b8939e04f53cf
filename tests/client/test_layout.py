"""Tests for the local data layout."""

from __future__ import annotations

import json

import pytest

from keysync.client.sync.layout import (
    INDEX_FILENAME,
    SETTINGS_FILENAME,
    LocalLayout,
    is_safe_filename,
)


class TestPaths:
    """Tests for unit directories."""

    def test_unit_dirs(self, layout: LocalLayout) -> None:
        """Each unit kind has its own directory."""
        sync_dir = layout.sync_dir
        assert layout.unit_dir("favorites/macro") == sync_dir / "favorites" / "macro"
        assert layout.unit_dir("keyboards/k1/snapshots") == sync_dir / "keyboards" / "k1" / "snapshots"
        assert layout.settings_path("k1") == sync_dir / "keyboards" / "k1" / SETTINGS_FILENAME

    @pytest.mark.parametrize(
        "filename, safe",
        [
            ("macro_abc.json", True),
            ("layout (1).json", False),
            ("snap(1).json", True),
            ("..", False),
            (".", False),
            ("../escape.json", False),
            ("a/b.json", False),
            (None, False),
        ],
    )
    def test_is_safe_filename(self, filename: object, safe: bool) -> None:
        """Only single safe path segments are accepted."""
        assert is_safe_filename(filename) is safe


class TestIndexFiles:
    """Tests for index reading."""

    def test_missing_index(self, layout: LocalLayout) -> None:
        """A missing index reads as None."""
        assert layout.read_index(layout.unit_dir("favorites/macro")) is None

    def test_corrupt_index(self, layout: LocalLayout) -> None:
        """A corrupt index reads as None instead of raising."""
        directory = layout.unit_dir("favorites/macro")
        directory.mkdir(parents=True)
        (directory / INDEX_FILENAME).write_text("{broken")
        assert layout.read_index(directory) is None

    def test_index_without_entries(self, layout: LocalLayout) -> None:
        """An index without an entries list is malformed."""
        directory = layout.unit_dir("favorites/macro")
        layout.write_index(directory, {"type": "macro"})
        assert layout.read_index(directory) is None

    def test_unsafe_entry_file_is_refused(self, layout: LocalLayout) -> None:
        """Unsafe filenames are never read or written."""
        directory = layout.unit_dir("favorites/macro")
        assert layout.read_entry_file(directory, "../secret") is None
        with pytest.raises(ValueError, match="Invalid filename"):
            layout.write_entry_file(directory, "../secret", "x")


class TestMutations:
    """Tests for local mutation helpers."""

    def test_save_new_entry(self, layout: LocalLayout) -> None:
        """Saving creates the index entry and its data file."""
        saved = layout.save_entry("favorites/macro", "My macro", '{"keys": []}')

        assert saved["filename"] == f"macro_{saved['id']}.json"
        assert saved["savedAt"] == saved["updatedAt"]
        directory = layout.unit_dir("favorites/macro")
        assert (directory / saved["filename"]).read_text() == '{"keys": []}'
        assert layout.list_entries("favorites/macro") == [saved]

    def test_update_entry_bumps_updated_at(self, layout: LocalLayout) -> None:
        """Updating keeps the id and bumps updatedAt."""
        saved = layout.save_entry("favorites/macro", "v1", "{}")
        saved_at = saved["savedAt"]

        updated = layout.save_entry("favorites/macro", "v2", "{}", entry_id=saved["id"])

        assert updated["id"] == saved["id"]
        assert updated["label"] == "v2"
        assert updated["savedAt"] == saved_at
        assert updated["updatedAt"] >= saved_at

    def test_update_unknown_entry_fails(self, layout: LocalLayout) -> None:
        """Updating a missing entry raises ValueError."""
        with pytest.raises(ValueError, match="not found"):
            layout.save_entry("favorites/macro", "x", "{}", entry_id="missing")

    def test_tombstone_entry(self, layout: LocalLayout) -> None:
        """Deleting keeps a tombstone in the index."""
        saved = layout.save_entry("keyboards/k1/snapshots", "Layout", "{}")

        assert layout.tombstone_entry("keyboards/k1/snapshots", saved["id"])
        assert not layout.tombstone_entry("keyboards/k1/snapshots", saved["id"])

        index = layout.read_index(layout.unit_dir("keyboards/k1/snapshots"))
        assert index is not None
        assert index["entries"][0]["deletedAt"] == index["entries"][0]["updatedAt"]
        assert layout.list_entries("keyboards/k1/snapshots") == []

    def test_write_settings_stamps_updated_at(self, layout: LocalLayout) -> None:
        """Settings writes carry an _updatedAt stamp."""
        document = layout.write_settings("k1", {"layers": 4})
        stored = json.loads(layout.read_settings("k1") or "")
        assert stored == document
        assert stored["_updatedAt"].endswith("Z")

    def test_collect_all_sync_units(self, layout: LocalLayout) -> None:
        """Every favorite type plus each keyboard's present units."""
        layout.write_settings("k2", {})
        layout.save_entry("keyboards/k1/snapshots", "s", "{}")
        (layout.sync_dir / "keyboards" / "empty").mkdir(parents=True)

        units = layout.collect_all_sync_units()

        assert units == [
            "favorites/tapDance",
            "favorites/macro",
            "favorites/combo",
            "favorites/keyOverride",
            "favorites/altRepeatKey",
            "keyboards/k1/snapshots",
            "keyboards/k2/settings",
        ]

    def test_remove_keyboard(self, layout: LocalLayout) -> None:
        """Removing a keyboard deletes its directory only."""
        layout.write_settings("k1", {})
        layout.write_settings("k2", {})
        layout.remove_keyboard("k1")
        assert layout.read_settings("k1") is None
        assert layout.read_settings("k2") is not None

    def test_remove_keyboard_rejects_unsafe_uid(self, layout: LocalLayout) -> None:
        """Path traversal through the uid is refused."""
        with pytest.raises(ValueError):
            layout.remove_keyboard("..")

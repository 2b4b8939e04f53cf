"""Tests for sync unit naming and scopes."""

from __future__ import annotations

import pytest

from keysync.client.sync.units import (
    KeyboardScope,
    SyncUnit,
    UnitKind,
    matches_scope,
    parse_sync_unit,
    remote_file_name,
    sync_unit_from_file_name,
)


class TestParseSyncUnit:
    """Tests for parse_sync_unit."""

    @pytest.mark.parametrize(
        "unit, expected",
        [
            ("favorites/tapDance", SyncUnit(UnitKind.FAVORITES, "tapDance")),
            ("keyboards/0x1234/settings", SyncUnit(UnitKind.SETTINGS, "0x1234")),
            ("keyboards/kb-1/snapshots", SyncUnit(UnitKind.SNAPSHOTS, "kb-1")),
        ],
    )
    def test_valid_units(self, unit: str, expected: SyncUnit) -> None:
        """Valid units parse and print back unchanged."""
        parsed = parse_sync_unit(unit)
        assert parsed == expected
        assert str(parsed) == unit

    @pytest.mark.parametrize(
        "unit",
        [
            "favorites",
            "favorites/a/b",
            "keyboards/x/other",
            "keyboards/../settings",
            "favorites/..",
            "favorites/a b",
            "layouts/x",
        ],
    )
    def test_invalid_units(self, unit: str) -> None:
        """Unknown shapes and unsafe keys are rejected."""
        with pytest.raises(ValueError):
            parse_sync_unit(unit)


class TestRemoteNames:
    """Tests for unit <-> remote object name mapping."""

    @pytest.mark.parametrize(
        "unit, name",
        [
            ("favorites/tapDance", "favorites_tapDance.enc"),
            ("keyboards/0x1234/settings", "keyboards_0x1234_settings.enc"),
            ("keyboards/0x1234/snapshots", "keyboards_0x1234_snapshots.enc"),
        ],
    )
    def test_name_mapping(self, unit: str, name: str) -> None:
        """Units map 1:1 to object names."""
        assert remote_file_name(unit) == name
        assert sync_unit_from_file_name(name) == unit

    def test_uid_with_underscore(self) -> None:
        """Keyboard uids containing underscores survive the round trip."""
        name = remote_file_name("keyboards/my_board/snapshots")
        assert sync_unit_from_file_name(name) == "keyboards/my_board/snapshots"

    def test_canary_is_not_a_sync_unit(self) -> None:
        """The password check object has no sync unit."""
        assert sync_unit_from_file_name("password-check.enc") is None

    @pytest.mark.parametrize("name", ["readme.txt", "keyboards_x.enc", "other_thing.enc"])
    def test_unparsable_names(self, name: str) -> None:
        """Foreign object names are ignored."""
        assert sync_unit_from_file_name(name) is None


class TestScopes:
    """Tests for matches_scope."""

    def test_all_scope(self) -> None:
        """The all scope matches every unit."""
        assert matches_scope("favorites/macro", "all")
        assert matches_scope("keyboards/k/settings", "all")

    def test_favorites_scope(self) -> None:
        """The favorites scope matches favorites only."""
        assert matches_scope("favorites/macro", "favorites")
        assert not matches_scope("keyboards/k/settings", "favorites")

    def test_keyboard_scope(self) -> None:
        """Keyboard scope matches that keyboard's units only."""
        scope = KeyboardScope("k1")
        assert matches_scope("keyboards/k1/settings", scope)
        assert matches_scope("keyboards/k1/snapshots", scope)
        assert not matches_scope("keyboards/k10/settings", scope)
        assert not matches_scope("favorites/macro", scope)

    def test_none_unit_never_matches(self) -> None:
        """Undecodable objects are outside every scope."""
        assert not matches_scope(None, "all")

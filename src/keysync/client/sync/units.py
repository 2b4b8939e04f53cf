"""Sync unit identifiers, remote object names, and sync scopes.

A sync unit is one independently synchronized collection:

    favorites/{type}            favorites of one type (index based)
    keyboards/{uid}/settings    one keyboard's settings document
    keyboards/{uid}/snapshots   one keyboard's saved layouts (index based)

Each unit maps 1:1 to a remote object name:

    favorites/tapDance          -> favorites_tapDance.enc
    keyboards/0x1234/settings   -> keyboards_0x1234_settings.enc
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Literal

FAVORITE_TYPES: tuple[str, ...] = ("tapDance", "macro", "combo", "keyOverride", "altRepeatKey")

PASSWORD_CHECK_UNIT = "password-check"
REMOTE_SUFFIX = ".enc"

_KEYBOARD_NAME_RE = re.compile(r"^keyboards_(.+?)_(settings|snapshots)\.enc$")
_FAVORITE_NAME_RE = re.compile(r"^favorites_(.+)\.enc$")
_SAFE_KEY_RE = re.compile(r"^[\w-]+$")


class UnitKind(Enum):
    """Shape of a sync unit."""

    FAVORITES = "favorites"
    SETTINGS = "settings"
    SNAPSHOTS = "snapshots"


@dataclass(frozen=True)
class SyncUnit:
    """Parsed sync unit identifier."""

    kind: UnitKind
    key: str  # favorite type or keyboard uid

    @property
    def is_settings(self) -> bool:
        """Whether this is a single-document settings unit."""
        return self.kind is UnitKind.SETTINGS

    def __str__(self) -> str:
        if self.kind is UnitKind.FAVORITES:
            return f"favorites/{self.key}"
        return f"keyboards/{self.key}/{self.kind.value}"


@dataclass(frozen=True)
class KeyboardScope:
    """Scope restricted to one keyboard's units."""

    uid: str


SyncScope = Literal["all", "favorites"] | KeyboardScope


def is_safe_key(key: str) -> bool:
    """Check that a favorite type or keyboard uid is a single safe path segment."""
    return bool(_SAFE_KEY_RE.match(key)) and ".." not in key


def parse_sync_unit(unit: str) -> SyncUnit:
    """Parse a sync unit string.

    Raises:
        ValueError: If the unit has an unknown shape or an unsafe key.
    """
    parts = unit.split("/")
    if len(parts) == 2 and parts[0] == "favorites":
        parsed = SyncUnit(UnitKind.FAVORITES, parts[1])
    elif len(parts) == 3 and parts[0] == "keyboards" and parts[2] in ("settings", "snapshots"):
        parsed = SyncUnit(UnitKind(parts[2]), parts[1])
    else:
        raise ValueError(f"Invalid sync unit: {unit!r}")

    if not is_safe_key(parsed.key):
        raise ValueError(f"Invalid sync unit key: {unit!r}")
    return parsed


def remote_file_name(unit: str) -> str:
    """Map a sync unit (or the password canary) to its remote object name."""
    return unit.replace("/", "_") + REMOTE_SUFFIX


def sync_unit_from_file_name(name: str) -> str | None:
    """Map a remote object name back to its sync unit.

    Returns:
        The sync unit, or None for the password canary and unparsable names.
    """
    if name == remote_file_name(PASSWORD_CHECK_UNIT):
        return None

    match = _KEYBOARD_NAME_RE.match(name)
    if match:
        return f"keyboards/{match.group(1)}/{match.group(2)}"

    match = _FAVORITE_NAME_RE.match(name)
    if match:
        return f"favorites/{match.group(1)}"

    return None


def matches_scope(unit: str | None, scope: SyncScope) -> bool:
    """Check whether a sync unit falls inside a scope."""
    if unit is None:
        return False
    if scope == "all":
        return True
    if scope == "favorites":
        return unit.startswith("favorites/")
    if isinstance(scope, KeyboardScope):
        return unit.startswith(f"keyboards/{scope.uid}/")
    raise ValueError(f"Invalid sync scope: {scope!r}")

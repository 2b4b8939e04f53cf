"""Shared types and dataclasses for sync operations.

This module provides:
- SyncError and its subclasses: Exception classes of the sync engine
- Bundle: Plaintext payload of one sync unit
- UndecryptableFile: Remote object the current password cannot open
- Entry type alias for index entries
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal

# Index entries are JSON objects:
# {id, label, filename, savedAt, updatedAt?, deletedAt?, ...}
Entry = dict[str, Any]

BundleType = Literal["favorite", "layout", "settings"]


class SyncError(Exception):
    """Base exception for sync errors."""


class PasswordMismatchError(SyncError):
    """The password could not decrypt the remote password canary."""

    def __init__(self) -> None:
        super().__init__("sync.passwordMismatch")


class SyncInProgressError(SyncError):
    """Operation refused because a sync pass is running."""


class NoPasswordError(SyncError):
    """No sync password is cached locally."""


class SamePasswordError(SyncError):
    """New password is identical to the current one."""

    def __init__(self) -> None:
        super().__init__("sync.samePassword")


class UndecryptableFilesError(SyncError):
    """Password change aborted: some remote object cannot be decrypted."""

    def __init__(self, file_name: str) -> None:
        super().__init__("sync.changePasswordUndecryptable")
        self.file_name = file_name


@dataclass
class Bundle:
    """Plaintext payload of a sync unit.

    Attributes:
        type: "favorite", "layout" (snapshots) or "settings".
        key: Favorite type or keyboard uid.
        index: The unit's index document ({type|uid, entries}).
        files: filename -> file content, including "index.json".
    """

    type: BundleType
    key: str
    index: dict[str, Any]
    files: dict[str, str] = field(default_factory=dict)

    @property
    def entries(self) -> list[Entry]:
        """Index entries (empty for settings bundles)."""
        entries = self.index.get("entries", [])
        return list(entries) if isinstance(entries, list) else []

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON payload format."""
        return {
            "type": self.type,
            "key": self.key,
            "index": self.index,
            "files": self.files,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Bundle:
        """Create from the JSON payload format.

        Raises:
            SyncError: If the payload is not a bundle.
        """
        if not isinstance(data, dict):
            raise SyncError("Bundle payload is not an object")
        bundle_type = data.get("type")
        if bundle_type not in ("favorite", "layout", "settings"):
            raise SyncError(f"Unknown bundle type: {bundle_type!r}")
        index = data.get("index")
        files = data.get("files")
        if not isinstance(index, dict) or not isinstance(files, dict):
            raise SyncError("Bundle is missing index or files")
        return cls(
            type=bundle_type,
            key=str(data.get("key", "")),
            index=index,
            files={str(k): str(v) for k, v in files.items()},
        )


@dataclass(frozen=True)
class UndecryptableFile:
    """A remote object that the current password cannot decrypt."""

    file_id: str
    file_name: str
    sync_unit: str | None

"""Encrypted multi-replica synchronization of keyboard configuration data.

Architecture:
    LocalLayout ⇄ Bundle codec ⇄ SyncEngine ⇄ RemoteStore (encrypted objects)

Components:
- **SyncEngine**: Single sync actor; manual passes, debounced uploads,
  polling and password management behind one non-blocking lock
- **PasswordGate**: Canary validation and all-or-nothing password rotation
- **Bundle codec**: Packs a sync unit from disk and merges it back
- **Merge domain**: Pure last-writer-wins merge with tombstones
- **DebounceTimer / PollingThread**: Timing of automatic passes
- **ProgressChannel**: Progress and pending-status notifications

All public symbols are re-exported here.
"""

from keysync.client.sync.bundle import (
    EXPORT_VERSION,
    bundle_sync_unit,
    export_local_data,
    import_local_data,
    merge_sync_unit,
)
from keysync.client.sync.debounce import DebounceTimer
from keysync.client.sync.domain import (
    TOMBSTONE_TTL,
    MergeResult,
    SettingsDecision,
    gc_tombstones,
    merge_entries,
    merge_settings,
)
from keysync.client.sync.engine import SyncEngine
from keysync.client.sync.events import (
    PendingListener,
    ProgressChannel,
    ProgressListener,
    SyncProgress,
)
from keysync.client.sync.gate import (
    PASSWORD_CHECK_FILE,
    PASSWORD_CHECK_PAYLOAD,
    PasswordGate,
)
from keysync.client.sync.layout import (
    INDEX_FILENAME,
    SETTINGS_FILENAME,
    LocalLayout,
)
from keysync.client.sync.poller import PollingThread
from keysync.client.sync.types import (
    Bundle,
    Entry,
    NoPasswordError,
    PasswordMismatchError,
    SamePasswordError,
    SyncError,
    SyncInProgressError,
    UndecryptableFile,
    UndecryptableFilesError,
)
from keysync.client.sync.units import (
    FAVORITE_TYPES,
    PASSWORD_CHECK_UNIT,
    KeyboardScope,
    SyncScope,
    SyncUnit,
    UnitKind,
    matches_scope,
    parse_sync_unit,
    remote_file_name,
    sync_unit_from_file_name,
)

__all__ = [
    # Engine
    "SyncEngine",
    "PasswordGate",
    "PASSWORD_CHECK_FILE",
    "PASSWORD_CHECK_PAYLOAD",
    # Timing
    "DebounceTimer",
    "PollingThread",
    # Events
    "PendingListener",
    "ProgressChannel",
    "ProgressListener",
    "SyncProgress",
    # Bundle codec
    "EXPORT_VERSION",
    "bundle_sync_unit",
    "export_local_data",
    "import_local_data",
    "merge_sync_unit",
    # Merge domain
    "TOMBSTONE_TTL",
    "MergeResult",
    "SettingsDecision",
    "gc_tombstones",
    "merge_entries",
    "merge_settings",
    # Local layout
    "INDEX_FILENAME",
    "SETTINGS_FILENAME",
    "LocalLayout",
    # Sync units
    "FAVORITE_TYPES",
    "PASSWORD_CHECK_UNIT",
    "KeyboardScope",
    "SyncScope",
    "SyncUnit",
    "UnitKind",
    "matches_scope",
    "parse_sync_unit",
    "remote_file_name",
    "sync_unit_from_file_name",
    # Types and errors
    "Bundle",
    "Entry",
    "NoPasswordError",
    "PasswordMismatchError",
    "SamePasswordError",
    "SyncError",
    "SyncInProgressError",
    "UndecryptableFile",
    "UndecryptableFilesError",
]

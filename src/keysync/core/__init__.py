"""Core module - Shared crypto, configuration, and types."""

from keysync.core.config import SyncConfig
from keysync.core.crypto import (
    DecryptionError,
    Envelope,
    decrypt,
    derive_key,
    encrypt,
    generate_salt,
)
from keysync.core.types import SyncDirection, SyncState, SyncStatus, now_iso

__all__ = [
    # Config
    "SyncConfig",
    # Crypto
    "DecryptionError",
    "Envelope",
    "decrypt",
    "derive_key",
    "encrypt",
    "generate_salt",
    # Types
    "SyncDirection",
    "SyncState",
    "SyncStatus",
    "now_iso",
]

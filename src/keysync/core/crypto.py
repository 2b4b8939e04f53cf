"""Envelope encryption for keysync.

This module provides:
- Key derivation using Argon2id
- Authenticated encryption of sync payloads using AES-256-GCM
- The Envelope transport wrapper stored in the remote object store

Every envelope carries its own random salt and nonce, so a password is the
only secret needed to open any object. The envelope version and sync unit
are bound to the ciphertext as additional authenticated data: an envelope
moved under another object's name will not decrypt.
"""

from __future__ import annotations

import base64
import binascii
import os
from dataclasses import dataclass
from typing import Any

from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from keysync.core.types import now_iso

# Argon2id parameters (OWASP recommendations for password hashing)
ARGON2_TIME_COST = 3
ARGON2_MEMORY_COST = 65536  # 64 MiB
ARGON2_PARALLELISM = 4
ARGON2_HASH_LEN = 32  # 256 bits

# AES-GCM constants
NONCE_SIZE = 12  # 96 bits (recommended for AES-GCM)
SALT_SIZE = 16  # 128 bits
TAG_SIZE = 16

ENVELOPE_VERSION = 1


class DecryptionError(Exception):
    """Envelope could not be decrypted (wrong password or corrupt data)."""


@dataclass(frozen=True)
class Envelope:
    """Encrypted transport wrapper placed in the remote store.

    Attributes:
        version: Envelope format version.
        sync_unit: Sync unit the plaintext belongs to (authenticated).
        updated_at: ISO 8601 time the envelope was produced.
        salt: Base64 Argon2id salt.
        iv: Base64 AES-GCM nonce.
        ciphertext: Base64 ciphertext followed by the GCM tag.
    """

    version: int
    sync_unit: str
    updated_at: str
    salt: str
    iv: str
    ciphertext: str

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the JSON wire format."""
        return {
            "version": self.version,
            "syncUnit": self.sync_unit,
            "updatedAt": self.updated_at,
            "salt": self.salt,
            "iv": self.iv,
            "ciphertext": self.ciphertext,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Envelope:
        """Create from the JSON wire format.

        Raises:
            DecryptionError: If required fields are missing.
        """
        try:
            return cls(
                version=int(data["version"]),
                sync_unit=str(data["syncUnit"]),
                updated_at=str(data.get("updatedAt", "")),
                salt=str(data["salt"]),
                iv=str(data["iv"]),
                ciphertext=str(data["ciphertext"]),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise DecryptionError(f"Malformed envelope: {e}") from e


def generate_salt() -> bytes:
    """Generate a cryptographically secure random salt.

    Returns:
        16 bytes of random data for use as salt in key derivation.
    """
    return os.urandom(SALT_SIZE)


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a 256-bit encryption key from a password using Argon2id.

    Args:
        password: The user's sync password.
        salt: A 16-byte random salt (use generate_salt()).

    Returns:
        32 bytes (256 bits) derived key suitable for AES-256.
    """
    return hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=ARGON2_TIME_COST,
        memory_cost=ARGON2_MEMORY_COST,
        parallelism=ARGON2_PARALLELISM,
        hash_len=ARGON2_HASH_LEN,
        type=Type.ID,
    )


def _build_aad(version: int, sync_unit: str) -> bytes:
    return f"{version}:{sync_unit}".encode()


def encrypt(plaintext: str, password: str, sync_unit: str) -> Envelope:
    """Encrypt a plaintext payload for a sync unit.

    Args:
        plaintext: UTF-8 text to encrypt (usually a JSON bundle).
        password: The user's sync password.
        sync_unit: Sync unit identifier bound into the envelope.

    Returns:
        A new Envelope with a fresh salt and nonce.
    """
    salt = generate_salt()
    nonce = os.urandom(NONCE_SIZE)
    key = derive_key(password, salt)
    aad = _build_aad(ENVELOPE_VERSION, sync_unit)
    ciphertext = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), aad)

    return Envelope(
        version=ENVELOPE_VERSION,
        sync_unit=sync_unit,
        updated_at=now_iso(),
        salt=base64.b64encode(salt).decode(),
        iv=base64.b64encode(nonce).decode(),
        ciphertext=base64.b64encode(ciphertext).decode(),
    )


def decrypt(envelope: Envelope, password: str) -> str:
    """Decrypt an envelope produced by encrypt().

    Args:
        envelope: The envelope to open.
        password: The user's sync password.

    Returns:
        Decrypted plaintext.

    Raises:
        DecryptionError: If the password is wrong or the envelope is corrupt.
    """
    try:
        salt = base64.b64decode(envelope.salt, validate=True)
        nonce = base64.b64decode(envelope.iv, validate=True)
        ciphertext = base64.b64decode(envelope.ciphertext, validate=True)
    except (binascii.Error, ValueError) as e:
        raise DecryptionError("Envelope is not valid base64") from e

    if len(ciphertext) < TAG_SIZE:
        raise DecryptionError("Ciphertext too short")
    if len(nonce) != NONCE_SIZE:
        raise DecryptionError("Invalid nonce length")

    key = derive_key(password, salt)
    aad = _build_aad(envelope.version, envelope.sync_unit)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext, aad)
    except InvalidTag as e:
        raise DecryptionError("Invalid password or corrupted envelope") from e

    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted payload is not UTF-8") from e

"""Secure password cache for keysync.

This module provides:
- PasswordStore: keeps the sync password in the OS keyring

The sync password never touches the local disk in clear and is never sent
to the remote store; it only derives envelope keys.
"""

from __future__ import annotations

import logging

import keyring
from keyring.errors import KeyringError, PasswordDeleteError

logger = logging.getLogger(__name__)

KEYRING_SERVICE = "keysync"
KEYRING_USERNAME = "sync-password"


class KeyStoreError(Exception):
    """Exception raised for password cache errors."""


class PasswordStore:
    """Caches the sync password in the OS keyring."""

    def __init__(
        self,
        service: str = KEYRING_SERVICE,
        username: str = KEYRING_USERNAME,
    ) -> None:
        """Initialize the password store.

        Args:
            service: Keyring service name.
            username: Keyring entry name within the service.
        """
        self._service = service
        self._username = username

    def store(self, password: str) -> None:
        """Store (or replace) the sync password.

        Raises:
            KeyStoreError: If the password is empty or the keyring is unavailable.
        """
        if not password:
            raise KeyStoreError("Password must not be empty")
        try:
            keyring.set_password(self._service, self._username, password)
        except KeyringError as e:
            raise KeyStoreError(f"OS keyring is not available: {e}") from e

    def retrieve(self) -> str | None:
        """Get the cached password.

        Returns:
            The password, or None if none is stored or the keyring is unavailable.
        """
        try:
            return keyring.get_password(self._service, self._username)
        except KeyringError as e:
            logger.warning("Could not read password from keyring: %s", e)
            return None

    def has_password(self) -> bool:
        """Check whether a password is cached."""
        return self.retrieve() is not None

    def clear(self) -> None:
        """Remove the cached password (missing entries are ignored)."""
        try:
            keyring.delete_password(self._service, self._username)
        except PasswordDeleteError:
            logger.debug("No cached password to delete")

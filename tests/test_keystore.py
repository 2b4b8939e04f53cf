"""Tests for keystore module - OS keyring password cache."""

from unittest.mock import patch

import pytest
from keyring.errors import KeyringError, PasswordDeleteError

from keysync.client.keystore import (
    KEYRING_SERVICE,
    KEYRING_USERNAME,
    KeyStoreError,
    PasswordStore,
)


class TestPasswordStore:
    """Tests for PasswordStore."""

    def test_store_writes_to_keyring(self) -> None:
        """store() should save the password under the service entry."""
        with patch("keysync.client.keystore.keyring") as mock_keyring:
            PasswordStore().store("secret")
        mock_keyring.set_password.assert_called_once_with(
            KEYRING_SERVICE, KEYRING_USERNAME, "secret"
        )

    def test_store_rejects_empty_password(self) -> None:
        """Empty passwords are refused."""
        with patch("keysync.client.keystore.keyring") as mock_keyring:
            with pytest.raises(KeyStoreError, match="empty"):
                PasswordStore().store("")
        mock_keyring.set_password.assert_not_called()

    def test_store_keyring_failure_raises(self) -> None:
        """Keyring failures on store surface as KeyStoreError."""
        with patch(
            "keysync.client.keystore.keyring.set_password",
            side_effect=KeyringError("no backend"),
        ):
            with pytest.raises(KeyStoreError, match="not available"):
                PasswordStore().store("secret")

    def test_retrieve_returns_password(self) -> None:
        """retrieve() should read the custom service entry."""
        with patch("keysync.client.keystore.keyring") as mock_keyring:
            mock_keyring.get_password.return_value = "secret"
            store = PasswordStore(service="custom")
            assert store.retrieve() == "secret"
            assert store.has_password()
        mock_keyring.get_password.assert_called_with("custom", KEYRING_USERNAME)

    def test_retrieve_keyring_failure_returns_none(self) -> None:
        """Keyring failures on read are reported as 'no password'."""
        with patch(
            "keysync.client.keystore.keyring.get_password",
            side_effect=KeyringError("locked"),
        ):
            store = PasswordStore()
            assert store.retrieve() is None
            assert not store.has_password()

    def test_clear_ignores_missing_entry(self) -> None:
        """Clearing without a stored password should not fail."""
        with patch(
            "keysync.client.keystore.keyring.delete_password",
            side_effect=PasswordDeleteError("missing"),
        ) as mock_delete:
            PasswordStore().clear()
        mock_delete.assert_called_once_with(KEYRING_SERVICE, KEYRING_USERNAME)

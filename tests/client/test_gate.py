"""Tests for the password gate."""

from __future__ import annotations

import json

import pytest
from fakes import FakeStore

from keysync.client.sync.gate import PASSWORD_CHECK_FILE, PASSWORD_CHECK_PAYLOAD, PasswordGate
from keysync.client.sync.types import (
    PasswordMismatchError,
    SamePasswordError,
    UndecryptableFilesError,
)
from keysync.core.crypto import DecryptionError, decrypt, encrypt


def seed(store: FakeStore, password: str, units: list[str]) -> None:
    """Put a canary and one object per unit in the store."""
    store.upload(PASSWORD_CHECK_FILE, encrypt(PASSWORD_CHECK_PAYLOAD, password, "password-check"))
    for unit in units:
        payload = json.dumps({"type": "favorite", "key": unit, "index": {}, "files": {}})
        store.upload(unit.replace("/", "_") + ".enc", encrypt(payload, password, unit))
    store.uploads.clear()


class TestValidate:
    """Tests for canary validation."""

    def test_creates_canary_on_first_use(self, store: FakeStore) -> None:
        """Without a canary, one is created with the password."""
        gate = PasswordGate(store)  # type: ignore[arg-type]

        gate.validate("pw", store.list_files())

        assert gate.validated
        assert store.uploaded_names() == [PASSWORD_CHECK_FILE]
        assert decrypt(store.envelope(PASSWORD_CHECK_FILE), "pw") == PASSWORD_CHECK_PAYLOAD

    def test_accepts_matching_password(self, store: FakeStore) -> None:
        """The right password decrypts the canary, nothing is uploaded."""
        seed(store, "pw", [])
        gate = PasswordGate(store)  # type: ignore[arg-type]

        gate.validate("pw", store.list_files())

        assert gate.validated
        assert store.uploads == []

    def test_rejects_wrong_password(self, store: FakeStore) -> None:
        """A canary that does not decrypt raises PasswordMismatchError."""
        seed(store, "pw", [])
        gate = PasswordGate(store)  # type: ignore[arg-type]

        with pytest.raises(PasswordMismatchError, match="sync.passwordMismatch"):
            gate.validate("wrong", store.list_files())
        assert not gate.validated

    def test_network_errors_propagate(self, store: FakeStore) -> None:
        """Download failures are not reported as a password mismatch."""
        seed(store, "pw", [])
        store.fail_download.add(PASSWORD_CHECK_FILE)
        gate = PasswordGate(store)  # type: ignore[arg-type]

        with pytest.raises(ConnectionError):
            gate.validate("pw", store.list_files())

    def test_reset_clears_validation(self, store: FakeStore) -> None:
        """reset() forgets the cached validation."""
        gate = PasswordGate(store)  # type: ignore[arg-type]
        gate.validate("pw", store.list_files())
        gate.reset()
        assert not gate.validated


class TestChangePassword:
    """Tests for password rotation."""

    def test_reencrypts_everything(self, store: FakeStore) -> None:
        """Every object and the canary end up under the new password."""
        seed(store, "old", ["favorites/macro", "keyboards/k1/settings"])
        gate = PasswordGate(store)  # type: ignore[arg-type]

        gate.change_password("old", "new", store.list_files())

        assert len(store.objects) == 3
        for name, envelope, _ in store.objects.values():
            decrypt(envelope, "new")
            with pytest.raises(DecryptionError):
                decrypt(envelope, "old")
            if name != PASSWORD_CHECK_FILE:
                assert envelope.sync_unit in ("favorites/macro", "keyboards/k1/settings")
        assert store.uploaded_names()[-1] == PASSWORD_CHECK_FILE
        assert not gate.validated

    def test_same_password_refused(self, store: FakeStore) -> None:
        """The new password must differ."""
        gate = PasswordGate(store)  # type: ignore[arg-type]
        with pytest.raises(SamePasswordError):
            gate.change_password("pw", "pw", [])
        assert store.uploads == []

    def test_undecryptable_object_aborts_without_writes(self, store: FakeStore) -> None:
        """One foreign object aborts the rotation before anything is written."""
        seed(store, "old", ["favorites/macro"])
        store.upload("favorites_combo.enc", encrypt("{}", "someone-else", "favorites/combo"))
        store.uploads.clear()
        gate = PasswordGate(store)  # type: ignore[arg-type]

        with pytest.raises(UndecryptableFilesError) as exc_info:
            gate.change_password("old", "new", store.list_files())

        assert exc_info.value.file_name == "favorites_combo.enc"
        assert store.uploads == []

    def test_download_failure_aborts_without_writes(self, store: FakeStore) -> None:
        """Network errors during phase 1 propagate unchanged, nothing written."""
        seed(store, "old", ["favorites/macro"])
        store.fail_download.add("favorites_macro.enc")
        gate = PasswordGate(store)  # type: ignore[arg-type]

        with pytest.raises(ConnectionError):
            gate.change_password("old", "new", store.list_files())
        assert store.uploads == []

    def test_bootstraps_canary_once(self, store: FakeStore) -> None:
        """Rotation on a store without a canary leaves exactly one canary."""
        gate = PasswordGate(store)  # type: ignore[arg-type]

        gate.change_password("old", "new", store.list_files())

        assert [n for n, _, _ in store.objects.values()] == [PASSWORD_CHECK_FILE]
        assert decrypt(store.envelope(PASSWORD_CHECK_FILE), "new") == PASSWORD_CHECK_PAYLOAD


class TestListUndecryptable:
    """Tests for list_undecryptable."""

    def test_lists_foreign_objects(self, store: FakeStore) -> None:
        """Objects encrypted with another password are reported."""
        seed(store, "pw", ["favorites/macro"])
        store.upload("keyboards_k1_settings.enc", encrypt("{}", "other", "keyboards/k1/settings"))
        gate = PasswordGate(store)  # type: ignore[arg-type]

        result = gate.list_undecryptable("pw", store.list_files())

        assert [(f.file_name, f.sync_unit) for f in result] == [
            ("keyboards_k1_settings.enc", "keyboards/k1/settings")
        ]

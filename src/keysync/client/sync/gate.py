"""Password gate: canary validation and password rotation.

A dedicated remote object (the password canary, unit ``password-check``)
holds a fixed marker encrypted with the sync password. Decrypting it proves
the password before it is trusted against real data, so a wrong password
surfaces as PasswordMismatchError instead of per-unit failures or, worse,
an empty merge.

Password rotation is all-or-nothing:
1. Download and decrypt every data object with the old password
   (any decryption failure aborts with nothing written)
2. Re-encrypt and overwrite every object with the new password
3. Recreate the canary with the new password
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING

from keysync.client.sync.types import (
    PasswordMismatchError,
    SamePasswordError,
    UndecryptableFile,
    UndecryptableFilesError,
)
from keysync.client.sync.units import (
    PASSWORD_CHECK_UNIT,
    remote_file_name,
    sync_unit_from_file_name,
)
from keysync.core.crypto import DecryptionError, decrypt, encrypt

if TYPE_CHECKING:
    from keysync.client.api import RemoteFile, RemoteStore

logger = logging.getLogger(__name__)

PASSWORD_CHECK_PAYLOAD = json.dumps({"type": "password-check", "version": 1})
PASSWORD_CHECK_FILE = remote_file_name(PASSWORD_CHECK_UNIT)


def find_remote_file(remote_files: list[RemoteFile], name: str) -> RemoteFile | None:
    """Find a remote object by name in a listing."""
    return next((f for f in remote_files if f.name == name), None)


def data_files(remote_files: list[RemoteFile]) -> list[RemoteFile]:
    """Every remote object except the password canary."""
    return [f for f in remote_files if f.name != PASSWORD_CHECK_FILE]


class PasswordGate:
    """Validates passwords against the remote canary and rotates them."""

    def __init__(self, store: RemoteStore) -> None:
        """Initialize the gate.

        Args:
            store: Remote object store.
        """
        self._store = store
        self._validated = False
        self._canary_id: str | None = None

    @property
    def validated(self) -> bool:
        """Whether a password was validated during this session."""
        return self._validated

    def reset(self) -> None:
        """Forget the cached validation (e.g. after a password change)."""
        self._validated = False

    def validate(self, password: str, remote_files: list[RemoteFile]) -> None:
        """Check a password against the canary, creating it on first sync.

        Args:
            password: Password to check.
            remote_files: Current remote listing.

        Raises:
            PasswordMismatchError: If the canary does not decrypt.
            Exception: Network errors from the store propagate unchanged.
        """
        existing = find_remote_file(remote_files, PASSWORD_CHECK_FILE)

        if existing is not None:
            envelope = self._store.download(existing.id)
            try:
                decrypt(envelope, password)
            except DecryptionError as e:
                logger.warning("Password check failed")
                raise PasswordMismatchError() from e
            self._canary_id = existing.id
        else:
            logger.info("No password check found, creating one")
            envelope = encrypt(PASSWORD_CHECK_PAYLOAD, password, PASSWORD_CHECK_UNIT)
            self._canary_id = self._store.upload(PASSWORD_CHECK_FILE, envelope)

        self._validated = True

    def list_undecryptable(
        self, password: str, remote_files: list[RemoteFile]
    ) -> list[UndecryptableFile]:
        """List remote data objects the password cannot decrypt.

        The password is validated against the canary first.
        """
        self.validate(password, remote_files)

        result: list[UndecryptableFile] = []
        for file in data_files(remote_files):
            try:
                decrypt(self._store.download(file.id), password)
            except Exception as e:
                logger.debug("Cannot decrypt %s: %s", file.name, e)
                result.append(
                    UndecryptableFile(
                        file_id=file.id,
                        file_name=file.name,
                        sync_unit=sync_unit_from_file_name(file.name),
                    )
                )
        return result

    def change_password(
        self,
        old_password: str,
        new_password: str,
        remote_files: list[RemoteFile],
    ) -> None:
        """Re-encrypt every remote object with a new password.

        Storing the new password locally is left to the caller, which must
        only do so after this method returns.

        Raises:
            SamePasswordError: If both passwords are equal.
            PasswordMismatchError: If the old password fails the canary.
            UndecryptableFilesError: If any object cannot be decrypted
                (nothing has been written).
        """
        if new_password == old_password:
            raise SamePasswordError()

        self.validate(old_password, remote_files)

        # Phase 1: decrypt everything before writing anything. Only
        # decryption errors are translated; download errors propagate.
        decrypted: list[tuple[RemoteFile, str, str]] = []
        for file in data_files(remote_files):
            envelope = self._store.download(file.id)
            try:
                plaintext = decrypt(envelope, old_password)
            except DecryptionError as e:
                logger.warning("Password change aborted: cannot decrypt %s", file.name)
                raise UndecryptableFilesError(file.name) from e
            decrypted.append((file, plaintext, envelope.sync_unit))

        # Phase 2: overwrite each object, keeping its envelope's unit tag
        for file, plaintext, sync_unit in decrypted:
            self._store.upload(file.name, encrypt(plaintext, new_password, sync_unit), file.id)

        # Phase 3: recreate the canary (validate() guaranteed it exists)
        canary = encrypt(PASSWORD_CHECK_PAYLOAD, new_password, PASSWORD_CHECK_UNIT)
        self._canary_id = self._store.upload(PASSWORD_CHECK_FILE, canary, self._canary_id)

        self._validated = False
        logger.info("Re-encrypted %d remote file(s) with the new password", len(decrypted))

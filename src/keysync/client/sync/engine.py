"""Sync engine coordinating encrypted synchronization.

This module provides:
- SyncEngine: Owns the sync lock, the pending-change set, the last known
  remote state and the password gate, and runs every kind of sync pass

Triggers:
    execute_sync()   manual pass        lock held -> no-op
    notify_change()  debounced upload   lock held -> reschedule
    polling thread   remote changes     lock held -> skip tick
    shutdown()       final flush        waits for the lock

At most one pass runs at a time. Within a pass, units are processed
sequentially and one unit's failure never aborts the others. The remote
listing is fetched once per pass and threaded through every unit.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING

from keysync.client.api import delete_all_files, delete_files_by_prefix
from keysync.client.sync.bundle import bundle_sync_unit, merge_sync_unit
from keysync.client.sync.debounce import DebounceTimer
from keysync.client.sync.events import (
    PendingListener,
    ProgressChannel,
    ProgressListener,
    SyncProgress,
)
from keysync.client.sync.gate import PasswordGate, find_remote_file
from keysync.client.sync.poller import PollingThread
from keysync.client.sync.types import (
    Bundle,
    NoPasswordError,
    SamePasswordError,
    SyncInProgressError,
    UndecryptableFile,
)
from keysync.client.sync.units import (
    SyncScope,
    matches_scope,
    parse_sync_unit,
    remote_file_name,
    sync_unit_from_file_name,
)
from keysync.core.crypto import decrypt, encrypt
from keysync.core.types import SyncDirection, SyncState, SyncStatus

if TYPE_CHECKING:
    from collections.abc import Callable

    from keysync.client.api import RemoteFile, RemoteStore
    from keysync.client.keystore import PasswordStore
    from keysync.client.sync.layout import LocalLayout
    from keysync.core.config import SyncConfig

logger = logging.getLogger(__name__)


def _error_message(error: BaseException, fallback: str) -> str:
    return str(error) or fallback


class SyncEngine:
    """Single sync actor of the process.

    Usage:
        engine = SyncEngine(store, layout, passwords, config)
        engine.set_progress_callback(print)

        engine.execute_sync("download")   # manual pull
        engine.start_polling()            # watch remote changes
        engine.notify_change("favorites/macro")  # after a local edit

        engine.shutdown()                 # on exit: flush pending edits
    """

    def __init__(
        self,
        store: RemoteStore,
        layout: LocalLayout,
        passwords: PasswordStore,
        config: SyncConfig,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Remote object store.
            layout: Local data layout.
            passwords: Secure password cache.
            config: Engine configuration.
        """
        self._store = store
        self._layout = layout
        self._passwords = passwords
        self._config = config

        self._sync_lock = threading.Lock()
        self._pending_lock = threading.RLock()
        self._pending: set[str] = set()
        self._notified_during_pass: set[str] = set()
        self._remote_state: dict[str, str] | None = None

        self._gate = PasswordGate(store)
        self._channel = ProgressChannel()
        self._debounce = DebounceTimer(config.debounce_seconds, self.flush_pending_changes)
        self._poller = PollingThread(config.poll_interval, self.poll_for_remote_changes)

    # === State ===

    @property
    def state(self) -> SyncState:
        """Current engine state."""
        return SyncState.SYNCING if self._sync_lock.locked() else SyncState.IDLE

    @property
    def layout(self) -> LocalLayout:
        """Local data layout this engine syncs."""
        return self._layout

    @property
    def channel(self) -> ProgressChannel:
        """Progress and pending-status channel."""
        return self._channel

    @property
    def password_validated(self) -> bool:
        """Whether the password canary was validated this session."""
        return self._gate.validated

    def is_sync_in_progress(self) -> bool:
        """Check whether a sync pass is running."""
        return self._sync_lock.locked()

    def has_pending_changes(self) -> bool:
        """Check whether local changes are waiting for upload."""
        with self._pending_lock:
            return bool(self._pending)

    def pending_changes(self) -> set[str]:
        """Snapshot of the units waiting for upload."""
        with self._pending_lock:
            return set(self._pending)

    def set_progress_callback(self, callback: ProgressListener | None) -> None:
        """Register the primary progress callback."""
        self._channel.set_callback(callback)

    def subscribe_pending(self, listener: PendingListener) -> Callable[[], None]:
        """Subscribe to pending-changes updates."""
        return self._channel.subscribe_pending(listener)

    def reset_password_check(self) -> None:
        """Force the next pass to re-validate the password canary."""
        self._gate.reset()

    def _emit(
        self,
        direction: SyncDirection,
        status: SyncStatus,
        **fields: object,
    ) -> None:
        self._channel.publish(SyncProgress(direction=direction, status=status, **fields))  # type: ignore[arg-type]

    def _broadcast_pending(self) -> None:
        self._channel.publish_pending(self.has_pending_changes())

    def _update_remote_state(self, remote_files: list[RemoteFile]) -> None:
        self._remote_state = {f.name: f.modified_time for f in remote_files}

    # === Per-unit operations ===

    def upload_sync_unit(
        self,
        unit: str,
        password: str,
        remote_files: list[RemoteFile],
    ) -> bool:
        """Bundle a unit from disk, encrypt it and upload it.

        Units without local data are skipped.

        Returns:
            True if an object was written to the remote store.
        """
        bundle = bundle_sync_unit(self._layout, unit, ttl=self._config.tombstone_ttl)
        if bundle is None:
            logger.debug("Nothing to upload for %s", unit)
            return False

        envelope = encrypt(json.dumps(bundle.to_dict()), password, unit)
        name = remote_file_name(unit)
        existing = find_remote_file(remote_files, name)
        self._store.upload(name, envelope, existing.id if existing else None)
        logger.debug("Uploaded %s", unit)
        return True

    def merge_with_remote(
        self,
        file_id: str,
        unit: str,
        password: str,
        remote_files: list[RemoteFile],
    ) -> bool:
        """Download a unit, merge it into local disk, upload if remote is behind.

        Returns:
            True if the merged unit was uploaded back.
        """
        envelope = self._store.download(file_id)
        remote_bundle = Bundle.from_dict(json.loads(decrypt(envelope, password)))

        needs_upload = merge_sync_unit(
            self._layout, unit, remote_bundle, ttl=self._config.tombstone_ttl
        )
        if needs_upload:
            return self.upload_sync_unit(unit, password, remote_files)
        return False

    def sync_or_upload(
        self,
        unit: str,
        password: str,
        remote_files: list[RemoteFile],
    ) -> None:
        """Merge-then-upload when the unit exists remotely, plain upload otherwise."""
        remote_file = find_remote_file(remote_files, remote_file_name(unit))
        if remote_file is not None:
            self.merge_with_remote(remote_file.id, unit, password, remote_files)
        else:
            self.upload_sync_unit(unit, password, remote_files)

    # === Manual sync ===

    def execute_sync(
        self,
        direction: SyncDirection | str,
        scope: SyncScope = "all",
    ) -> None:
        """Run one sync pass.

        Returns immediately if a pass is already running or no password is
        cached; callers that need to tell "ran" from "skipped" check
        is_sync_in_progress() first.

        Args:
            direction: "download" merges every remote unit in scope;
                "upload" merges-or-uploads every local unit in scope.
            scope: "all", "favorites" or KeyboardScope(uid).

        Raises:
            PasswordMismatchError: If the password fails the canary.
            Exception: If the pass could not run (e.g. listing failed).
        """
        direction = SyncDirection(direction)

        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Sync already in progress, skipping %s", direction.value)
            return

        try:
            with self._pending_lock:
                self._notified_during_pass.clear()

            password = self._passwords.retrieve()
            if not password:
                logger.debug("No sync password cached, skipping %s", direction.value)
                return

            logger.info("Starting %s sync (scope=%s)", direction.value, scope)
            self._emit(direction, SyncStatus.SYNCING, message="Starting sync...")

            remote_files = self._store.list_files()

            # Scoped passes trust a validation already done this session
            if scope == "all" or not self._gate.validated:
                self._gate.validate(password, remote_files)

            if direction is SyncDirection.DOWNLOAD:
                failed_units = self._download_pass(password, remote_files, scope)
            else:
                failed_units = self._upload_pass(password, remote_files, scope)
                with self._pending_lock:
                    self._pending = {u for u in self._pending if not matches_scope(u, scope)}
                    self._pending.update(failed_units)
                    # Edits reported mid-pass may postdate their unit's upload
                    self._pending.update(self._notified_during_pass)
                    self._notified_during_pass.clear()
                self._broadcast_pending()

            if failed_units:
                logger.warning(
                    "%s sync finished with %d failed unit(s): %s",
                    direction.value,
                    len(failed_units),
                    ", ".join(failed_units),
                )
                self._emit(
                    direction,
                    SyncStatus.PARTIAL,
                    failed_units=failed_units,
                    message=f"{len(failed_units)} sync unit(s) failed",
                )
            else:
                logger.info("%s sync complete", direction.value)
                self._emit(direction, SyncStatus.SUCCESS, message="Sync complete")

        except Exception as e:
            logger.error("%s sync failed: %s", direction.value, e)
            self._emit(direction, SyncStatus.ERROR, message=_error_message(e, "Sync failed"))
            raise
        finally:
            self._sync_lock.release()

    def _download_pass(
        self,
        password: str,
        remote_files: list[RemoteFile],
        scope: SyncScope,
    ) -> list[str]:
        # Full listing recorded regardless of scope, for polling
        self._update_remote_state(remote_files)

        targets = [
            (f, unit)
            for f in remote_files
            if (unit := sync_unit_from_file_name(f.name)) is not None and matches_scope(unit, scope)
        ]
        failed_units: list[str] = []

        for current, (remote_file, unit) in enumerate(targets, start=1):
            self._emit(
                SyncDirection.DOWNLOAD,
                SyncStatus.SYNCING,
                sync_unit=unit,
                current=current,
                total=len(targets),
            )
            try:
                self.merge_with_remote(remote_file.id, unit, password, remote_files)
            except Exception as e:
                logger.warning("Download of %s failed: %s", unit, e)
                logger.debug("Full traceback:", exc_info=True)
                failed_units.append(unit)

        return failed_units

    def _upload_pass(
        self,
        password: str,
        remote_files: list[RemoteFile],
        scope: SyncScope,
    ) -> list[str]:
        units = [u for u in self._layout.collect_all_sync_units() if matches_scope(u, scope)]
        self._update_remote_state(remote_files)
        failed_units: list[str] = []

        for current, unit in enumerate(units, start=1):
            self._emit(
                SyncDirection.UPLOAD,
                SyncStatus.SYNCING,
                sync_unit=unit,
                current=current,
                total=len(units),
            )
            try:
                self.sync_or_upload(unit, password, remote_files)
            except Exception as e:
                logger.warning("Upload of %s failed: %s", unit, e)
                logger.debug("Full traceback:", exc_info=True)
                failed_units.append(unit)

        # Record our own uploads so polling does not see them as foreign changes
        self._update_remote_state(self._store.list_files())
        return failed_units

    # === Debounced upload ===

    def notify_change(self, unit: str) -> None:
        """Record a local change and (re)arm the debounce timer.

        Raises:
            ValueError: If the unit is not a valid sync unit.
        """
        parse_sync_unit(unit)
        with self._pending_lock:
            self._pending.add(unit)
            if self._sync_lock.locked():
                self._notified_during_pass.add(unit)
        self._broadcast_pending()
        self._debounce.schedule()

    def cancel_pending_changes(self, prefix: str | None = None) -> None:
        """Drop pending changes (all of them, or those under ``prefix``)."""
        with self._pending_lock:
            if prefix:
                self._pending = {u for u in self._pending if not u.startswith(prefix)}
            else:
                self._pending.clear()
            if not self._pending:
                self._debounce.cancel()
        self._broadcast_pending()

    def flush_pending_changes(self, wait: bool = False) -> None:
        """Upload every pending unit.

        Runs on the debounce timer thread. When a pass is already running
        the flush is rescheduled, never dropped.

        Args:
            wait: Block until the running pass ends instead of rescheduling
                (used on shutdown).
        """
        if not self.has_pending_changes():
            return

        if not self._sync_lock.acquire(blocking=wait):
            logger.debug("Sync in progress, rescheduling debounced upload")
            self._debounce.schedule()
            return

        try:
            if not self._config.auto_sync:
                logger.debug("Auto-sync disabled, dropping pending changes")
                self._drop_pending()
                return

            password = self._passwords.retrieve()
            if not password:
                self._drop_pending()
                return

            with self._pending_lock:
                changes = sorted(self._pending)
                self._pending.clear()

            logger.info("Auto-sync of %d unit(s)", len(changes))
            self._emit(SyncDirection.UPLOAD, SyncStatus.SYNCING, message="Auto-sync starting...")

            try:
                remote_files = self._store.list_files()
                self._update_remote_state(remote_files)
                if not self._gate.validated:
                    self._gate.validate(password, remote_files)
            except Exception as e:
                with self._pending_lock:
                    self._pending.update(changes)
                self._broadcast_pending()
                logger.warning("Auto-sync could not start: %s", e)
                self._emit(
                    SyncDirection.UPLOAD,
                    SyncStatus.ERROR,
                    message=_error_message(e, "Password check failed"),
                )
                return

            failed_units: list[str] = []
            for unit in changes:
                try:
                    self.sync_or_upload(unit, password, remote_files)
                except Exception as e:
                    logger.warning("Auto-sync of %s failed: %s", unit, e)
                    failed_units.append(unit)

            if failed_units:
                with self._pending_lock:
                    self._pending.update(failed_units)
            self._broadcast_pending()

            try:
                self._update_remote_state(self._store.list_files())
            except Exception as e:
                logger.warning("Could not refresh remote listing after auto-sync: %s", e)

            if failed_units:
                self._emit(
                    SyncDirection.UPLOAD,
                    SyncStatus.PARTIAL,
                    failed_units=failed_units,
                    message=f"{len(failed_units)} sync unit(s) failed",
                )
            else:
                self._emit(SyncDirection.UPLOAD, SyncStatus.SUCCESS, message="Sync complete")
        finally:
            self._sync_lock.release()

    def _drop_pending(self) -> None:
        with self._pending_lock:
            self._pending.clear()
        self._broadcast_pending()

    # === Polling ===

    def start_polling(self) -> None:
        """Start polling the remote store (idempotent)."""
        self._poller.start()

    def stop_polling(self) -> None:
        """Stop polling the remote store (idempotent)."""
        self._poller.stop()

    @property
    def polling(self) -> bool:
        """Whether the polling thread is running."""
        return self._poller.running

    def poll_for_remote_changes(self) -> None:
        """One polling tick: merge remote objects whose stamp changed.

        The first tick only records the listing as a baseline. Failures are
        logged and swallowed; the next tick retries.
        """
        if not self._sync_lock.acquire(blocking=False):
            logger.debug("Sync in progress, skipping poll")
            return

        try:
            password = self._passwords.retrieve()
            if not password:
                return

            remote_files = self._store.list_files()

            if not self._gate.validated:
                self._gate.validate(password, remote_files)

            if self._remote_state is None:
                logger.debug("First poll, recording %d remote files", len(remote_files))
                self._update_remote_state(remote_files)
                return

            known = self._remote_state
            changed = [f for f in remote_files if known.get(f.name) != f.modified_time]
            state = {f.name: f.modified_time for f in remote_files}
            self._remote_state = state
            uploaded: list[str] = []

            for remote_file in changed:
                unit = sync_unit_from_file_name(remote_file.name)
                if unit is None:
                    continue
                try:
                    if self.merge_with_remote(remote_file.id, unit, password, remote_files):
                        uploaded.append(remote_file.name)
                except Exception as e:
                    logger.warning("Poll merge of %s failed: %s", unit, e)
                    # Forget the stamp so the next tick retries this object
                    state.pop(remote_file.name, None)
                    continue
                logger.info("Merged remote change of %s", unit)
                self._emit(
                    SyncDirection.DOWNLOAD,
                    SyncStatus.SUCCESS,
                    sync_unit=unit,
                    message="Sync complete",
                )

            if uploaded:
                # Re-stamp our own uploads only
                refreshed = {f.name: f.modified_time for f in self._store.list_files()}
                for name in uploaded:
                    if name in refreshed:
                        state[name] = refreshed[name]
        except Exception as e:
            logger.warning("Remote poll failed: %s", e)
        finally:
            self._sync_lock.release()

    # === Password management ===

    def change_password(self, new_password: str) -> None:
        """Re-encrypt all remote data with a new password.

        The new password is stored locally only after every object has been
        re-encrypted and the canary recreated.

        Raises:
            SyncInProgressError: If a pass is running.
            NoPasswordError: If no current password is cached.
            SamePasswordError: If the new password equals the current one.
            PasswordMismatchError: If the cached password fails the canary.
            UndecryptableFilesError: If any remote object cannot be decrypted.
        """
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError("Cannot change password while sync is in progress")

        try:
            old_password = self._passwords.retrieve()
            if not old_password:
                raise NoPasswordError("No stored password found")
            if new_password == old_password:
                raise SamePasswordError()

            remote_files = self._store.list_files()
            self._gate.change_password(old_password, new_password, remote_files)

            self._passwords.store(new_password)
            self._gate.reset()
            logger.info("Sync password changed")
        finally:
            self._sync_lock.release()

    def reset_password(self, new_password: str) -> None:
        """Delete all remote data and start over with a new password.

        Raises:
            SyncInProgressError: If a pass is running.
        """
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError("Cannot reset password while sync is in progress")

        try:
            delete_all_files(self._store)
            self._passwords.store(new_password)
            self._gate.reset()
            self._remote_state = None
        finally:
            self._sync_lock.release()

    def list_undecryptable_files(self) -> list[UndecryptableFile]:
        """List remote objects the cached password cannot decrypt.

        Raises:
            SyncInProgressError: If a pass is running.
            PasswordMismatchError: If the password fails the canary.
        """
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError("Cannot check files while sync is in progress")

        try:
            password = self._passwords.retrieve()
            if not password:
                return []
            return self._gate.list_undecryptable(password, self._store.list_files())
        finally:
            self._sync_lock.release()

    # === Remote reset ===

    def reset_remote(self, keyboards: bool = False, favorites: bool = False) -> None:
        """Delete remote keyboard and/or favorites data.

        Raises:
            ValueError: If no target is selected.
            SyncInProgressError: If a pass is running.
        """
        if not keyboards and not favorites:
            raise ValueError("No targets selected")
        if not self._sync_lock.acquire(blocking=False):
            raise SyncInProgressError("Cannot reset while sync is in progress")

        try:
            if keyboards:
                self.cancel_pending_changes("keyboards/")
                delete_files_by_prefix(self._store, "keyboards_")
            if favorites:
                self.cancel_pending_changes("favorites/")
                delete_files_by_prefix(self._store, "favorites_")
            self._remote_state = None
        finally:
            self._sync_lock.release()

    # === Lifecycle ===

    def shutdown(self) -> None:
        """Stop polling, then flush pending changes synchronously.

        Waits for a running pass to finish before flushing. Flush errors
        are logged, never raised.
        """
        self.stop_polling()

        if not self.has_pending_changes() and not self._debounce.armed:
            return

        self._debounce.cancel()
        logger.info("Flushing pending changes before exit")
        try:
            self.flush_pending_changes(wait=True)
        except Exception:
            logger.exception("Final flush failed")

    def reset(self) -> None:
        """Return the engine to its initial state (test helper)."""
        self._debounce.cancel()
        self.stop_polling()
        with self._pending_lock:
            self._pending.clear()
            self._notified_during_pass.clear()
        self._remote_state = None
        self._gate.reset()
        self._channel.clear()

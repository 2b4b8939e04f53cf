"""Tests for progress events and the progress channel."""

from __future__ import annotations

from unittest.mock import MagicMock

from keysync.client.sync.events import ProgressChannel, SyncProgress
from keysync.core.types import SyncDirection, SyncStatus


class TestSyncProgress:
    """Tests for SyncProgress serialization."""

    def test_to_dict_minimal(self) -> None:
        """Unset fields are omitted."""
        progress = SyncProgress(SyncDirection.UPLOAD, SyncStatus.SUCCESS)
        assert progress.to_dict() == {"direction": "upload", "status": "success"}

    def test_to_dict_full(self) -> None:
        """Set fields use camelCase keys."""
        progress = SyncProgress(
            SyncDirection.DOWNLOAD,
            SyncStatus.PARTIAL,
            sync_unit="favorites/macro",
            current=2,
            total=5,
            failed_units=["favorites/combo"],
            message="1 sync unit(s) failed",
        )
        assert progress.to_dict() == {
            "direction": "download",
            "status": "partial",
            "syncUnit": "favorites/macro",
            "current": 2,
            "total": 5,
            "failedUnits": ["favorites/combo"],
            "message": "1 sync unit(s) failed",
        }


class TestProgressChannel:
    """Tests for ProgressChannel."""

    def test_publish_reaches_callback_and_listeners(self) -> None:
        """The callback and every subscriber receive each event."""
        channel = ProgressChannel()
        callback = MagicMock()
        listener = MagicMock()
        channel.set_callback(callback)
        channel.subscribe(listener)
        progress = SyncProgress(SyncDirection.UPLOAD, SyncStatus.SYNCING)

        channel.publish(progress)

        callback.assert_called_once_with(progress)
        listener.assert_called_once_with(progress)

    def test_unsubscribe(self) -> None:
        """Unsubscribed listeners receive nothing."""
        channel = ProgressChannel()
        listener = MagicMock()
        unsubscribe = channel.subscribe(listener)
        unsubscribe()
        unsubscribe()

        channel.publish(SyncProgress(SyncDirection.UPLOAD, SyncStatus.SYNCING))

        listener.assert_not_called()

    def test_failing_listener_does_not_block_others(self) -> None:
        """Listener exceptions are logged, delivery continues."""
        channel = ProgressChannel()
        channel.subscribe(MagicMock(side_effect=RuntimeError("ui gone")))
        healthy = MagicMock()
        channel.subscribe(healthy)

        channel.publish(SyncProgress(SyncDirection.UPLOAD, SyncStatus.ERROR))

        healthy.assert_called_once()

    def test_pending_listeners(self) -> None:
        """Pending flags go to pending subscribers only."""
        channel = ProgressChannel()
        pending = MagicMock()
        progress = MagicMock()
        channel.subscribe_pending(pending)
        channel.subscribe(progress)

        channel.publish_pending(True)

        pending.assert_called_once_with(True)
        progress.assert_not_called()

"""Progress and pending-status notifications.

This module provides:
- SyncProgress: One progress event of a sync pass
- ProgressChannel: Observer channel carrying progress events and the
  "pending changes" flag to the UI layer

The engine never calls UI code directly; it publishes on the channel and
any number of listeners subscribe. Listener errors are logged and never
interrupt a sync pass.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from keysync.core.types import SyncDirection, SyncStatus

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SyncProgress:
    """Progress event of a sync pass.

    Attributes:
        direction: Upload or download.
        status: syncing, success, partial or error.
        sync_unit: Unit being processed (per-unit events only).
        current: 1-based position of the unit in the pass.
        total: Number of units in the pass.
        failed_units: Units that failed (partial events).
        message: Human-readable detail.
    """

    direction: SyncDirection
    status: SyncStatus
    sync_unit: str | None = None
    current: int | None = None
    total: int | None = None
    failed_units: list[str] = field(default_factory=list)
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for UI transport (camelCase keys, unset fields omitted)."""
        data: dict[str, Any] = {
            "direction": self.direction.value,
            "status": self.status.value,
        }
        if self.sync_unit is not None:
            data["syncUnit"] = self.sync_unit
        if self.current is not None:
            data["current"] = self.current
        if self.total is not None:
            data["total"] = self.total
        if self.failed_units:
            data["failedUnits"] = list(self.failed_units)
        if self.message is not None:
            data["message"] = self.message
        return data


ProgressListener = Callable[[SyncProgress], None]
PendingListener = Callable[[bool], None]


class ProgressChannel:
    """Fan-out channel for progress events and pending status."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._callback: ProgressListener | None = None
        self._listeners: list[ProgressListener] = []
        self._pending_listeners: list[PendingListener] = []

    def set_callback(self, callback: ProgressListener | None) -> None:
        """Register the single primary progress callback (None removes it)."""
        with self._lock:
            self._callback = callback

    def subscribe(self, listener: ProgressListener) -> Callable[[], None]:
        """Subscribe to progress events.

        Returns:
            A function that removes the subscription.
        """
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def subscribe_pending(self, listener: PendingListener) -> Callable[[], None]:
        """Subscribe to "has pending changes" updates.

        Returns:
            A function that removes the subscription.
        """
        with self._lock:
            self._pending_listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._pending_listeners:
                    self._pending_listeners.remove(listener)

        return unsubscribe

    def publish(self, progress: SyncProgress) -> None:
        """Deliver a progress event to the callback and every listener."""
        with self._lock:
            targets = [self._callback, *self._listeners] if self._callback else list(self._listeners)
        for target in targets:
            try:
                target(progress)
            except Exception:
                logger.exception("Progress listener failed")

    def publish_pending(self, pending: bool) -> None:
        """Deliver the pending-changes flag to every pending listener."""
        with self._lock:
            targets = list(self._pending_listeners)
        for target in targets:
            try:
                target(pending)
            except Exception:
                logger.exception("Pending-status listener failed")

    def clear(self) -> None:
        """Remove the callback and every listener."""
        with self._lock:
            self._callback = None
            self._listeners.clear()
            self._pending_listeners.clear()

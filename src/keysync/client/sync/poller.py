"""Fixed-interval background thread for remote change polling.

Architecture:
    PollingThread ─tick─► SyncEngine.poll_for_remote_changes
                                 │
                  (list remote, diff modifiedTime, merge changed units)

The thread only provides the cadence. Ticks never overlap because each one
runs to completion on this thread before the next wait starts; overlap with
other sync triggers is prevented by the engine's lock.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class PollingThread:
    """Runs a callback every ``interval`` seconds until stopped.

    Usage:
        poller = PollingThread(180.0, engine.poll_for_remote_changes)
        poller.start()
        # ...
        poller.stop()
    """

    def __init__(self, interval: float, tick: Callable[[], None]) -> None:
        """Initialize the poller.

        Args:
            interval: Seconds between ticks (the first tick runs after one interval).
            tick: Function called on every tick.
        """
        self._interval = interval
        self._tick = tick
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        """Whether the polling thread is alive."""
        with self._lock:
            return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start polling (no-op if already running)."""
        with self._lock:
            if self._thread is not None and self._thread.is_alive():
                return
            self._stop_event = threading.Event()
            self._thread = threading.Thread(
                target=self._run,
                args=(self._stop_event,),
                name="RemotePoller",
                daemon=True,
            )
            self._thread.start()
        logger.info("Remote polling started (every %.0fs)", self._interval)

    def stop(self, timeout: float = 5.0) -> None:
        """Stop polling (no-op if not running).

        Args:
            timeout: Maximum time to wait for an in-flight tick.
        """
        with self._lock:
            thread = self._thread
            self._thread = None
            self._stop_event.set()

        if thread is None:
            return
        if thread is not threading.current_thread() and thread.is_alive():
            thread.join(timeout=timeout)
        logger.info("Remote polling stopped")

    def _run(self, stop_event: threading.Event) -> None:
        # Interruptible sleep: wait() returns True as soon as stop() is called
        while not stop_event.wait(self._interval):
            try:
                self._tick()
            except Exception:
                logger.warning("Remote poll failed", exc_info=True)

"""Re-armable single-shot timer for debounced uploads.

Every local change re-arms the timer, so the flush runs once the user has
stopped editing for ``delay`` seconds. The timer only schedules; the flush
itself (and its interaction with the sync lock) lives in the engine.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable

logger = logging.getLogger(__name__)


class DebounceTimer:
    """Single-shot timer that restarts its countdown on every schedule()."""

    def __init__(self, delay: float, callback: Callable[[], None]) -> None:
        """Initialize the timer.

        Args:
            delay: Quiet period in seconds.
            callback: Function run on the timer thread when the period elapses.
        """
        self._delay = delay
        self._callback = callback
        self._lock = threading.Lock()
        self._timer: threading.Timer | None = None

    @property
    def delay(self) -> float:
        """Quiet period in seconds."""
        return self._delay

    @property
    def armed(self) -> bool:
        """Whether a countdown is running."""
        with self._lock:
            return self._timer is not None

    def schedule(self) -> None:
        """Start (or restart) the countdown."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            timer = threading.Timer(self._delay, self._fire)
            timer.name = "DebounceTimer"
            timer.daemon = True
            self._timer = timer
            timer.start()

    def cancel(self) -> None:
        """Stop the countdown without running the callback."""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
                self._timer = None

    def _fire(self) -> None:
        with self._lock:
            if self._timer is not threading.current_thread():
                # Superseded by a later schedule() or cancelled
                return
            self._timer = None
        try:
            self._callback()
        except Exception:
            logger.exception("Debounced flush failed")

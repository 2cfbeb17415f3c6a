"""Singleton guard for full scans with cooperative stop requests."""

from __future__ import annotations

import logging
import threading

logger = logging.getLogger(__name__)


class ScanGuard:
    """Tracks whether a scan is running and whether it was asked to stop.

    All accessors take an internal lock so the guard can be shared between
    the event loop and request handlers running in worker threads.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._in_progress = False
        self._stop_requested = False

    def try_start(self) -> bool:
        """Mark a scan as started. Returns False if one is already running."""
        with self._lock:
            if self._in_progress:
                return False
            self._in_progress = True
            self._stop_requested = False
            return True

    def request_stop(self) -> bool:
        """Ask the running scan to stop. A no-op when nothing is running."""
        with self._lock:
            if not self._in_progress:
                return False
            self._stop_requested = True
        logger.info("Stop requested for running scan")
        return True

    def finish(self) -> None:
        """Reset both flags once a scan ends, however it ended."""
        with self._lock:
            self._in_progress = False
            self._stop_requested = False

    @property
    def in_progress(self) -> bool:
        with self._lock:
            return self._in_progress

    @property
    def stop_requested(self) -> bool:
        with self._lock:
            return self._stop_requested

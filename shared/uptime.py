"""
Process uptime tracking for heartbeat events.

The tracker is an explicitly initialized, process-wide singleton. The restart
marker is recorded the first time it is read and is refreshed once its TTL
expires, so a long-running worker reports at most TTL seconds of uptime
between refreshes.
"""

import threading
from datetime import UTC, datetime, timedelta
from typing import Callable

DEFAULT_TTL_SECONDS = 86400


class UptimeTracker:
    """Holds the last-restart marker used to compute uptime."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or (lambda: datetime.now(UTC))
        self._last_restart: datetime | None = None
        self._recorded_at: datetime | None = None
        self._lock = threading.Lock()

    @property
    def last_restart(self) -> datetime:
        """Return the restart marker, initializing or refreshing it as needed."""
        now = self._clock()
        with self._lock:
            if self._last_restart is None or now - self._recorded_at >= self._ttl:
                self._last_restart = now
                self._recorded_at = now
            return self._last_restart

    def uptime_seconds(self) -> int:
        """Whole seconds elapsed since the restart marker."""
        started = self.last_restart
        return int((self._clock() - started).total_seconds())


_tracker: UptimeTracker | None = None
_tracker_lock = threading.Lock()


def init_uptime_tracker(
    ttl_seconds: int = DEFAULT_TTL_SECONDS,
    clock: Callable[[], datetime] | None = None,
) -> UptimeTracker:
    """Install a fresh process-wide tracker (called at service startup)."""
    global _tracker
    with _tracker_lock:
        _tracker = UptimeTracker(ttl_seconds=ttl_seconds, clock=clock)
        return _tracker


def get_uptime_tracker() -> UptimeTracker:
    """Return the process-wide tracker, creating it on first use."""
    global _tracker
    with _tracker_lock:
        if _tracker is None:
            _tracker = UptimeTracker()
        return _tracker

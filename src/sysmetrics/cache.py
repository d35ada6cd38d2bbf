"""Short-lived memoization of the latest snapshot."""

import threading

from sysmetrics.clock import Clock, epoch_millis
from sysmetrics.models import Snapshot

DEFAULT_TTL_MS = 500


class SnapshotCache:
    """
    Holds at most one snapshot and serves it while it is younger than the TTL.

    All methods are safe to call from any thread.
    """

    def __init__(self, ttl_ms: int = DEFAULT_TTL_MS, clock: Clock = epoch_millis) -> None:
        """
        Initialize the cache.

        Args:
            ttl_ms: Maximum age in milliseconds at which a stored snapshot is served.
            clock: Callable returning the current time in epoch milliseconds.
        """
        if ttl_ms <= 0:
            raise ValueError("ttl_ms must be positive")
        self._ttl_ms = ttl_ms
        self._clock = clock
        self._lock = threading.Lock()
        self._snapshot: Snapshot | None = None
        self._captured_at = 0

    @property
    def ttl_ms(self) -> int:
        return self._ttl_ms

    def get(self) -> Snapshot | None:
        """Return the stored snapshot if still fresh, otherwise None."""
        with self._lock:
            if self._snapshot is None:
                return None
            if self._clock() - self._captured_at < self._ttl_ms:
                return self._snapshot
            return None

    def put(self, snapshot: Snapshot) -> None:
        """Store a snapshot stamped with the current time."""
        with self._lock:
            self._snapshot = snapshot
            self._captured_at = self._clock()

    def clear(self) -> None:
        with self._lock:
            self._snapshot = None
            self._captured_at = 0

    def is_valid(self) -> bool:
        return self.get() is not None

    def age_ms(self) -> int | None:
        """Age of the stored snapshot, or None when the cache is empty."""
        with self._lock:
            if self._snapshot is None:
                return None
            return self._clock() - self._captured_at

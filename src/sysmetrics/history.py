"""Bounded rolling history of snapshots."""

from collections import deque

from sysmetrics.models import Snapshot

DEFAULT_CAPACITY = 300


class HistoryBuffer:
    """
    Fixed-capacity, insertion-ordered store of past snapshots.

    Appending to a full buffer evicts the oldest entry. Not synchronized;
    the orchestrator guards it with its own lock.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self._entries: deque[Snapshot] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        return self._entries.maxlen

    def __len__(self) -> int:
        return len(self._entries)

    def append(self, snapshot: Snapshot) -> None:
        self._entries.append(snapshot)

    def recent(self, count: int) -> list[Snapshot]:
        """Return the most recent ``count`` entries, oldest first."""
        if count <= 0:
            return []
        entries = list(self._entries)
        return entries[-count:]

    def snapshot(self) -> list[Snapshot]:
        """Return a copy of the whole buffer, oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()

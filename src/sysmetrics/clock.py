"""Wall-clock helper shared by the cache and orchestrator."""

import time
from collections.abc import Callable

Clock = Callable[[], int]


def epoch_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return time.time_ns() // 1_000_000

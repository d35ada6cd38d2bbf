"""
Reduction of snapshot history into per-window aggregates.

Windows are aligned to epoch-relative buckets of the window size, so every
call made within the same bucket agrees on identical boundaries. Windows are
half-open: a snapshot stamped exactly at ``end`` belongs to the next window.

All functions here are pure and safe to call concurrently.
"""

import logging
import math
from collections.abc import Iterable, Sequence

from sysmetrics.health import health_score
from sysmetrics.models import Aggregate, Snapshot, TimeWindow

logger = logging.getLogger(__name__)


def window_start(now_ms: int, window: TimeWindow) -> int:
    """Start of the bucket of size ``window`` that contains ``now_ms``."""
    duration = window.duration_ms
    return now_ms - (now_ms % duration)


def previous_window(now_ms: int, window: TimeWindow) -> tuple[int, int]:
    """Bounds of the most recently completed window as of ``now_ms``."""
    end = window_start(now_ms, window)
    return end - window.duration_ms, end


def in_window(snapshot: Snapshot, start: int, end: int) -> bool:
    return start <= snapshot.timestamp < end


def _counter_delta(first: int, last: int) -> int:
    # Counters only grow; a smaller reading means the counter was reset.
    delta = last - first
    return delta if delta > 0 else 0


def _clamp_percent(value: float) -> float:
    return max(0.0, min(100.0, value))


def _round_half_up(score: float) -> int:
    # 62.5 -> 63; round() would give 62
    return int(max(0, min(100, math.floor(score + 0.5))))


def aggregate_window(
    snapshots: Iterable[Snapshot],
    window: TimeWindow,
    start: int,
    end: int,
) -> Aggregate:
    """
    Summarize the snapshots that fall inside [start, end).

    Args:
        snapshots: Candidate snapshots in any order.
        window: Window type recorded on the result.
        start: Inclusive window start (epoch ms).
        end: Exclusive window end (epoch ms).

    Returns:
        The aggregate, or ``Aggregate.empty`` when nothing falls inside.
    """
    count = 0
    # Running means stay exact when every sample carries the same value.
    cpu_mean = memory_mean = power_mean = score_mean = 0.0
    cpu_min = memory_min = float("inf")
    cpu_max = memory_max = float("-inf")
    first: Snapshot | None = None
    last: Snapshot | None = None

    for snapshot in snapshots:
        if not in_window(snapshot, start, end):
            continue
        count += 1

        cpu = snapshot.cpu.usage_percent
        memory = snapshot.memory.usage_percent
        cpu_mean += (cpu - cpu_mean) / count
        memory_mean += (memory - memory_mean) / count
        power_mean += (snapshot.power.level - power_mean) / count
        score_mean += (health_score(snapshot) - score_mean) / count
        cpu_min = min(cpu_min, cpu)
        cpu_max = max(cpu_max, cpu)
        memory_min = min(memory_min, memory)
        memory_max = max(memory_max, memory)

        # Ties keep insertion order: first seen stays first, last seen wins last.
        if first is None or snapshot.timestamp < first.timestamp:
            first = snapshot
        if last is None or snapshot.timestamp >= last.timestamp:
            last = snapshot

    if count == 0 or first is None or last is None:
        return Aggregate.empty(window, start, end)

    return Aggregate(
        window=window,
        start=start,
        end=end,
        sample_count=count,
        cpu_percent_average=_clamp_percent(cpu_mean),
        memory_percent_average=_clamp_percent(memory_mean),
        power_level_average=_clamp_percent(power_mean),
        temperature_celsius=last.thermal.cpu_temperature,
        health_score_average=_round_half_up(score_mean),
        cpu_percent_min=cpu_min,
        cpu_percent_max=cpu_max,
        memory_percent_min=memory_min,
        memory_percent_max=memory_max,
        network_rx_bytes_total=_counter_delta(first.network.rx_bytes, last.network.rx_bytes),
        network_tx_bytes_total=_counter_delta(first.network.tx_bytes, last.network.tx_bytes),
    )


def aggregate(snapshots: Iterable[Snapshot], window: TimeWindow, now_ms: int) -> Aggregate:
    """Aggregate the most recently completed window as of ``now_ms``."""
    start, end = previous_window(now_ms, window)
    return aggregate_window(snapshots, window, start, end)


def aggregate_series(
    snapshots: Sequence[Snapshot],
    window: TimeWindow,
    now_ms: int,
    count: int,
) -> list[Aggregate]:
    """
    Aggregate ``count`` consecutive windows, oldest first.

    The last element covers the most recently completed window; the windows
    are contiguous and do not overlap.
    """
    if count <= 0:
        return []

    duration = window.duration_ms
    current = window_start(now_ms, window)
    results: list[Aggregate] = []
    for offset in range(count, 0, -1):
        end = current - (offset - 1) * duration
        results.append(aggregate_window(snapshots, window, end - duration, end))

    logger.debug(
        "Aggregated %d %s windows over %d snapshots", len(results), window.label, len(snapshots)
    )
    return results

"""Shared fakes and fixtures for the sysmetrics test suite."""

import pytest

from sysmetrics.models import (
    BatteryHealth,
    BatteryStatus,
    CpuMetrics,
    MemoryMetrics,
    NetworkMetrics,
    NetworkType,
    PowerMetrics,
    Snapshot,
    StorageMetrics,
    ThermalMetrics,
)

EPOCH_START = 1_700_000_000_000


def build_snapshot(
    timestamp: int = EPOCH_START,
    *,
    cpu: float = 10.0,
    memory: float = 20.0,
    cpu_temp: float | None = 40.0,
    battery: int = 80,
    battery_temp: float | None = 30.0,
    storage: float = 50.0,
    rx: int = 0,
    tx: int = 0,
    throttling: bool = False,
    uptime_ms: int = 60_000,
) -> Snapshot:
    """Build a valid snapshot with the interesting fields overridable."""
    return Snapshot(
        cpu=CpuMetrics(usage_percent=cpu, physical_cores=4, logical_cores=8),
        memory=MemoryMetrics(
            total_mb=16_384,
            used_mb=int(16_384 * memory / 100),
            free_mb=16_384 - int(16_384 * memory / 100),
            available_mb=16_384 - int(16_384 * memory / 100),
            usage_percent=memory,
        ),
        power=PowerMetrics(
            level=battery,
            temperature=battery_temp,
            status=BatteryStatus.DISCHARGING,
            health=BatteryHealth.GOOD,
            plugged=False,
        ),
        thermal=ThermalMetrics(
            cpu_temperature=cpu_temp,
            battery_temperature=battery_temp,
            thermal_throttling=throttling,
        ),
        storage=StorageMetrics(
            total_mb=512_000,
            free_mb=int(512_000 * (100 - storage) / 100),
            used_mb=int(512_000 * storage / 100),
            usage_percent=storage,
        ),
        network=NetworkMetrics(
            rx_bytes=rx,
            tx_bytes=tx,
            rx_bytes_per_second=0,
            tx_bytes_per_second=0,
            is_connected=True,
            connection_type=NetworkType.WIFI,
        ),
        timestamp=timestamp,
        uptime_ms=uptime_ms,
    )


class ManualClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, start: int = EPOCH_START) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, millis: int) -> None:
        self.now += millis


class FakeSource:
    """
    Snapshot source returning predictable snapshots.

    Each collect() returns a new snapshot stamped with the clock and a CPU
    usage derived from the call count, unless ``fixed`` is set. Exceptions
    queued in ``errors`` are raised first, one per call.
    """

    def __init__(self, clock: ManualClock | None = None) -> None:
        self.calls = 0
        self.resets = 0
        self.errors: list[Exception] = []
        self.fixed: Snapshot | None = None
        self._clock = clock

    def collect(self) -> Snapshot:
        self.calls += 1
        if self.errors:
            raise self.errors.pop(0)
        if self.fixed is not None:
            return self.fixed
        timestamp = self._clock() if self._clock is not None else EPOCH_START + self.calls
        return build_snapshot(timestamp, cpu=float(self.calls % 100))

    def reset(self) -> None:
        self.resets += 1


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def source(clock: ManualClock) -> FakeSource:
    return FakeSource(clock)

"""Tests for the psutil-backed snapshot source."""

import os
from types import SimpleNamespace

import psutil
import pytest
from conftest import ManualClock

from sysmetrics.errors import CollectionError
from sysmetrics.models import AppMetrics, BatteryStatus, NetworkType, Snapshot
from sysmetrics.sources import (
    AppMetricsSource,
    PsutilAppMetricsCollector,
    PsutilSnapshotSource,
    SnapshotSource,
    interface_type,
)


def _counters(rx, tx):
    return lambda: SimpleNamespace(bytes_recv=rx, bytes_sent=tx)


@pytest.mark.parametrize(
    ("name", "expected"),
    [
        ("wlan0", NetworkType.WIFI),
        ("wlp3s0", NetworkType.WIFI),
        ("eth0", NetworkType.ETHERNET),
        ("enp0s31f6", NetworkType.ETHERNET),
        ("rmnet_data0", NetworkType.MOBILE),
        ("wg0", NetworkType.VPN),
        ("tun0", NetworkType.VPN),
        ("docker0", NetworkType.UNKNOWN),
    ],
)
def test_interface_type(name, expected):
    """Test interface names map to link kinds."""
    assert interface_type(name) == expected


class TestPsutilSnapshotSource:
    """Tests for PsutilSnapshotSource."""

    def test_satisfies_protocol(self):
        """Test the source implements SnapshotSource."""
        assert isinstance(PsutilSnapshotSource(), SnapshotSource)

    def test_collects_real_snapshot(self):
        """Test a snapshot of the running system is valid."""
        clock = ManualClock()
        snapshot = PsutilSnapshotSource(clock=clock).collect()

        assert isinstance(snapshot, Snapshot)
        assert snapshot.timestamp == clock.now
        assert 0.0 <= snapshot.cpu.usage_percent <= 100.0
        assert snapshot.cpu.logical_cores >= 1
        assert snapshot.memory.total_mb > 0
        assert 0 <= snapshot.power.level <= 100
        assert snapshot.storage.total_mb > 0
        assert snapshot.uptime_ms >= 0

    def test_first_reading_has_no_rate(self, monkeypatch):
        """Test rates are zero until a baseline exists."""
        monkeypatch.setattr(psutil, "net_io_counters", _counters(5_000, 1_000))
        snapshot = PsutilSnapshotSource(clock=ManualClock()).collect()

        assert snapshot.network.rx_bytes == 5_000
        assert snapshot.network.rx_bytes_per_second == 0
        assert snapshot.network.tx_bytes_per_second == 0

    def test_network_rates(self, monkeypatch):
        """Test rates are the counter growth per second between readings."""
        clock = ManualClock()
        source = PsutilSnapshotSource(clock=clock)
        monkeypatch.setattr(psutil, "net_io_counters", _counters(1_000, 1_000))
        source.collect()

        clock.advance(2_000)
        monkeypatch.setattr(psutil, "net_io_counters", _counters(5_000, 2_000))
        snapshot = source.collect()

        assert snapshot.network.rx_bytes_per_second == 2_000
        assert snapshot.network.tx_bytes_per_second == 500

    def test_counter_reset_clamps_rate(self, monkeypatch):
        """Test a shrinking counter reports a zero rate."""
        clock = ManualClock()
        source = PsutilSnapshotSource(clock=clock)
        monkeypatch.setattr(psutil, "net_io_counters", _counters(9_000, 9_000))
        source.collect()

        clock.advance(1_000)
        monkeypatch.setattr(psutil, "net_io_counters", _counters(100, 100))
        snapshot = source.collect()

        assert snapshot.network.rx_bytes_per_second == 0
        assert snapshot.network.tx_bytes_per_second == 0

    def test_reset_drops_rate_baseline(self, monkeypatch):
        """Test reset() makes the next reading a fresh baseline."""
        clock = ManualClock()
        source = PsutilSnapshotSource(clock=clock)
        monkeypatch.setattr(psutil, "net_io_counters", _counters(1_000, 1_000))
        source.collect()

        source.reset()
        clock.advance(1_000)
        monkeypatch.setattr(psutil, "net_io_counters", _counters(9_000, 9_000))

        assert source.collect().network.rx_bytes_per_second == 0

    def test_no_battery(self, monkeypatch):
        """Test a device without a battery reports it as absent and full."""
        monkeypatch.setattr(psutil, "sensors_battery", lambda: None, raising=False)
        snapshot = PsutilSnapshotSource(clock=ManualClock()).collect()

        assert snapshot.power.status == BatteryStatus.NOT_PRESENT
        assert snapshot.power.level == 100
        assert snapshot.power.plugged
        assert snapshot.power.charging_speed is None

    def test_missing_sensors_are_none(self, monkeypatch):
        """Test absent temperature sensors are reported as None, not zero."""
        monkeypatch.setattr(psutil, "sensors_battery", lambda: None, raising=False)
        monkeypatch.setattr(psutil, "sensors_temperatures", lambda: {}, raising=False)
        snapshot = PsutilSnapshotSource(clock=ManualClock()).collect()

        assert snapshot.thermal.cpu_temperature is None
        assert snapshot.thermal.battery_temperature is None
        assert snapshot.thermal.other_temperatures == ()
        assert not snapshot.thermal.thermal_throttling
        assert snapshot.power.temperature is None

    def test_battery_temperature_from_sensor(self, monkeypatch):
        """Test a battery temperature sensor fills the power reading."""
        battery = SimpleNamespace(percent=80.0, secsleft=3600, power_plugged=False)
        reading = SimpleNamespace(label="", current=31.5, high=None, critical=None)
        monkeypatch.setattr(psutil, "sensors_battery", lambda: battery, raising=False)
        monkeypatch.setattr(
            psutil, "sensors_temperatures", lambda: {"BAT0": [reading]}, raising=False
        )
        snapshot = PsutilSnapshotSource(clock=ManualClock()).collect()

        assert snapshot.thermal.battery_temperature == 31.5
        assert snapshot.power.temperature == 31.5
        assert snapshot.thermal.cpu_temperature is None

    def test_discharging_battery(self, monkeypatch):
        """Test battery readings are mapped to power metrics."""
        battery = SimpleNamespace(percent=42.4, secsleft=3600, power_plugged=False)
        monkeypatch.setattr(psutil, "sensors_battery", lambda: battery, raising=False)
        snapshot = PsutilSnapshotSource(clock=ManualClock()).collect()

        assert snapshot.power.level == 42
        assert snapshot.power.status == BatteryStatus.DISCHARGING
        assert not snapshot.power.plugged

    def test_throttling_from_critical_sensor(self, monkeypatch):
        """Test a CPU sensor at its critical point flags throttling."""
        reading = SimpleNamespace(label="Package id 0", current=100.0, high=90.0, critical=100.0)
        monkeypatch.setattr(
            psutil, "sensors_temperatures", lambda: {"coretemp": [reading]}, raising=False
        )
        snapshot = PsutilSnapshotSource(clock=ManualClock()).collect()

        assert snapshot.thermal.cpu_temperature == 100.0
        assert snapshot.thermal.thermal_throttling

    def test_unreadable_metrics_raise(self, monkeypatch):
        """Test failures reading mandatory metrics raise CollectionError."""

        def denied():
            raise psutil.AccessDenied()

        monkeypatch.setattr(psutil, "virtual_memory", denied)

        with pytest.raises(CollectionError):
            PsutilSnapshotSource(clock=ManualClock()).collect()


class TestPsutilAppMetricsCollector:
    """Tests for PsutilAppMetricsCollector."""

    def test_satisfies_protocol(self):
        """Test the collector implements AppMetricsSource."""
        assert isinstance(PsutilAppMetricsCollector(), AppMetricsSource)

    def test_collects_current_process(self):
        """Test the default collector reads this test process."""
        clock = ManualClock()
        collector = PsutilAppMetricsCollector(clock=clock)
        metrics = collector.collect()

        assert isinstance(metrics, AppMetrics)
        assert metrics.pid == os.getpid()
        assert metrics.timestamp == clock.now
        assert metrics.rss_mb > 0
        assert metrics.thread_count >= 1
        assert metrics.cpu_percent >= 0.0
        assert 0.0 <= metrics.memory_percent <= 100.0

    def test_missing_platform_readings_are_none(self, monkeypatch):
        """Test readings the platform lacks are reported as None."""
        collector = PsutilAppMetricsCollector(clock=ManualClock())
        monkeypatch.delattr(psutil.Process, "num_fds", raising=False)
        monkeypatch.delattr(psutil.Process, "io_counters", raising=False)

        metrics = collector.collect()

        assert metrics.open_file_descriptors is None
        assert metrics.io_read_bytes is None
        assert metrics.io_write_bytes is None

    def test_denied_optional_reading_is_none(self, monkeypatch):
        """Test an AccessDenied optional reading does not fail the collection."""

        def denied(self):
            raise psutil.AccessDenied()

        monkeypatch.setattr(psutil.Process, "num_fds", denied, raising=False)

        metrics = PsutilAppMetricsCollector(clock=ManualClock()).collect()

        assert metrics.open_file_descriptors is None

    def test_vanished_process_raises(self, monkeypatch):
        """Test a process that exited raises CollectionError."""
        collector = PsutilAppMetricsCollector(clock=ManualClock())

        def gone(self):
            raise psutil.NoSuchProcess(self.pid)

        monkeypatch.setattr(psutil.Process, "memory_info", gone)

        with pytest.raises(CollectionError):
            collector.collect()

    def test_unknown_pid_raises(self):
        """Test observing a pid that does not exist raises CollectionError."""
        pid = max(psutil.pids()) + 100_000
        with pytest.raises(CollectionError):
            PsutilAppMetricsCollector(pid=pid)

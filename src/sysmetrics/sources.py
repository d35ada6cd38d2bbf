"""Metric sources: the collaborators that read raw device and process metrics."""

import logging
import threading
import time
from dataclasses import replace
from typing import Protocol, runtime_checkable

import psutil

from sysmetrics.clock import Clock, epoch_millis
from sysmetrics.errors import CollectionError
from sysmetrics.models import (
    AppMetrics,
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

logger = logging.getLogger(__name__)

MB = 1024 * 1024

# Sensor chips that report the package/core temperature, most specific first.
CPU_SENSOR_NAMES = (
    "coretemp",
    "k10temp",
    "zenpower",
    "cpu_thermal",
    "cpu-thermal",
    "soc_thermal",
    "acpitz",
)
BATTERY_SENSOR_NAMES = ("BAT0", "BAT1", "battery")

# Interface name prefixes mapped to link kinds.
INTERFACE_PREFIXES: tuple[tuple[str, NetworkType], ...] = (
    ("wl", NetworkType.WIFI),
    ("wifi", NetworkType.WIFI),
    ("en", NetworkType.ETHERNET),
    ("eth", NetworkType.ETHERNET),
    ("wwan", NetworkType.MOBILE),
    ("rmnet", NetworkType.MOBILE),
    ("bnep", NetworkType.BLUETOOTH),
    ("tun", NetworkType.VPN),
    ("tap", NetworkType.VPN),
    ("wg", NetworkType.VPN),
    ("ppp", NetworkType.VPN),
)


@runtime_checkable
class SnapshotSource(Protocol):
    """Produces one Snapshot per call, raising CollectionError on failure."""

    def collect(self) -> Snapshot: ...


@runtime_checkable
class AppMetricsSource(Protocol):
    """Produces one AppMetrics reading per call, raising CollectionError on failure."""

    def collect(self) -> AppMetrics: ...


def interface_type(name: str) -> NetworkType:
    """Guess the link kind from an interface name."""
    lowered = name.lower()
    for prefix, kind in INTERFACE_PREFIXES:
        if lowered.startswith(prefix):
            return kind
    return NetworkType.UNKNOWN


class PsutilSnapshotSource:
    """
    Snapshot source backed by psutil.

    CPU usage is measured between consecutive calls (the first call after
    construction or :meth:`reset` is primed here). Network rates are computed
    against the previous reading. Sensors the platform does not expose fall
    back to neutral defaults; failures reading mandatory metrics raise
    CollectionError.
    """

    def __init__(self, disk_path: str = "/", clock: Clock = epoch_millis) -> None:
        """
        Initialize the source.

        Args:
            disk_path: Mount point whose usage is reported as storage.
            clock: Callable returning the current time in epoch milliseconds.
        """
        self._disk_path = disk_path
        self._clock = clock
        self._lock = threading.Lock()
        self._last_rx = 0
        self._last_tx = 0
        self._last_measured = 0
        # Initialize CPU percent (first call returns 0.0)
        psutil.cpu_percent(interval=None)

    def reset(self) -> None:
        """Drop the network rate baseline and re-prime CPU usage."""
        with self._lock:
            self._last_rx = 0
            self._last_tx = 0
            self._last_measured = 0
        psutil.cpu_percent(interval=None)

    def collect(self) -> Snapshot:
        """Collect a snapshot of the current device state."""
        try:
            cpu = self._collect_cpu()
            memory = self._collect_memory()
            storage = self._collect_storage()
            network = self._collect_network()
            uptime_ms = int((time.time() - psutil.boot_time()) * 1000)
        except (psutil.Error, OSError) as exc:
            raise CollectionError(f"failed to read system metrics: {exc}") from exc

        power = self._collect_power()
        thermal = self._collect_thermal(power)
        if power.temperature is None and thermal.battery_temperature is not None:
            power = replace(power, temperature=thermal.battery_temperature)

        return Snapshot(
            cpu=cpu,
            memory=memory,
            power=power,
            thermal=thermal,
            storage=storage,
            network=network,
            timestamp=self._clock(),
            uptime_ms=max(0, uptime_ms),
        )

    def _collect_cpu(self) -> CpuMetrics:
        usage = psutil.cpu_percent(interval=None)
        logical = psutil.cpu_count(logical=True) or 1
        physical = psutil.cpu_count(logical=False) or logical

        max_khz: int | None = None
        current_khz: int | None = None
        per_core: tuple[int, ...] | None = None
        try:
            freq = psutil.cpu_freq()
            if freq is not None:
                current_khz = int(freq.current * 1000)
                max_khz = int(freq.max * 1000) if freq.max else None
            cores = psutil.cpu_freq(percpu=True)
            if cores:
                per_core = tuple(int(core.current * 1000) for core in cores)
        except (AttributeError, NotImplementedError, OSError):
            # Frequency scaling info is not exposed on every platform
            pass

        return CpuMetrics(
            usage_percent=min(100.0, max(0.0, usage)),
            physical_cores=physical,
            logical_cores=logical,
            max_frequency_khz=max_khz,
            current_frequency_khz=current_khz,
            core_frequencies_khz=per_core,
        )

    def _collect_memory(self) -> MemoryMetrics:
        mem = psutil.virtual_memory()
        swap = psutil.swap_memory()
        buffers = getattr(mem, "buffers", None)
        cached = getattr(mem, "cached", None)
        return MemoryMetrics(
            total_mb=mem.total // MB,
            used_mb=mem.used // MB,
            free_mb=mem.free // MB,
            available_mb=mem.available // MB,
            usage_percent=min(100.0, max(0.0, mem.percent)),
            buffers_mb=buffers // MB if buffers is not None else None,
            cached_mb=cached // MB if cached is not None else None,
            swap_total_mb=swap.total // MB,
            swap_free_mb=swap.free // MB,
        )

    def _collect_storage(self) -> StorageMetrics:
        disk = psutil.disk_usage(self._disk_path)
        return StorageMetrics(
            total_mb=disk.total // MB,
            free_mb=disk.free // MB,
            used_mb=disk.used // MB,
            usage_percent=min(100.0, max(0.0, disk.percent)),
        )

    def _collect_network(self) -> NetworkMetrics:
        counters = psutil.net_io_counters()
        rx = counters.bytes_recv if counters is not None else 0
        tx = counters.bytes_sent if counters is not None else 0
        now = self._clock()

        with self._lock:
            rx_rate, tx_rate = self._rates(rx, tx, now)
            self._last_rx = rx
            self._last_tx = tx
            self._last_measured = now

        connected, kind, name = self._active_link()
        return NetworkMetrics(
            rx_bytes=rx,
            tx_bytes=tx,
            rx_bytes_per_second=rx_rate,
            tx_bytes_per_second=tx_rate,
            is_connected=connected,
            connection_type=kind,
            network_name=name,
        )

    def _rates(self, rx: int, tx: int, now: int) -> tuple[int, int]:
        if self._last_measured == 0:
            return 0, 0
        elapsed = (now - self._last_measured) / 1000.0
        if elapsed <= 0:
            return 0, 0
        # A shrinking counter was reset; report no traffic for this interval.
        rx_delta = max(0, rx - self._last_rx)
        tx_delta = max(0, tx - self._last_tx)
        return int(rx_delta / elapsed), int(tx_delta / elapsed)

    def _active_link(self) -> tuple[bool, NetworkType, str | None]:
        try:
            stats = psutil.net_if_stats()
        except (psutil.Error, OSError):
            return False, NetworkType.UNKNOWN, None

        for name, stat in sorted(stats.items()):
            if not stat.isup or name.startswith("lo"):
                continue
            return True, interface_type(name), name
        return False, NetworkType.NONE, None

    def _collect_power(self) -> PowerMetrics:
        try:
            battery = psutil.sensors_battery()
        except (AttributeError, NotImplementedError, OSError) as exc:
            logger.debug("Battery sensor unavailable: %s", exc)
            battery = None

        if battery is None:
            # Mains-powered device: nothing is draining.
            return PowerMetrics(
                level=100,
                temperature=None,
                status=BatteryStatus.NOT_PRESENT,
                health=BatteryHealth.UNKNOWN,
                plugged=True,
            )

        level = int(round(min(100.0, max(0.0, battery.percent))))
        plugged = bool(battery.power_plugged)
        if plugged and level >= 100:
            status = BatteryStatus.FULL
        elif plugged:
            status = BatteryStatus.CHARGING
        elif battery.power_plugged is None:
            status = BatteryStatus.UNKNOWN
        else:
            status = BatteryStatus.DISCHARGING

        return PowerMetrics(
            level=level,
            temperature=None,
            status=status,
            health=BatteryHealth.UNKNOWN,
            plugged=plugged,
        )

    def _collect_thermal(self, power: PowerMetrics) -> ThermalMetrics:
        try:
            sensors = psutil.sensors_temperatures()
        except (AttributeError, NotImplementedError, OSError) as exc:
            logger.debug("Temperature sensors unavailable: %s", exc)
            sensors = {}

        cpu_temp: float | None = None
        throttling = False
        for chip in CPU_SENSOR_NAMES:
            readings = sensors.get(chip)
            if readings:
                cpu_temp = float(max(reading.current for reading in readings))
                throttling = any(
                    reading.critical is not None and reading.current >= reading.critical
                    for reading in readings
                )
                break

        battery_temp = power.temperature
        for chip in BATTERY_SENSOR_NAMES:
            readings = sensors.get(chip)
            if readings:
                battery_temp = float(readings[0].current)
                break

        others = tuple(
            (f"{chip}/{reading.label or index}", float(reading.current))
            for chip, readings in sorted(sensors.items())
            if chip not in CPU_SENSOR_NAMES
            for index, reading in enumerate(readings)
        )

        return ThermalMetrics(
            cpu_temperature=cpu_temp,
            battery_temperature=battery_temp,
            other_temperatures=others,
            thermal_throttling=throttling,
        )


class PsutilAppMetricsCollector:
    """
    Resource usage of one process (the current one by default) via psutil.

    Reads are batched with ``Process.oneshot()``. CPU usage is measured
    between consecutive calls. Open descriptors and I/O counters are not
    available on every platform and are reported as None there.
    """

    def __init__(self, pid: int | None = None, clock: Clock = epoch_millis) -> None:
        """
        Initialize the collector.

        Args:
            pid: Process to observe. Defaults to the current process.
            clock: Callable returning the current time in epoch milliseconds.
        """
        try:
            self._process = psutil.Process(pid)
        except psutil.Error as exc:
            raise CollectionError(f"cannot observe process {pid}: {exc}") from exc
        self._clock = clock
        # Initialize CPU percent (first call returns 0.0)
        self._process.cpu_percent(interval=None)

    @property
    def pid(self) -> int:
        return self._process.pid

    def reset(self) -> None:
        """Re-prime the CPU usage measurement."""
        try:
            self._process.cpu_percent(interval=None)
        except psutil.Error as exc:
            logger.debug("Could not re-prime CPU usage for %d: %s", self.pid, exc)

    def collect(self) -> AppMetrics:
        """Collect the current resource usage of the process."""
        try:
            with self._process.oneshot():
                cpu = self._process.cpu_percent(interval=None)
                memory = self._process.memory_info()
                memory_percent = self._process.memory_percent()
                threads = self._process.num_threads()
                name = self._process.name()
                fds = self._optional("num_fds")
                io = self._optional("io_counters")
        except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess) as exc:
            raise CollectionError(f"failed to read process {self.pid}: {exc}") from exc

        return AppMetrics(
            pid=self.pid,
            name=name or "",
            cpu_percent=max(0.0, cpu),
            rss_mb=memory.rss / MB,
            vms_mb=memory.vms / MB,
            memory_percent=min(100.0, max(0.0, memory_percent)),
            thread_count=threads or 0,
            open_file_descriptors=fds,
            io_read_bytes=io.read_bytes if io is not None else None,
            io_write_bytes=io.write_bytes if io is not None else None,
            timestamp=self._clock(),
        )

    def _optional(self, attribute: str):
        reader = getattr(self._process, attribute, None)
        if reader is None:
            # Not offered on this platform (num_fds on Windows, io_counters on macOS)
            return None
        try:
            return reader()
        except (psutil.AccessDenied, NotImplementedError) as exc:
            logger.debug("Process %s unavailable: %s", attribute, exc)
            return None

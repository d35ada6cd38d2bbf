"""Data models for sysmetrics."""

from dataclasses import dataclass
from enum import Enum

from sysmetrics.errors import InvalidMetricsError


def _require(condition: bool, message: str) -> None:
    if not condition:
        raise InvalidMetricsError(message)


def _is_percent(value: float) -> bool:
    return 0.0 <= value <= 100.0


def _non_negative_or_none(value: int | None) -> bool:
    return value is None or value >= 0


class BatteryStatus(Enum):
    """Charging state reported by the power supply."""

    UNKNOWN = "unknown"
    CHARGING = "charging"
    DISCHARGING = "discharging"
    NOT_CHARGING = "not_charging"
    FULL = "full"
    NOT_PRESENT = "not_present"


class BatteryHealth(Enum):
    """Condition of the battery."""

    UNKNOWN = "unknown"
    GOOD = "good"
    OVERHEAT = "overheat"
    DEAD = "dead"
    OVER_VOLTAGE = "over_voltage"
    UNSPECIFIED_FAILURE = "unspecified_failure"
    COLD = "cold"


class NetworkType(Enum):
    """Kind of the active network link."""

    NONE = "none"
    WIFI = "wifi"
    MOBILE = "mobile"
    ETHERNET = "ethernet"
    BLUETOOTH = "bluetooth"
    VPN = "vpn"
    UNKNOWN = "unknown"


class HealthStatus(Enum):
    """Health category derived from a score."""

    EXCELLENT = "excellent"
    GOOD = "good"
    WARNING = "warning"
    CRITICAL = "critical"


class HealthIssue(Enum):
    """Threshold violations detected in a snapshot."""

    HIGH_CPU = "high_cpu"
    HIGH_MEMORY = "high_memory"
    HIGH_TEMPERATURE = "high_temperature"
    LOW_BATTERY = "low_battery"
    THERMAL_THROTTLING = "thermal_throttling"
    LOW_STORAGE = "low_storage"
    POOR_PERFORMANCE = "poor_performance"


class TimeWindow(Enum):
    """Fixed aggregation windows; values are durations in milliseconds."""

    ONE_MINUTE = 60_000
    FIVE_MINUTES = 300_000
    THIRTY_MINUTES = 1_800_000
    ONE_HOUR = 3_600_000

    @property
    def duration_ms(self) -> int:
        return self.value

    @property
    def duration_seconds(self) -> int:
        return self.value // 1000

    @property
    def label(self) -> str:
        return {
            TimeWindow.ONE_MINUTE: "1 min",
            TimeWindow.FIVE_MINUTES: "5 min",
            TimeWindow.THIRTY_MINUTES: "30 min",
            TimeWindow.ONE_HOUR: "1 hour",
        }[self]


@dataclass(slots=True, frozen=True)
class CpuMetrics:
    """Processor utilization and frequencies (kHz)."""

    usage_percent: float
    physical_cores: int
    logical_cores: int
    max_frequency_khz: int | None = None
    current_frequency_khz: int | None = None
    core_frequencies_khz: tuple[int, ...] | None = None

    def __post_init__(self) -> None:
        _require(_is_percent(self.usage_percent), "usage_percent must be between 0 and 100")
        _require(self.physical_cores > 0, "physical_cores must be positive")
        _require(self.logical_cores > 0, "logical_cores must be positive")


@dataclass(slots=True, frozen=True)
class MemoryMetrics:
    """RAM and swap usage in megabytes."""

    total_mb: int
    used_mb: int
    free_mb: int
    available_mb: int
    usage_percent: float
    buffers_mb: int | None = None
    cached_mb: int | None = None
    swap_total_mb: int | None = None
    swap_free_mb: int | None = None

    def __post_init__(self) -> None:
        _require(self.total_mb >= 0, "total_mb must be non-negative")
        _require(self.used_mb >= 0, "used_mb must be non-negative")
        _require(self.free_mb >= 0, "free_mb must be non-negative")
        _require(self.available_mb >= 0, "available_mb must be non-negative")
        _require(_is_percent(self.usage_percent), "usage_percent must be between 0 and 100")
        for name in ("buffers_mb", "cached_mb", "swap_total_mb", "swap_free_mb"):
            _require(_non_negative_or_none(getattr(self, name)), f"{name} must be non-negative")


@dataclass(slots=True, frozen=True)
class PowerMetrics:
    """
    Battery level (percent) and charging state.

    A device without a battery reports status NOT_PRESENT with level 100 and
    plugged True, since nothing is draining. ``temperature`` (°C) and
    ``charging_speed`` are None when the platform does not report them.
    """

    level: int
    temperature: float | None
    status: BatteryStatus
    health: BatteryHealth
    plugged: bool
    charging_speed: int | None = None

    def __post_init__(self) -> None:
        _require(0 <= self.level <= 100, "level must be between 0 and 100")


@dataclass(slots=True, frozen=True)
class ThermalMetrics:
    """Temperatures in degrees Celsius; None where no sensor is exposed."""

    cpu_temperature: float | None
    battery_temperature: float | None
    other_temperatures: tuple[tuple[str, float], ...] = ()
    thermal_throttling: bool = False


@dataclass(slots=True, frozen=True)
class StorageMetrics:
    """Disk capacity in megabytes."""

    total_mb: int
    free_mb: int
    used_mb: int
    usage_percent: float

    def __post_init__(self) -> None:
        _require(self.total_mb >= 0, "total_mb must be non-negative")
        _require(self.free_mb >= 0, "free_mb must be non-negative")
        _require(self.used_mb >= 0, "used_mb must be non-negative")
        _require(_is_percent(self.usage_percent), "usage_percent must be between 0 and 100")


@dataclass(slots=True, frozen=True)
class NetworkMetrics:
    """Cumulative traffic counters since boot plus current rates."""

    rx_bytes: int
    tx_bytes: int
    rx_bytes_per_second: int
    tx_bytes_per_second: int
    is_connected: bool
    connection_type: NetworkType
    network_name: str | None = None
    signal_strength: int | None = None  # dBm

    def __post_init__(self) -> None:
        _require(self.rx_bytes >= 0, "rx_bytes must be non-negative")
        _require(self.tx_bytes >= 0, "tx_bytes must be non-negative")
        _require(self.rx_bytes_per_second >= 0, "rx_bytes_per_second must be non-negative")
        _require(self.tx_bytes_per_second >= 0, "tx_bytes_per_second must be non-negative")

    @property
    def total_bytes(self) -> int:
        return self.rx_bytes + self.tx_bytes

    @property
    def total_bytes_per_second(self) -> int:
        return self.rx_bytes_per_second + self.tx_bytes_per_second


@dataclass(slots=True, frozen=True)
class Snapshot:
    """Immutable point-in-time capture of all tracked metric categories."""

    cpu: CpuMetrics
    memory: MemoryMetrics
    power: PowerMetrics
    thermal: ThermalMetrics
    storage: StorageMetrics
    network: NetworkMetrics
    timestamp: int  # epoch milliseconds
    uptime_ms: int

    def __post_init__(self) -> None:
        _require(self.timestamp >= 0, "timestamp must be non-negative")
        _require(self.uptime_ms >= 0, "uptime_ms must be non-negative")


@dataclass(slots=True, frozen=True)
class Aggregate:
    """
    Statistical summary of the snapshots in the half-open window [start, end).

    A sample_count of 0 is the regular "no data" value, see :meth:`empty`.
    ``temperature_celsius`` is the CPU temperature of the newest sample and
    is None when that sample had no CPU sensor reading.
    """

    window: TimeWindow
    start: int
    end: int
    sample_count: int
    cpu_percent_average: float
    memory_percent_average: float
    power_level_average: float
    temperature_celsius: float | None
    health_score_average: int
    cpu_percent_min: float
    cpu_percent_max: float
    memory_percent_min: float
    memory_percent_max: float
    network_rx_bytes_total: int = 0
    network_tx_bytes_total: int = 0

    def __post_init__(self) -> None:
        _require(self.sample_count >= 0, "sample_count must be non-negative")
        _require(self.start <= self.end, "start must be <= end")
        _require(_is_percent(self.cpu_percent_average), "cpu_percent_average must be between 0 and 100")
        _require(
            _is_percent(self.memory_percent_average),
            "memory_percent_average must be between 0 and 100",
        )
        _require(_is_percent(self.power_level_average), "power_level_average must be between 0 and 100")
        _require(0 <= self.health_score_average <= 100, "health_score_average must be between 0 and 100")
        _require(self.network_rx_bytes_total >= 0, "network_rx_bytes_total must be non-negative")
        _require(self.network_tx_bytes_total >= 0, "network_tx_bytes_total must be non-negative")

    @classmethod
    def empty(cls, window: TimeWindow, start: int, end: int) -> "Aggregate":
        # No samples is not evidence of a problem, hence a perfect health score.
        return cls(
            window=window,
            start=start,
            end=end,
            sample_count=0,
            cpu_percent_average=0.0,
            memory_percent_average=0.0,
            power_level_average=0.0,
            temperature_celsius=0.0,
            health_score_average=100,
            cpu_percent_min=0.0,
            cpu_percent_max=0.0,
            memory_percent_min=0.0,
            memory_percent_max=0.0,
        )

    @property
    def has_data(self) -> bool:
        return self.sample_count > 0

    @property
    def duration_ms(self) -> int:
        return self.end - self.start

    @property
    def samples_per_second(self) -> float:
        if self.duration_ms <= 0:
            return 0.0
        return self.sample_count * 1000.0 / self.duration_ms

    @property
    def cpu_spread(self) -> float:
        """Difference between max and min CPU usage."""
        return self.cpu_percent_max - self.cpu_percent_min

    @property
    def memory_spread(self) -> float:
        """Difference between max and min memory usage."""
        return self.memory_percent_max - self.memory_percent_min


@dataclass(slots=True, frozen=True)
class HealthAssessment:
    """Score, status, issues and recommendations derived from one snapshot."""

    score: float
    status: HealthStatus
    issues: tuple[HealthIssue, ...]
    recommendations: tuple[str, ...]
    timestamp: int

    def __post_init__(self) -> None:
        _require(0.0 <= self.score <= 100.0, "score must be between 0 and 100")
        _require(self.timestamp >= 0, "timestamp must be non-negative")


class AppMemoryStatus(Enum):
    """Grading of the monitored process's memory share."""

    HEALTHY = "healthy"
    MODERATE = "moderate"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(slots=True, frozen=True)
class AppMetrics:
    """
    Resource usage of a single process, normally the host application.

    ``cpu_percent`` is relative to one core and may exceed 100 on
    multi-core machines. ``memory_percent`` is the resident set as a share
    of physical memory. Readings the platform does not offer are None.
    """

    pid: int
    name: str
    cpu_percent: float
    rss_mb: float
    vms_mb: float
    memory_percent: float
    thread_count: int
    open_file_descriptors: int | None = None
    io_read_bytes: int | None = None
    io_write_bytes: int | None = None
    timestamp: int = 0

    def __post_init__(self) -> None:
        _require(self.pid >= 0, "pid must be non-negative")
        _require(self.cpu_percent >= 0.0, "cpu_percent must be non-negative")
        _require(self.rss_mb >= 0.0, "rss_mb must be non-negative")
        _require(self.vms_mb >= 0.0, "vms_mb must be non-negative")
        _require(_is_percent(self.memory_percent), "memory_percent must be between 0 and 100")
        _require(self.thread_count >= 0, "thread_count must be non-negative")
        for name in ("open_file_descriptors", "io_read_bytes", "io_write_bytes"):
            _require(_non_negative_or_none(getattr(self, name)), f"{name} must be non-negative")
        _require(self.timestamp >= 0, "timestamp must be non-negative")

    @classmethod
    def empty(cls, pid: int = 0, name: str = "") -> "AppMetrics":
        return cls(
            pid=pid,
            name=name,
            cpu_percent=0.0,
            rss_mb=0.0,
            vms_mb=0.0,
            memory_percent=0.0,
            thread_count=0,
        )

    @property
    def memory_status(self) -> AppMemoryStatus:
        if self.memory_percent >= 95.0:
            return AppMemoryStatus.CRITICAL
        if self.memory_percent >= 80.0:
            return AppMemoryStatus.WARNING
        if self.memory_percent >= 60.0:
            return AppMemoryStatus.MODERATE
        return AppMemoryStatus.HEALTHY

    @property
    def is_memory_warning(self) -> bool:
        return self.memory_percent >= 80.0

    @property
    def is_memory_critical(self) -> bool:
        return self.memory_percent >= 95.0

    @property
    def io_total_bytes(self) -> int | None:
        if self.io_read_bytes is None or self.io_write_bytes is None:
            return None
        return self.io_read_bytes + self.io_write_bytes

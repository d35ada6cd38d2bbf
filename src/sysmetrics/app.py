"""sysmetrics-top - Textual dashboard over the metrics orchestrator."""

import logging
from queue import Empty

from textual.app import App, ComposeResult
from textual.containers import Container, Horizontal
from textual.logging import TextualHandler
from textual.widgets import DataTable, Footer, Static

from sysmetrics.config import MetricsConfig
from sysmetrics.errors import CollectionError, StreamClosedError
from sysmetrics.health import evaluate
from sysmetrics.models import Aggregate, HealthAssessment, HealthStatus, Snapshot, TimeWindow
from sysmetrics.monitor import MetricsOrchestrator
from sysmetrics.sources import PsutilSnapshotSource, SnapshotSource
from sysmetrics.stream import Subscription

AGGREGATE_ROWS = 10

STATUS_COLORS = {
    HealthStatus.EXCELLENT: "green",
    HealthStatus.GOOD: "cyan",
    HealthStatus.WARNING: "yellow",
    HealthStatus.CRITICAL: "red",
}


def configure_logging(level: str = "INFO") -> None:
    """Route log records to the Textual devtools console."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        handlers=[TextualHandler()],
    )


def format_bytes(size: int) -> str:
    """Format bytes as human-readable string."""
    for unit in ["B", "K", "M", "G", "T"]:
        if size < 1024:
            return f"{size:5.1f}{unit}" if unit != "B" else f"{size:5d}{unit}"
        size = size / 1024
    return f"{size:.1f}P"


def format_uptime(uptime_ms: int) -> str:
    seconds_total = uptime_ms // 1000
    days = seconds_total // 86400
    hours = (seconds_total % 86400) // 3600
    minutes = (seconds_total % 3600) // 60
    seconds = seconds_total % 60
    if days > 0:
        return f"{days} days, {hours:02d}:{minutes:02d}:{seconds:02d}"
    return f"{hours:02d}:{minutes:02d}:{seconds:02d}"


def format_temperature(celsius: float | None) -> str:
    if celsius is None:
        return "n/a"
    return f"{celsius:.1f}°C"


def render_bar(percent: float, color: str, width: int = 20) -> str:
    filled = min(int(percent / (100 / width)), width)
    # Use escaped brackets for the bar container
    return "\\[" + f"[{color}]█[/{color}]" * filled + "[dim]░[/dim]" * (width - filled) + "]"


class HeaderStats(Static):
    """Header widget showing processor, memory, power and thermal readings."""

    DEFAULT_CSS = """
    HeaderStats {
        height: auto;
        min-height: 5;
        padding: 1;
        background: $surface;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HeaderStats."""
        super().__init__(*args, **kwargs)
        self._snapshot: Snapshot | None = None

    @property
    def snapshot(self) -> Snapshot | None:
        return self._snapshot

    def compose(self) -> ComposeResult:
        """Compose the header stats layout."""
        yield Horizontal(
            Static(self._get_cpu_info(), id="cpu-info"),
            Static(self._get_device_info(), id="device-info"),
        )

    def update_stats(self, snapshot: Snapshot) -> None:
        """Update the statistics from a snapshot."""
        self._snapshot = snapshot
        cpu_info = self.query_one("#cpu-info", Static)
        device_info = self.query_one("#device-info", Static)
        cpu_info.update(self._get_cpu_info())
        device_info.update(self._get_device_info())

    def _get_cpu_info(self) -> str:
        snapshot = self._snapshot
        if snapshot is None:
            return "Loading CPU info..."
        cpu = snapshot.cpu
        memory = snapshot.memory
        lines = [
            f"CPU {render_bar(cpu.usage_percent, 'green')} {cpu.usage_percent:5.1f}%",
            f"Mem {render_bar(memory.usage_percent, 'cyan')} "
            f"{memory.used_mb / 1024:.1f}G/{memory.total_mb / 1024:.1f}G",
            f"Dsk {render_bar(snapshot.storage.usage_percent, 'yellow')} "
            f"{snapshot.storage.usage_percent:5.1f}%",
        ]
        if cpu.current_frequency_khz is not None:
            lines.append(
                f"Cores: {cpu.physical_cores}/{cpu.logical_cores}  "
                f"Freq: {cpu.current_frequency_khz / 1_000_000:.2f} GHz"
            )
        else:
            lines.append(f"Cores: {cpu.physical_cores}/{cpu.logical_cores}")
        return "\n".join(lines)

    def _get_device_info(self) -> str:
        snapshot = self._snapshot
        if snapshot is None:
            return "Loading device info..."
        power = snapshot.power
        thermal = snapshot.thermal
        network = snapshot.network
        throttled = " [red]THROTTLED[/red]" if thermal.thermal_throttling else ""
        return (
            f"Bat {render_bar(power.level, 'magenta')} {power.level:3d}% ({power.status.value})\n"
            f"Temp: CPU {format_temperature(thermal.cpu_temperature)}  "
            f"Battery {format_temperature(thermal.battery_temperature)}"
            f"{throttled}\n"
            f"Net: ↓{format_bytes(network.rx_bytes_per_second)}/s "
            f"↑{format_bytes(network.tx_bytes_per_second)}/s ({network.connection_type.value})\n"
            f"Uptime: {format_uptime(snapshot.uptime_ms)}"
        )


class HealthPanel(Static):
    """Panel showing the latest health assessment."""

    DEFAULT_CSS = """
    HealthPanel {
        height: auto;
        padding: 0 1;
        border: solid $secondary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize HealthPanel."""
        super().__init__("Waiting for health data...", *args, **kwargs)
        self._assessment: HealthAssessment | None = None

    @property
    def assessment(self) -> HealthAssessment | None:
        return self._assessment

    def update_assessment(self, assessment: HealthAssessment) -> None:
        self._assessment = assessment
        color = STATUS_COLORS[assessment.status]
        lines = [
            f"Health: [{color}]{assessment.score:5.1f} {assessment.status.value.upper()}[/{color}]"
        ]
        if assessment.issues:
            lines.append("Issues: " + ", ".join(issue.value for issue in assessment.issues))
            lines.extend(f"  • {text}" for text in assessment.recommendations)
        self.update("\n".join(lines))


class AggregateTable(Container):
    """Container for the per-window aggregate table."""

    DEFAULT_CSS = """
    AggregateTable {
        height: 1fr;
        border: solid $primary;
    }
    """

    def __init__(self, *args, **kwargs) -> None:
        """Initialize AggregateTable."""
        super().__init__(*args, **kwargs)
        self._window: TimeWindow = TimeWindow.ONE_MINUTE
        self._row_count = 0

    @property
    def window(self) -> TimeWindow:
        """Get current aggregation window."""
        return self._window

    @property
    def row_count(self) -> int:
        return self._row_count

    def cycle_window(self) -> TimeWindow:
        """Cycle to the next aggregation window and return it."""
        windows = list(TimeWindow)
        current_index = windows.index(self._window)
        self._window = windows[(current_index + 1) % len(windows)]
        return self._window

    def compose(self) -> ComposeResult:
        """Compose the aggregate table."""
        yield DataTable(id="aggregate-table")

    def on_mount(self) -> None:
        """Initialize the data table when mounted."""
        table = self.query_one("#aggregate-table", DataTable)
        table.cursor_type = "row"

        table.add_column("START", key="start", width=12)
        table.add_column("N", key="samples", width=5)
        table.add_column("CPU avg", key="cpu", width=8)
        table.add_column("CPU min/max", key="cpu_range", width=12)
        table.add_column("MEM avg", key="mem", width=8)
        table.add_column("BAT", key="battery", width=6)
        table.add_column("TEMP", key="temp", width=7)
        table.add_column("HEALTH", key="health", width=7)
        table.add_column("RX", key="rx", width=8)
        table.add_column("TX", key="tx", width=8)

    def update_aggregates(self, aggregates: list[Aggregate]) -> None:
        """Replace the table contents, newest window first."""
        table = self.query_one("#aggregate-table", DataTable)
        table.clear()
        for item in reversed(aggregates):
            table.add_row(
                self._format_start(item.start),
                str(item.sample_count),
                f"{item.cpu_percent_average:5.1f}",
                f"{item.cpu_percent_min:4.0f}/{item.cpu_percent_max:4.0f}",
                f"{item.memory_percent_average:5.1f}",
                f"{item.power_level_average:4.0f}%",
                format_temperature(item.temperature_celsius),
                str(item.health_score_average),
                format_bytes(item.network_rx_bytes_total),
                format_bytes(item.network_tx_bytes_total),
                key=str(item.start),
            )
        self._row_count = len(aggregates)

    @staticmethod
    def _format_start(start_ms: int) -> str:
        seconds = (start_ms // 1000) % 86400
        return f"{seconds // 3600:02d}:{(seconds % 3600) // 60:02d}:{seconds % 60:02d}Z"


class SysmetricsApp(App):
    """Main sysmetrics dashboard application."""

    TITLE = "sysmetrics"
    SUB_TITLE = "Device Telemetry"

    CSS = """
    Screen {
        layout: vertical;
    }

    #header-stats {
        dock: top;
        height: auto;
        min-height: 6;
    }

    Horizontal {
        height: auto;
    }

    #cpu-info {
        width: 1fr;
        padding-right: 2;
    }

    #device-info {
        width: 1fr;
        padding-left: 2;
    }
    """

    BINDINGS = [
        ("q", "quit", "Quit"),
        ("w", "cycle_window", "Window"),
        ("c", "clear_history", "Clear history"),
    ]

    def __init__(
        self,
        source: SnapshotSource | None = None,
        config: MetricsConfig | None = None,
    ) -> None:
        """Initialize the SysmetricsApp."""
        super().__init__()
        self._config = config or MetricsConfig()
        self._orchestrator = MetricsOrchestrator(
            source or PsutilSnapshotSource(disk_path=self._config.disk_path),
            self._config,
        )
        self._updates: Subscription[Snapshot] | None = None

    @property
    def orchestrator(self) -> MetricsOrchestrator:
        return self._orchestrator

    def compose(self) -> ComposeResult:
        """Compose the application layout."""
        yield HeaderStats(id="header-stats")
        yield HealthPanel(id="health-panel")
        yield AggregateTable()
        yield Footer()

    def on_mount(self) -> None:
        """Start streaming snapshots when the app is mounted."""
        self._orchestrator.initialize()
        self._updates = self._orchestrator.stream(self._config.stream_interval_ms)
        # Set up timers to poll the stream and refresh aggregates
        self.set_interval(0.5, self._check_for_updates)
        self.set_interval(5.0, self._refresh_aggregates)

    def on_unmount(self) -> None:
        self._orchestrator.destroy()

    def _check_for_updates(self) -> None:
        """Drain the stream and show the most recent snapshot."""
        if self._updates is None:
            return
        snapshot = None
        while True:
            try:
                snapshot = self._updates.get(block=False)
            except Empty:
                break
            except CollectionError as exc:
                self.notify(f"Collection failed: {exc}", severity="warning")
            except StreamClosedError:
                self._updates = None
                break

        if snapshot is not None:
            self._update_ui(snapshot)

    def _update_ui(self, snapshot: Snapshot) -> None:
        """Update the UI with the new snapshot."""
        self.query_one("#header-stats", HeaderStats).update_stats(snapshot)
        self.query_one("#health-panel", HealthPanel).update_assessment(evaluate(snapshot))

    def _refresh_aggregates(self) -> None:
        if not self._orchestrator.is_active:
            return
        table = self.query_one(AggregateTable)
        table.update_aggregates(self._orchestrator.aggregate_history(table.window, AGGREGATE_ROWS))

    def action_cycle_window(self) -> None:
        """Handle window action - cycle through aggregation windows."""
        table = self.query_one(AggregateTable)
        window = table.cycle_window()
        self._refresh_aggregates()
        self.notify(f"Window: {window.label}")

    def action_clear_history(self) -> None:
        if not self._orchestrator.is_active:
            return
        self._orchestrator.clear_history()
        self._refresh_aggregates()
        self.notify("History cleared")

    def action_quit(self) -> None:
        """Handle quit action with graceful cleanup."""
        self._orchestrator.destroy()
        self.exit()


def main() -> None:
    """Entry point for the sysmetrics-top application."""
    config = MetricsConfig.from_env()
    configure_logging(config.log_level)
    app = SysmetricsApp(config=config)
    app.run()


if __name__ == "__main__":
    main()

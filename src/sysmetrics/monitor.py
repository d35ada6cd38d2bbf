"""Metrics orchestrator: caching, history, streams and aggregation."""

import logging
import threading
from collections.abc import Callable

from sysmetrics import aggregation
from sysmetrics.cache import SnapshotCache
from sysmetrics.clock import Clock, epoch_millis
from sysmetrics.config import MetricsConfig
from sysmetrics.errors import CollectionError, NotInitializedError
from sysmetrics.health import evaluate
from sysmetrics.history import HistoryBuffer
from sysmetrics.models import Aggregate, AppMetrics, HealthAssessment, Snapshot, TimeWindow
from sysmetrics.sources import AppMetricsSource, PsutilAppMetricsCollector, SnapshotSource
from sysmetrics.stream import Subscription

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_COUNT = 60

ErrorHandler = Callable[[CollectionError], None]


class MetricsOrchestrator:
    """
    Serves current snapshots, streams, history and aggregates for one device.

    The orchestrator owns the snapshot cache and the history buffer. A single
    lock spans "check cache, maybe collect, append to history, cache", so
    concurrent callers inside the TTL never trigger a duplicate collection.
    Every operation except :meth:`initialize` and :meth:`destroy` requires
    the orchestrator to be active and raises NotInitializedError otherwise.

    Usage::

        with MetricsOrchestrator(PsutilSnapshotSource()) as metrics:
            snapshot = metrics.get_current()
            with metrics.stream(interval_ms=1000) as updates:
                for snapshot in updates:
                    ...
    """

    def __init__(
        self,
        source: SnapshotSource,
        config: MetricsConfig | None = None,
        *,
        clock: Clock = epoch_millis,
        app_source: AppMetricsSource | None = None,
    ) -> None:
        """
        Initialize the MetricsOrchestrator.

        Args:
            source: Collaborator producing one snapshot per call.
            config: Tunables; defaults to ``MetricsConfig()``.
            clock: Callable returning the current time in epoch milliseconds.
            app_source: Per-process collector; defaults to a psutil collector
                for the current process, created on first use.
        """
        self._source = source
        self._app_source = app_source
        self._config = config or MetricsConfig()
        self._clock = clock
        self._cache = SnapshotCache(self._config.cache_ttl_ms, clock=clock)
        self._history = HistoryBuffer(self._config.history_capacity)
        self._lock = threading.Lock()
        self._subscriptions: set[Subscription] = set()
        self._subscriptions_lock = threading.Lock()
        self._active = False

    @property
    def config(self) -> MetricsConfig:
        return self._config

    @property
    def is_active(self) -> bool:
        return self._active

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def initialize(self) -> None:
        """Activate the orchestrator. Calling it again is a no-op."""
        with self._lock:
            if self._active:
                return
            self._reset_source()
            self._cache.clear()
            self._active = True
        logger.info("Metrics orchestrator initialized")

    def destroy(self) -> None:
        """Cancel all subscriptions, drop cached state and deactivate."""
        with self._subscriptions_lock:
            subscriptions = list(self._subscriptions)
        for subscription in subscriptions:
            subscription.cancel()

        with self._lock:
            was_active = self._active
            self._active = False
            self._cache.clear()
            self._history.clear()
            self._reset_source()
        if was_active:
            logger.info("Metrics orchestrator destroyed")

    def __enter__(self) -> "MetricsOrchestrator":
        self.initialize()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------
    def get_current(self) -> Snapshot:
        """
        Return the cached snapshot while fresh, otherwise collect a new one.

        A fresh collection is appended to history and cached before it is
        returned.

        Raises:
            CollectionError: The source failed; cache and history are untouched.
            NotInitializedError: The orchestrator is not active.
        """
        with self._lock:
            self._check_active()

            cached = self._cache.get()
            if cached is not None:
                logger.debug("Serving cached snapshot from %d", cached.timestamp)
                return cached

            snapshot = self._collect()
            self._history.append(snapshot)
            self._cache.put(snapshot)
            return snapshot

    def health(self) -> HealthAssessment:
        """Evaluate the health of the current snapshot."""
        return evaluate(self.get_current())

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------
    def stream(
        self,
        interval_ms: int | None = None,
        on_error: ErrorHandler | None = None,
    ) -> Subscription[Snapshot]:
        """
        Start a stream of snapshots polled every ``interval_ms``.

        Consecutive structurally equal snapshots are emitted once. The
        returned subscription is already running; cancel it when done.
        """
        interval = self._effective_interval(interval_ms, self._config.stream_interval_ms)
        return self._subscribe(
            self.get_current,
            interval,
            key=None,
            on_error=on_error,
            name="MetricsStream",
        )

    def stream_health(
        self,
        interval_ms: int | None = None,
        on_error: ErrorHandler | None = None,
    ) -> Subscription[HealthAssessment]:
        """Start a stream of health assessments, emitted when the score changes."""
        interval = self._effective_interval(interval_ms, self._config.health_interval_ms)
        return self._subscribe(
            self.health,
            interval,
            key=lambda assessment: assessment.score,
            on_error=on_error,
            name="HealthStream",
        )

    # ------------------------------------------------------------------
    # Process metrics
    # ------------------------------------------------------------------
    def app_metrics(self) -> AppMetrics:
        """
        Read the resource usage of the observed process.

        Readings are neither cached nor kept in history.

        Raises:
            CollectionError: The process could not be read.
            NotInitializedError: The orchestrator is not active.
        """
        with self._lock:
            self._check_active()
            if self._app_source is None:
                self._app_source = PsutilAppMetricsCollector(clock=self._clock)
            app_source = self._app_source

        try:
            return app_source.collect()
        except CollectionError:
            logger.warning("App metrics collection failed", exc_info=True)
            raise
        except Exception as exc:
            logger.warning("App metrics source raised %s", type(exc).__name__, exc_info=True)
            raise CollectionError(f"app metrics source failed: {exc}") from exc

    def stream_app(
        self,
        interval_ms: int | None = None,
        on_error: ErrorHandler | None = None,
    ) -> Subscription[AppMetrics]:
        """Start a stream of process metrics polled every ``interval_ms``."""
        interval = self._effective_interval(interval_ms, self._config.app_interval_ms)
        return self._subscribe(
            self.app_metrics,
            interval,
            key=None,
            on_error=on_error,
            name="AppMetricsStream",
        )

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------
    def history(self, count: int = DEFAULT_HISTORY_COUNT) -> list[Snapshot]:
        """Return up to ``count`` most recent snapshots, oldest first."""
        with self._lock:
            self._check_active()
            return self._history.recent(count)

    def clear_history(self) -> None:
        """Empty the history buffer; the cache is left alone."""
        with self._lock:
            self._check_active()
            self._history.clear()
        logger.debug("History cleared")

    # ------------------------------------------------------------------
    # Aggregation
    # ------------------------------------------------------------------
    def aggregate(self, window: TimeWindow) -> Aggregate:
        """Aggregate the most recently completed ``window``."""
        snapshots, now = self._read_history()
        result = aggregation.aggregate(snapshots, window, now)
        logger.debug(
            "Aggregated %s window [%d, %d): %d of %d samples",
            window.label,
            result.start,
            result.end,
            result.sample_count,
            len(snapshots),
        )
        self._warn_if_high(result)
        return result

    def aggregate_history(self, window: TimeWindow, count: int) -> list[Aggregate]:
        """
        Aggregate ``count`` consecutive windows ending at the last complete one.

        All windows are computed from the same copy of history. Oldest first.
        """
        snapshots, now = self._read_history()
        return aggregation.aggregate_series(snapshots, window, now, count)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _check_active(self) -> None:
        if not self._active:
            raise NotInitializedError("MetricsOrchestrator.initialize() must be called first")

    def _collect(self) -> Snapshot:
        try:
            snapshot = self._source.collect()
        except CollectionError:
            logger.warning("Snapshot collection failed", exc_info=True)
            raise
        except Exception as exc:
            logger.warning("Snapshot source raised %s", type(exc).__name__, exc_info=True)
            raise CollectionError(f"snapshot source failed: {exc}") from exc
        logger.debug("Collected snapshot at %d", snapshot.timestamp)
        return snapshot

    def _reset_source(self) -> None:
        for source in (self._source, self._app_source):
            reset = getattr(source, "reset", None)
            if callable(reset):
                reset()

    def _read_history(self) -> tuple[list[Snapshot], int]:
        with self._lock:
            self._check_active()
            return self._history.snapshot(), self._clock()

    def _warn_if_high(self, result: Aggregate) -> None:
        if result.cpu_percent_average > self._config.high_cpu_warning:
            logger.warning("High CPU usage over %s: %.1f%%", result.window.label, result.cpu_percent_average)
        if result.memory_percent_average > self._config.high_memory_warning:
            logger.warning(
                "High memory usage over %s: %.1f%%", result.window.label, result.memory_percent_average
            )

    def _effective_interval(self, interval_ms: int | None, default_ms: int) -> float:
        requested = default_ms if interval_ms is None else interval_ms
        return max(requested, self._config.min_interval_ms) / 1000.0

    def _subscribe(
        self,
        poll: Callable[[], object],
        interval: float,
        *,
        key: Callable[[object], object] | None,
        on_error: ErrorHandler | None,
        name: str,
    ) -> Subscription:
        self._check_active()
        subscription: Subscription = Subscription(
            poll,
            interval,
            key=key,
            on_error=on_error,
            on_close=self._forget,
            name=name,
        )
        with self._subscriptions_lock:
            self._subscriptions.add(subscription)
        return subscription.start()

    def _forget(self, subscription: Subscription) -> None:
        with self._subscriptions_lock:
            self._subscriptions.discard(subscription)

"""Verification Test: Chaos Monkey - Random collection failures.

A source that fails at random while streams are running must never end a
stream or corrupt cached state. Every failed tick is reported to the
consumer and the next tick is attempted on schedule.
"""

import random
import threading
import time
from queue import Empty

from conftest import FakeSource

from sysmetrics.config import MetricsConfig
from sysmetrics.errors import CollectionError
from sysmetrics.models import Snapshot
from sysmetrics.monitor import MetricsOrchestrator


class FlakySource(FakeSource):
    """FakeSource that fails a random share of collections."""

    def __init__(self, failure_rate: float, seed: int = 1234) -> None:
        super().__init__()
        self._failure_rate = failure_rate
        self._random = random.Random(seed)
        self._lock = threading.Lock()
        self.failures = 0

    def collect(self) -> Snapshot:
        with self._lock:
            fail = self._random.random() < self._failure_rate
            if fail:
                self.failures += 1
        if fail:
            self.calls += 1
            raise CollectionError("injected failure")
        return super().collect()


class TestChaosMonkey:
    """Chaos Monkey verification suite tests."""

    def test_stream_survives_random_failures(self):
        """
        Test that a stream keeps delivering while the source fails randomly.

        Uses a short cache TTL so that every tick reaches the source.
        """
        config = MetricsConfig(cache_ttl_ms=1, min_interval_ms=1)
        source = FlakySource(failure_rate=0.4)
        snapshots = 0
        errors = 0

        with MetricsOrchestrator(source, config) as metrics:
            stream = metrics.stream(interval_ms=10)
            deadline = time.time() + 3.0
            while time.time() < deadline and (snapshots < 10 or errors < 3):
                try:
                    stream.get(timeout=1.0)
                    snapshots += 1
                except CollectionError:
                    errors += 1
                except Empty:
                    continue

            assert stream.is_running, "Stream should still be running after failures"

        assert snapshots >= 10, f"Expected at least 10 snapshots, got {snapshots}"
        assert errors >= 3, f"Expected at least 3 reported failures, got {errors}"
        assert stream.is_cancelled

    def test_failures_never_reach_history(self):
        """
        Test that history only ever contains successfully collected snapshots.

        Hammers get_current() from several threads against a flaky source.
        """
        config = MetricsConfig(cache_ttl_ms=1, history_capacity=1000)
        source = FlakySource(failure_rate=0.5, seed=99)
        successes = []
        lock = threading.Lock()

        def worker():
            for _ in range(50):
                try:
                    snapshot = metrics.get_current()
                except CollectionError:
                    continue
                with lock:
                    successes.append(snapshot)
                time.sleep(0.002)

        with MetricsOrchestrator(source, config) as metrics:
            threads = [threading.Thread(target=worker) for _ in range(4)]
            for thread in threads:
                thread.start()
            for thread in threads:
                thread.join(timeout=10.0)

            history = metrics.history(1000)

        assert source.failures > 0
        assert history, "Some collections should have succeeded"
        assert all(isinstance(item, Snapshot) for item in history)
        assert set(id(item) for item in history) <= set(id(item) for item in successes)

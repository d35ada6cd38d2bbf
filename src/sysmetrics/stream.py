"""Cancellable periodic polling streams."""

import logging
import threading
from collections.abc import Callable, Hashable, Iterator
from queue import Queue
from typing import Generic, TypeVar

from sysmetrics.errors import CollectionError, NotInitializedError, StreamClosedError

logger = logging.getLogger(__name__)

T = TypeVar("T")

_UNSET = object()
_CLOSED = object()


class Subscription(Generic[T]):
    """
    A stream of values produced by polling on a fixed period.

    Runs the poll in a daemon thread and pushes every value that differs
    from the previous emission onto a thread-safe Queue. A failed poll is
    queued as a CollectionError for that tick and the loop keeps going on
    the next interval. Consumers read with :meth:`get` or by iterating.
    """

    def __init__(
        self,
        poll: Callable[[], T],
        interval: float,
        *,
        key: Callable[[T], Hashable] | None = None,
        on_error: Callable[[CollectionError], None] | None = None,
        on_close: Callable[["Subscription[T]"], None] | None = None,
        name: str = "MetricsStream",
    ) -> None:
        """
        Initialize the subscription. Call :meth:`start` to begin polling.

        Args:
            poll: Produces one value per tick; may raise CollectionError.
            interval: Seconds between ticks.
            key: Projection used for deduplication. Defaults to the value itself.
            on_error: Receives tick failures while iterating.
            on_close: Called once after the subscription is cancelled.
            name: Name of the polling thread.
        """
        self._poll = poll
        self._interval = interval
        self._key = key
        self._on_error = on_error
        self._on_close = on_close
        self._name = name
        self._queue: Queue[object] = Queue()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None
        self._last_key: object = _UNSET
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def interval(self) -> float:
        return self._interval

    @property
    def is_running(self) -> bool:
        """Check if the polling thread is alive."""
        return self._thread is not None and self._thread.is_alive()

    @property
    def is_cancelled(self) -> bool:
        return self._closed

    def start(self) -> "Subscription[T]":
        """Start the polling thread. Starting twice is a no-op."""
        if self.is_running or self._closed:
            return self

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name=self._name,
        )
        self._thread.start()
        logger.debug("Started %s every %.3fs", self._name, self._interval)
        return self

    def cancel(self, timeout: float | None = 5.0) -> None:
        """
        Stop polling and wake any blocked consumer.

        Args:
            timeout: How long to wait for the polling thread to exit (seconds).
        """
        with self._close_lock:
            if self._closed:
                return
            self._closed = True

        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=timeout)
            if thread.is_alive():
                logger.warning("%s poll still running after %ss", self._name, timeout)
        if thread is None or not thread.is_alive():
            self._thread = None
        self._queue.put(_CLOSED)
        logger.debug("Cancelled %s", self._name)

        if self._on_close is not None:
            self._on_close(self)

    def get(self, block: bool = True, timeout: float | None = None) -> T:
        """
        Return the next emitted value.

        Raises:
            queue.Empty: No value arrived within ``timeout``.
            CollectionError: The poll for this tick failed. The stream continues.
            StreamClosedError: The subscription was cancelled. Values still
                queued at that point are discarded.
        """
        if self._closed:
            raise StreamClosedError(f"{self._name} is closed")
        item = self._queue.get(block=block, timeout=timeout)
        if item is _CLOSED or self._closed:
            # Leave the marker in place for any other waiting consumer.
            self._queue.put(_CLOSED)
            raise StreamClosedError(f"{self._name} is closed")
        if isinstance(item, CollectionError):
            raise item
        return item  # type: ignore[return-value]

    def __iter__(self) -> Iterator[T]:
        while True:
            try:
                yield self.get()
            except StreamClosedError:
                return
            except CollectionError as exc:
                if self._on_error is not None:
                    self._on_error(exc)
                else:
                    logger.warning("%s tick failed: %s", self._name, exc)

    def __enter__(self) -> "Subscription[T]":
        return self.start()

    def __exit__(self, *exc_info: object) -> None:
        self.cancel()

    def _poll_loop(self) -> None:
        """Main polling loop running in the background thread."""
        try:
            while not self._stop_event.is_set():
                try:
                    value = self._poll()
                except CollectionError as exc:
                    logger.debug("%s tick failed in poll: %s", self._name, exc)
                    if not self._stop_event.is_set():
                        self._queue.put(exc)
                except NotInitializedError:
                    # Owner was torn down between ticks.
                    logger.debug("%s stopping, owner no longer active", self._name)
                    break
                else:
                    if not self._stop_event.is_set():
                        self._emit(value)

                # Wait for the interval or until cancel is requested
                self._stop_event.wait(timeout=self._interval)
        finally:
            if not self._stop_event.is_set():
                # Loop ended on its own; close so consumers do not block forever.
                self.cancel()

    def _emit(self, value: T) -> None:
        key = value if self._key is None else self._key(value)
        if self._last_key is not _UNSET and key == self._last_key:
            return
        self._last_key = key
        self._queue.put(value)


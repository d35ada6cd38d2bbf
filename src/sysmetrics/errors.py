"""Exception types for sysmetrics."""


class MetricsError(Exception):
    """Base class for all sysmetrics errors."""


class CollectionError(MetricsError):
    """The snapshot source could not produce a snapshot."""


class InvalidMetricsError(MetricsError, ValueError):
    """A metrics record was built with out-of-range values."""


class NotInitializedError(MetricsError, RuntimeError):
    """An orchestrator operation was called before initialize()."""


class StreamClosedError(MetricsError):
    """The subscription was cancelled and has no more values."""

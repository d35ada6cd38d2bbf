"""Runtime configuration for sysmetrics."""

import os
from collections.abc import Mapping
from dataclasses import dataclass, fields

ENV_PREFIX = "SYSMETRICS_"


@dataclass(slots=True, frozen=True)
class MetricsConfig:
    """Tunables for the orchestrator and its streams.

    Durations are in milliseconds.
    """

    cache_ttl_ms: int = 500
    history_capacity: int = 300
    min_interval_ms: int = 100
    stream_interval_ms: int = 1000
    health_interval_ms: int = 1000
    app_interval_ms: int = 500
    high_cpu_warning: float = 90.0
    high_memory_warning: float = 90.0
    disk_path: str = "/"
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in (
            "cache_ttl_ms",
            "history_capacity",
            "min_interval_ms",
            "stream_interval_ms",
            "health_interval_ms",
            "app_interval_ms",
        ):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive")
        for name in ("high_cpu_warning", "high_memory_warning"):
            if not 0.0 <= getattr(self, name) <= 100.0:
                raise ValueError(f"{name} must be between 0 and 100")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "MetricsConfig":
        """
        Build a config from ``SYSMETRICS_*`` environment variables.

        Unset variables keep their defaults, e.g. ``SYSMETRICS_CACHE_TTL_MS=250``.
        """
        env = os.environ if environ is None else environ
        overrides: dict[str, object] = {}
        for f in fields(cls):
            raw = env.get(ENV_PREFIX + f.name.upper())
            if raw is None or raw == "":
                continue
            if f.type in (int, "int"):
                overrides[f.name] = int(raw)
            elif f.type in (float, "float"):
                overrides[f.name] = float(raw)
            else:
                overrides[f.name] = raw
        return cls(**overrides)

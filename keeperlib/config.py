"""Configuration for the keeper plugin and its logging bridge."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional, Protocol, Union

# Seconds a cached key remains before it may be evicted.
DEFAULT_CACHE_EXPIRATION = 20 * 60.0
# Seconds between attempts to evict expired cache keys.
DEFAULT_CACHE_CLEAR_INTERVAL = 30.0
# Default buffer size of the RPC worker queue.
DEFAULT_SERVICE_QUEUE_LENGTH = 1000


def default_max_service_workers() -> int:
    """Ten workers per CPU available to this process."""
    if hasattr(os, "sched_getaffinity"):
        cpus = len(os.sched_getaffinity(0))
    else:
        cpus = os.cpu_count() or 1
    return 10 * max(cpus, 1)


class _FieldLogger(Protocol):
    def debug(self, msg: str, fields: Optional[dict[str, Any]]) -> None: ...


@dataclass(frozen=True)
class ReportingSettings:
    """Resolved settings for the reporting plugin's cache and workers."""

    cache_expiration: float
    cache_eviction_interval: float
    max_service_workers: int
    service_queue_length: int


@dataclass
class DelegateConfig:
    """Components and tuning values used to build the keeper plugin.

    Zero values for the tuning fields select the defaults.
    """

    logger: Optional[_FieldLogger] = None
    head_subscriber: Any = None
    registry: Any = None
    perform_log_provider: Any = None
    report_encoder: Any = None
    cache_expiration: float = 0
    cache_eviction_interval: float = 0
    max_service_workers: int = 0
    service_queue_length: int = 0

    def reporting_settings(self) -> ReportingSettings:
        """Return the settings with defaults applied for unset values."""
        return ReportingSettings(
            cache_expiration=self.cache_expiration or DEFAULT_CACHE_EXPIRATION,
            cache_eviction_interval=self.cache_eviction_interval or DEFAULT_CACHE_CLEAR_INTERVAL,
            max_service_workers=self.max_service_workers or default_max_service_workers(),
            service_queue_length=self.service_queue_length or DEFAULT_SERVICE_QUEUE_LENGTH,
        )


class LogWriter:
    """File-like writer that forwards everything written as debug messages."""

    def __init__(self, logger: _FieldLogger) -> None:
        self.logger = logger

    def write(self, data: Union[bytes, bytearray, str]) -> int:
        text = data if isinstance(data, str) else bytes(data).decode("utf-8", "replace")
        self.logger.debug(text, None)
        return len(data)
r"""Configuration and validation of the client core."""

from __future__ import annotations

__all__ = [
    "DEFAULT_BACKOFF_BASE",
    "DEFAULT_BACKOFF_CAP",
    "DEFAULT_CONNECT_TIMEOUT",
    "DEFAULT_FAILURE_THRESHOLD",
    "DEFAULT_HALF_OPEN_MAX_PROBES",
    "DEFAULT_IDLE_TIMEOUT",
    "DEFAULT_MAX_ATTEMPTS",
    "DEFAULT_MAX_ELAPSED",
    "DEFAULT_MAX_PER_ROUTE",
    "DEFAULT_MAX_TOTAL",
    "DEFAULT_POOL_WAIT_TIMEOUT",
    "DEFAULT_READ_TIMEOUT",
    "DEFAULT_SLEEP_WINDOW",
    "DEFAULT_SUCCESS_THRESHOLD",
    "DEFAULT_TOTAL_TIMEOUT",
    "DEFAULT_VOLUME_THRESHOLD",
    "RETRY_STATUS_CODES",
    "CircuitBreakerConfig",
    "ClientConfig",
    "PoolConfig",
    "RetryConfig",
    "TimeoutConfig",
    "validate_timeouts",
]

from aresclient.core.config import (
    DEFAULT_BACKOFF_BASE,
    DEFAULT_BACKOFF_CAP,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_FAILURE_THRESHOLD,
    DEFAULT_HALF_OPEN_MAX_PROBES,
    DEFAULT_IDLE_TIMEOUT,
    DEFAULT_MAX_ATTEMPTS,
    DEFAULT_MAX_ELAPSED,
    DEFAULT_MAX_PER_ROUTE,
    DEFAULT_MAX_TOTAL,
    DEFAULT_POOL_WAIT_TIMEOUT,
    DEFAULT_READ_TIMEOUT,
    DEFAULT_SLEEP_WINDOW,
    DEFAULT_SUCCESS_THRESHOLD,
    DEFAULT_TOTAL_TIMEOUT,
    DEFAULT_VOLUME_THRESHOLD,
    RETRY_STATUS_CODES,
    CircuitBreakerConfig,
    ClientConfig,
    PoolConfig,
    RetryConfig,
    TimeoutConfig,
)
from aresclient.core.validation import validate_timeouts

r"""Configuration dataclasses and defaults.

Every tunable of the client core is exposed here. Defaults are public
module constants so that nothing is hidden from the caller, and each
dataclass validates its values at construction.
"""

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
]

from dataclasses import dataclass, field, replace
from typing import Any

from aresclient.core.validation import (
    validate_non_negative,
    validate_positive,
    validate_positive_int,
    validate_retry_status_codes,
    validate_timeouts,
)

# Total number of attempts, including the first one
DEFAULT_MAX_ATTEMPTS = 3

# Full jitter backoff: delay drawn from (0, min(cap, base * 2 ** retry)]
DEFAULT_BACKOFF_BASE = 1.0
DEFAULT_BACKOFF_CAP = 30.0

# Time budget in seconds for all the attempts of one logical request
DEFAULT_MAX_ELAPSED = 120.0

# HTTP status codes that should trigger automatic retry
# 408: Request Timeout
# 429: Too Many Requests - Rate limiting
# 500: Internal Server Error - Temporary server issue
# 502: Bad Gateway - Upstream server error
# 503: Service Unavailable - Server overloaded or down
# 504: Gateway Timeout - Upstream server timeout
RETRY_STATUS_CODES = (408, 429, 500, 502, 503, 504)

# Circuit breaker
DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_VOLUME_THRESHOLD = 10
DEFAULT_SLEEP_WINDOW = 30.0
DEFAULT_SUCCESS_THRESHOLD = 2
DEFAULT_HALF_OPEN_MAX_PROBES = 1

# Connection pool
DEFAULT_MAX_PER_ROUTE = 10
DEFAULT_MAX_TOTAL = 100
DEFAULT_IDLE_TIMEOUT = 30.0
DEFAULT_POOL_WAIT_TIMEOUT = 5.0

# Per-attempt timeouts, connect <= read <= total
DEFAULT_CONNECT_TIMEOUT = 5.0
DEFAULT_READ_TIMEOUT = 10.0
DEFAULT_TOTAL_TIMEOUT = 30.0


@dataclass
class RetryConfig:
    """Configuration of the retry policy.

    Args:
        max_attempts: Maximum number of attempts, including the first one.
        backoff_base: Base delay in seconds of the exponential backoff.
        backoff_cap: Upper bound in seconds of a computed backoff delay.
        max_elapsed: Time budget in seconds for all the attempts.
        retry_status_codes: HTTP status codes classified as retryable.

    Example:
        ```pycon
        >>> from aresclient.core.config import RetryConfig
        >>> config = RetryConfig(max_attempts=5)
        >>> config.max_attempts
        5
        >>> config.retry_status_codes
        (408, 429, 500, 502, 503, 504)

        ```
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    backoff_base: float = DEFAULT_BACKOFF_BASE
    backoff_cap: float = DEFAULT_BACKOFF_CAP
    max_elapsed: float = DEFAULT_MAX_ELAPSED
    retry_status_codes: tuple[int, ...] = field(default_factory=lambda: RETRY_STATUS_CODES)

    def __post_init__(self) -> None:
        validate_positive_int("max_attempts", self.max_attempts)
        validate_positive("backoff_base", self.backoff_base)
        validate_positive("backoff_cap", self.backoff_cap)
        validate_positive("max_elapsed", self.max_elapsed)
        validate_retry_status_codes(self.retry_status_codes)
        if self.backoff_base > self.backoff_cap:
            msg = f"backoff_base must be <= backoff_cap, got {self.backoff_base} > {self.backoff_cap}"
            raise ValueError(msg)


@dataclass
class CircuitBreakerConfig:
    """Configuration of the per-route circuit breakers.

    Args:
        failure_threshold: Consecutive qualifying failures that open a
            closed circuit.
        volume_threshold: Minimum number of recorded outcomes before a
            closed circuit may open.
        sleep_window: Seconds an open circuit waits before admitting a probe.
        success_threshold: Probe successes needed to close a half-open
            circuit.
        half_open_max_probes: Maximum number of probes in flight while
            half-open.
        count_pool_exhaustion: Whether ``PoolExhaustedError`` counts as a
            qualifying failure.
        volume_window: Optional rolling window in seconds for the volume
            count. If None, the volume counts every outcome recorded since
            the circuit last closed, saturating at ``volume_threshold``.
    """

    failure_threshold: int = DEFAULT_FAILURE_THRESHOLD
    volume_threshold: int = DEFAULT_VOLUME_THRESHOLD
    sleep_window: float = DEFAULT_SLEEP_WINDOW
    success_threshold: int = DEFAULT_SUCCESS_THRESHOLD
    half_open_max_probes: int = DEFAULT_HALF_OPEN_MAX_PROBES
    count_pool_exhaustion: bool = False
    volume_window: float | None = None

    def __post_init__(self) -> None:
        validate_positive_int("failure_threshold", self.failure_threshold)
        validate_positive_int("volume_threshold", self.volume_threshold)
        validate_positive("sleep_window", self.sleep_window)
        validate_positive_int("success_threshold", self.success_threshold)
        validate_positive_int("half_open_max_probes", self.half_open_max_probes)
        validate_positive("volume_window", self.volume_window, optional=True)


@dataclass
class PoolConfig:
    """Configuration of the connection pool.

    Args:
        max_per_route: Maximum number of connections per route.
        max_total: Maximum number of connections over all routes.
        idle_timeout: Seconds after which an idle connection is stale.
        pool_wait_timeout: Seconds a caller may wait for a connection.
        max_uses: Optional number of uses after which a connection is
            retired.
        max_lifetime: Optional age in seconds after which a connection is
            retired.
        sweep_interval: Optional period in seconds of the background sweep
            of stale idle connections. Defaults to ``idle_timeout``.
    """

    max_per_route: int = DEFAULT_MAX_PER_ROUTE
    max_total: int = DEFAULT_MAX_TOTAL
    idle_timeout: float = DEFAULT_IDLE_TIMEOUT
    pool_wait_timeout: float = DEFAULT_POOL_WAIT_TIMEOUT
    max_uses: int | None = None
    max_lifetime: float | None = None
    sweep_interval: float | None = None

    def __post_init__(self) -> None:
        validate_positive_int("max_per_route", self.max_per_route)
        validate_positive_int("max_total", self.max_total)
        validate_positive("idle_timeout", self.idle_timeout)
        validate_non_negative("pool_wait_timeout", self.pool_wait_timeout)
        validate_positive_int("max_uses", self.max_uses, optional=True)
        validate_positive("max_lifetime", self.max_lifetime, optional=True)
        validate_positive("sweep_interval", self.sweep_interval, optional=True)
        if self.max_per_route > self.max_total:
            msg = f"max_per_route must be <= max_total, got {self.max_per_route} > {self.max_total}"
            raise ValueError(msg)


@dataclass
class TimeoutConfig:
    """Per-attempt timeouts, validated as ``connect <= read <= total``.

    Args:
        connect_timeout: Deadline in seconds of the connect phase.
        read_timeout: Rolling deadline in seconds between two reads.
        total_timeout: Overall deadline in seconds of one attempt.
    """

    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    read_timeout: float = DEFAULT_READ_TIMEOUT
    total_timeout: float = DEFAULT_TOTAL_TIMEOUT

    def __post_init__(self) -> None:
        validate_timeouts(self.connect_timeout, self.read_timeout, self.total_timeout)


_SECTIONS = {
    "retry": RetryConfig,
    "circuit_breaker": CircuitBreakerConfig,
    "pool": PoolConfig,
    "timeout": TimeoutConfig,
}


@dataclass
class ClientConfig:
    """Complete configuration of a resilient client.

    Args:
        retry: The retry policy configuration.
        circuit_breaker: The circuit breaker configuration.
        pool: The connection pool configuration.
        timeout: The per-attempt timeout configuration.

    Example:
        ```pycon
        >>> from aresclient.core.config import ClientConfig, RetryConfig
        >>> config = ClientConfig(retry=RetryConfig(max_attempts=5))
        >>> config.retry.max_attempts
        5
        >>> merged = config.merge(max_attempts=2, sleep_window=10.0)
        >>> merged.retry.max_attempts, merged.circuit_breaker.sleep_window
        (2, 10.0)
        >>> config.retry.max_attempts  # Original unchanged
        5

        ```
    """

    retry: RetryConfig = field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = field(default_factory=CircuitBreakerConfig)
    pool: PoolConfig = field(default_factory=PoolConfig)
    timeout: TimeoutConfig = field(default_factory=TimeoutConfig)

    def merge(self, **overrides: Any) -> ClientConfig:
        """Create a new config with the given fields overridden.

        Overrides are flat field names of any section (``max_attempts``,
        ``sleep_window``, ``max_per_route``, ``read_timeout``...). None
        values are ignored. The sections of the new config are validated
        again.

        Args:
            **overrides: Field names and their new values.

        Returns:
            A new ``ClientConfig``.

        Raises:
            TypeError: If a field name does not belong to any section.
        """
        filtered = {k: v for k, v in overrides.items() if v is not None}
        sections: dict[str, Any] = {}
        for name, cls in _SECTIONS.items():
            fields = {k: filtered.pop(k) for k in list(filtered) if k in cls.__dataclass_fields__}
            sections[name] = replace(getattr(self, name), **fields)
        if filtered:
            msg = f"Unknown configuration fields: {sorted(filtered)}"
            raise TypeError(msg)
        return ClientConfig(**sections)

r"""aresclient - Resilient HTTP client core with circuit breaking, pooling,
timeouts and retries.

This package executes outbound HTTP requests on top of the httpx library
and makes them robust against transient failures of the remote services
they depend on.

Key Features:
    - Per-route circuit breakers (closed, open, half-open) that fail fast
      when a destination is unhealthy
    - Bounded connection pool per route and in total, with connection reuse,
      liveness validation and idle eviction
    - Connect, rolling read and total timeouts for every attempt
    - Retries with full jitter exponential backoff, Retry-After support,
      attempt and time budgets
    - Idempotency gate: non-idempotent requests are never retried unless
      they carry an idempotency key
    - Cooperative cancellation through pool waits, backoff sleeps and I/O
    - Attempt and terminal events for observability (logging, metrics)

Example:
    ```pycon
    >>> from aresclient import AsyncResilientClient, ClientConfig, RetryConfig
    >>> async def main():  # doctest: +SKIP
    ...     config = ClientConfig(retry=RetryConfig(max_attempts=5))
    ...     async with AsyncResilientClient(config=config) as client:
    ...         response = await client.get("https://api.example.com/data")
    ...

    ```
"""

from __future__ import annotations

__all__ = [
    "AsyncResilientClient",
    "AttemptOutcome",
    "AttemptTimeoutError",
    "CancellationToken",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitOpenError",
    "CircuitState",
    "ClientConfig",
    "ConnectionPool",
    "MaxAttemptsExceededError",
    "MaxElapsedExceededError",
    "NonRetryableTransportError",
    "PoolConfig",
    "PoolExhaustedError",
    "RequestCancelledError",
    "RequestExecutor",
    "ResilientHttpError",
    "RetryConfig",
    "RetryPolicy",
    "RetryableTransportError",
    "Route",
    "TimeoutConfig",
    "TimeoutManager",
    "__version__",
]

from importlib.metadata import PackageNotFoundError, version

from aresclient.cancellation import CancellationToken
from aresclient.circuit_breaker import CircuitBreaker, CircuitState
from aresclient.client import AsyncResilientClient
from aresclient.core.config import (
    CircuitBreakerConfig,
    ClientConfig,
    PoolConfig,
    RetryConfig,
    TimeoutConfig,
)
from aresclient.exceptions import (
    AttemptTimeoutError,
    CircuitOpenError,
    MaxAttemptsExceededError,
    MaxElapsedExceededError,
    NonRetryableTransportError,
    PoolExhaustedError,
    RequestCancelledError,
    ResilientHttpError,
    RetryableTransportError,
)
from aresclient.executor import RequestExecutor
from aresclient.outcome import AttemptOutcome
from aresclient.pool import ConnectionPool
from aresclient.retry import RetryPolicy
from aresclient.route import Route
from aresclient.timeout import TimeoutManager

try:
    __version__ = version(__name__)
except PackageNotFoundError:  # pragma: no cover
    # Package is not installed, fallback if needed
    __version__ = "0.0.0"

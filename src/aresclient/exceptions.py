r"""Exceptions raised by the resilient HTTP client core.

Every terminal error surfaced to the caller derives from
``ResilientHttpError`` and carries the context the caller needs for its own
logging and decisions: the route, the number of attempts made, the elapsed
time and the last attempt outcome.
"""

from __future__ import annotations

__all__ = [
    "AttemptTimeoutError",
    "CircuitOpenError",
    "MaxAttemptsExceededError",
    "MaxElapsedExceededError",
    "NonRetryableTransportError",
    "PoolExhaustedError",
    "RequestCancelledError",
    "ResilientHttpError",
    "RetryableTransportError",
]

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Self

    import httpx

    from aresclient.outcome import AttemptOutcome, TimeoutPhase
    from aresclient.route import Route


class ResilientHttpError(Exception):
    """Base class of all the errors raised by ``aresclient``.

    Args:
        message: A descriptive error message.
        route: The route the request targeted, if known.
        attempt_count: The number of attempts made so far.
        elapsed: The time in seconds spent on the logical request.
        last_outcome: The outcome of the last attempt, if any.
        cause: The underlying exception, if any.

    Example:
        ```pycon
        >>> from aresclient.exceptions import ResilientHttpError
        >>> error = ResilientHttpError("request failed", attempt_count=2, elapsed=1.5)
        >>> error.attempt_count
        2
        >>> error.status_code is None
        True

        ```
    """

    def __init__(
        self,
        message: str,
        *,
        route: Route | None = None,
        attempt_count: int = 0,
        elapsed: float = 0.0,
        last_outcome: AttemptOutcome | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.route = route
        self.attempt_count = attempt_count
        self.elapsed = elapsed
        self.last_outcome = last_outcome
        self.cause = cause

    @property
    def status_code(self) -> int | None:
        """The HTTP status code of the last attempt, if it got a response."""
        if self.last_outcome is None:
            return None
        return self.last_outcome.status_code

    @property
    def response(self) -> httpx.Response | None:
        """The HTTP response of the last attempt, if any."""
        if self.last_outcome is None:
            return None
        return self.last_outcome.response

    def with_context(
        self,
        *,
        route: Route | None = None,
        attempt_count: int | None = None,
        elapsed: float | None = None,
        last_outcome: AttemptOutcome | None = None,
    ) -> Self:
        """Attach request context to an error raised by a lower layer.

        Only non-None values are applied.

        Returns:
            The error itself, to allow ``raise error.with_context(...)``.
        """
        if route is not None:
            self.route = route
        if attempt_count is not None:
            self.attempt_count = attempt_count
        if elapsed is not None:
            self.elapsed = elapsed
        if last_outcome is not None:
            self.last_outcome = last_outcome
        return self


class AttemptTimeoutError(ResilientHttpError):
    """Raised when a connect, read or total deadline fires.

    Args:
        phase: The timeout phase whose deadline fired.
        timeout: The deadline value in seconds.
    """

    def __init__(
        self, phase: TimeoutPhase, timeout: float | None = None, **kwargs: object
    ) -> None:
        detail = f" after {timeout}s" if timeout is not None else ""
        super().__init__(f"{phase.value} timeout{detail}", **kwargs)
        self.phase = phase
        self.timeout = timeout


class CircuitOpenError(ResilientHttpError):
    """Raised when the circuit breaker rejects an attempt.

    No network attempt is made when this error is raised.

    Args:
        route: The route whose circuit rejected the attempt.
        retry_after_hint: Seconds until the circuit may admit a probe.

    Example:
        ```pycon
        >>> from aresclient.exceptions import CircuitOpenError
        >>> from aresclient.route import Route
        >>> error = CircuitOpenError(Route("https", "api.example.com", 443), retry_after_hint=12.5)
        >>> error.retry_after_hint
        12.5
        >>> str(error)
        'Circuit for https://api.example.com:443 is open, retry after 12.5s'

        ```
    """

    def __init__(self, route: Route, retry_after_hint: float, **kwargs: object) -> None:
        super().__init__(
            f"Circuit for {route} is open, retry after {retry_after_hint:.1f}s",
            route=route,
            **kwargs,
        )
        self.retry_after_hint = retry_after_hint


class RetryableTransportError(ResilientHttpError):
    """Raised for transient transport failures.

    Callers may retry the request later on their own.
    """


class PoolExhaustedError(RetryableTransportError):
    """Raised when no connection could be acquired within the pool wait
    timeout.

    Args:
        route: The route a connection was requested for.
        waited: The time in seconds the caller waited.
    """

    def __init__(self, route: Route, waited: float, **kwargs: object) -> None:
        super().__init__(
            f"No connection available for {route} after waiting {waited:.3f}s",
            route=route,
            **kwargs,
        )
        self.waited = waited


class NonRetryableTransportError(ResilientHttpError):
    """Raised for failures that must not be retried.

    Examples are 4xx validation-class responses and any failure of a
    request that is not declared idempotent.
    """


class MaxAttemptsExceededError(ResilientHttpError):
    """Raised when the last allowed attempt failed."""


class MaxElapsedExceededError(ResilientHttpError):
    """Raised when the retry time budget is exhausted."""


class RequestCancelledError(ResilientHttpError):
    """Raised when a cancellation token cancels an in-flight request."""

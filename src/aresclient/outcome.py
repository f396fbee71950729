r"""Attempt outcomes and their classification.

An ``AttemptOutcome`` is the tagged result of one network attempt. It is
produced by the executor and consumed by the retry policy, the circuit
breaker and the connection pool.
"""

from __future__ import annotations

__all__ = [
    "AttemptOutcome",
    "OutcomeKind",
    "TimeoutPhase",
    "classify_response",
    "classify_transport_error",
]

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from aresclient.exceptions import PoolExhaustedError
from aresclient.utils.retry_after import retry_after_from_response

if TYPE_CHECKING:
    from collections.abc import Collection


class OutcomeKind(Enum):
    """Kinds of attempt outcomes."""

    SUCCESS = "success"
    RETRYABLE_FAILURE = "retryable_failure"
    NON_RETRYABLE_FAILURE = "non_retryable_failure"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"


class TimeoutPhase(Enum):
    """Phases of an attempt that can time out."""

    CONNECT = "connect"
    READ = "read"
    TOTAL = "total"


@dataclass(frozen=True)
class AttemptOutcome:
    """Result of one network attempt.

    Use the constructor classmethods rather than building instances
    directly.

    Attributes:
        kind: The outcome kind.
        reason: A short human-readable reason.
        phase: The timeout phase, for ``TIMEOUT`` outcomes.
        status_code: The response status code, if a response was received.
        response: The fully-read response, if any.
        error: The exception behind the outcome, if any.
        retry_after: Delay in seconds requested by a ``Retry-After`` header.

    Example:
        ```pycon
        >>> from aresclient.outcome import AttemptOutcome, TimeoutPhase
        >>> outcome = AttemptOutcome.timeout(TimeoutPhase.READ)
        >>> outcome.kind
        <OutcomeKind.TIMEOUT: 'timeout'>
        >>> outcome.is_failure
        True

        ```
    """

    kind: OutcomeKind
    reason: str = ""
    phase: TimeoutPhase | None = None
    status_code: int | None = None
    response: httpx.Response | None = None
    error: BaseException | None = None
    retry_after: float | None = None

    @classmethod
    def success(cls, response: httpx.Response | None = None) -> AttemptOutcome:
        return cls(
            kind=OutcomeKind.SUCCESS,
            reason="success",
            status_code=None if response is None else response.status_code,
            response=response,
        )

    @classmethod
    def retryable_failure(
        cls,
        reason: str,
        *,
        status_code: int | None = None,
        response: httpx.Response | None = None,
        error: BaseException | None = None,
        retry_after: float | None = None,
    ) -> AttemptOutcome:
        return cls(
            kind=OutcomeKind.RETRYABLE_FAILURE,
            reason=reason,
            status_code=status_code,
            response=response,
            error=error,
            retry_after=retry_after,
        )

    @classmethod
    def non_retryable_failure(
        cls,
        reason: str,
        *,
        status_code: int | None = None,
        response: httpx.Response | None = None,
        error: BaseException | None = None,
    ) -> AttemptOutcome:
        return cls(
            kind=OutcomeKind.NON_RETRYABLE_FAILURE,
            reason=reason,
            status_code=status_code,
            response=response,
            error=error,
        )

    @classmethod
    def timeout(cls, phase: TimeoutPhase, error: BaseException | None = None) -> AttemptOutcome:
        return cls(
            kind=OutcomeKind.TIMEOUT,
            reason=f"{phase.value} timeout",
            phase=phase,
            error=error,
        )

    @classmethod
    def cancelled(cls, error: BaseException | None = None) -> AttemptOutcome:
        return cls(kind=OutcomeKind.CANCELLED, reason="cancelled", error=error)

    @classmethod
    def pool_exhausted(cls, error: PoolExhaustedError) -> AttemptOutcome:
        return cls.retryable_failure("pool exhausted", error=error)

    @property
    def is_success(self) -> bool:
        return self.kind is OutcomeKind.SUCCESS

    @property
    def is_failure(self) -> bool:
        return self.kind in {
            OutcomeKind.RETRYABLE_FAILURE,
            OutcomeKind.NON_RETRYABLE_FAILURE,
            OutcomeKind.TIMEOUT,
        }

    @property
    def is_pool_exhausted(self) -> bool:
        return isinstance(self.error, PoolExhaustedError)

    @property
    def completed_exchange(self) -> bool:
        """Whether a full HTTP response was received during the attempt.

        A connection that completed its exchange can be reused whatever
        the status code was.
        """
        if self.kind is OutcomeKind.SUCCESS:
            return True
        return self.kind is not OutcomeKind.CANCELLED and self.response is not None

    def describe(self) -> str:
        """Return a compact description used in log and error messages."""
        if self.status_code is not None:
            return f"{self.kind.value} (status {self.status_code})"
        if self.reason:
            return f"{self.kind.value} ({self.reason})"
        return self.kind.value


def classify_response(
    response: httpx.Response, retry_status_codes: Collection[int]
) -> AttemptOutcome:
    """Classify a fully-read HTTP response.

    Status codes below 400 are successes, codes listed in
    ``retry_status_codes`` are retryable failures and everything else is a
    non-retryable failure.

    Args:
        response: The HTTP response.
        retry_status_codes: The status codes that should be retried.

    Returns:
        The attempt outcome.

    Example:
        ```pycon
        >>> import httpx
        >>> from aresclient.outcome import classify_response
        >>> classify_response(httpx.Response(503), (500, 503)).kind
        <OutcomeKind.RETRYABLE_FAILURE: 'retryable_failure'>
        >>> classify_response(httpx.Response(404), (500, 503)).kind
        <OutcomeKind.NON_RETRYABLE_FAILURE: 'non_retryable_failure'>

        ```
    """
    status_code = response.status_code
    if status_code < 400:
        return AttemptOutcome.success(response)
    if status_code in retry_status_codes:
        return AttemptOutcome.retryable_failure(
            f"status {status_code}",
            status_code=status_code,
            response=response,
            retry_after=retry_after_from_response(response),
        )
    return AttemptOutcome.non_retryable_failure(
        f"status {status_code}", status_code=status_code, response=response
    )


def classify_transport_error(exc: httpx.TransportError) -> AttemptOutcome:
    """Classify a transport error raised while sending a request.

    Network and remote protocol errors are transient. Errors caused by the
    request itself (unsupported protocol, local protocol violation) are not.
    Timeouts are classified by the timeout manager, not here.

    Args:
        exc: The transport error.

    Returns:
        The attempt outcome.
    """
    reason = f"{type(exc).__name__}: {exc}"
    if isinstance(exc, (httpx.UnsupportedProtocol, httpx.LocalProtocolError)):
        return AttemptOutcome.non_retryable_failure(reason, error=exc)
    return AttemptOutcome.retryable_failure(reason, error=exc)

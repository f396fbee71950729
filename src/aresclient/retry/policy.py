r"""Retry policy deciding whether and when to re-attempt a request.

This module provides the ``RetryPolicy`` class and the per-request
``RetryState`` bookkeeping it works on.
"""

from __future__ import annotations

__all__ = ["RetryDecision", "RetryPolicy", "RetryState", "StopReason"]

import logging
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

from aresclient.backoff.jitter import FullJitterBackoff
from aresclient.core.config import RetryConfig
from aresclient.outcome import OutcomeKind

if TYPE_CHECKING:
    from aresclient.backoff.base import BaseBackoffStrategy
    from aresclient.outcome import AttemptOutcome

logger: logging.Logger = logging.getLogger(__name__)

_RETRYABLE_KINDS = frozenset({OutcomeKind.RETRYABLE_FAILURE, OutcomeKind.TIMEOUT})


class StopReason(Enum):
    """Reasons why the retry loop stops."""

    SUCCEEDED = "succeeded"
    NOT_RETRYABLE = "not_retryable"
    NOT_IDEMPOTENT = "not_idempotent"
    CANCELLED = "cancelled"
    MAX_ATTEMPTS = "max_attempts"
    MAX_ELAPSED = "max_elapsed"


@dataclass(frozen=True)
class RetryDecision:
    """Decision of the retry policy: stop, or retry after a delay.

    Attributes:
        delay: The delay in seconds before the next attempt, or None when
            stopping.
        reason: The stop reason, or None when retrying.
    """

    delay: float | None = None
    reason: StopReason | None = None

    @classmethod
    def stop(cls, reason: StopReason) -> RetryDecision:
        return cls(reason=reason)

    @classmethod
    def retry_after(cls, delay: float) -> RetryDecision:
        return cls(delay=delay)

    @property
    def should_retry(self) -> bool:
        return self.delay is not None


@dataclass
class RetryState:
    """Retry bookkeeping of one logical request.

    A new state is created for every logical request and owned by its
    execution flow only.

    Attributes:
        first_attempt_at: Clock value when the request started.
        attempt_count: Number of attempts started so far.
        last_delay: The last backoff delay, or None before the first retry.
        last_outcome: The outcome of the last finished attempt.
    """

    first_attempt_at: float
    attempt_count: int = 0
    last_delay: float | None = None
    last_outcome: AttemptOutcome | None = None

    @classmethod
    def start(cls, now: float) -> RetryState:
        return cls(first_attempt_at=now)

    def begin_attempt(self) -> int:
        """Count a new attempt and return its 1-indexed number."""
        self.attempt_count += 1
        return self.attempt_count

    def elapsed(self, now: float) -> float:
        return now - self.first_attempt_at


class RetryPolicy:
    """Decides whether to retry a failed attempt and how long to wait.

    Only retryable failures (including the retryable status codes) and
    timeouts are retried. A ``Retry-After`` value carried by the outcome
    takes precedence over the computed backoff. The loop stops when the
    number of attempts reaches ``max_attempts`` or when the time budget
    ``max_elapsed`` would be exceeded.

    The policy is stateless: per-request state lives in ``RetryState``, so
    one policy can be shared by concurrent requests.

    Args:
        config: The retry configuration. Defaults to ``RetryConfig()``.
        backoff: The backoff strategy. Defaults to full jitter exponential
            backoff built from ``config.backoff_base`` and
            ``config.backoff_cap``.

    Example:
        ```pycon
        >>> from aresclient.core.config import RetryConfig
        >>> from aresclient.outcome import AttemptOutcome
        >>> from aresclient.retry import RetryPolicy
        >>> policy = RetryPolicy(RetryConfig(max_attempts=3))
        >>> outcome = AttemptOutcome.retryable_failure("status 503", status_code=503)
        >>> policy.should_retry(outcome, attempt_count=1, elapsed=0.0).should_retry
        True
        >>> policy.should_retry(outcome, attempt_count=3, elapsed=0.0)
        RetryDecision(delay=None, reason=<StopReason.MAX_ATTEMPTS: 'max_attempts'>)

        ```
    """

    def __init__(
        self,
        config: RetryConfig | None = None,
        backoff: BaseBackoffStrategy | None = None,
    ) -> None:
        self.config = config if config is not None else RetryConfig()
        self.backoff: BaseBackoffStrategy = (
            backoff
            if backoff is not None
            else FullJitterBackoff(base=self.config.backoff_base, cap=self.config.backoff_cap)
        )

    def is_retryable(self, outcome: AttemptOutcome) -> bool:
        """Indicate whether an outcome belongs to a retryable class."""
        return outcome.kind in _RETRYABLE_KINDS

    def next_delay(self, attempt_count: int, outcome: AttemptOutcome) -> float:
        """Compute the delay before the next attempt.

        Args:
            attempt_count: The number of attempts made so far (>= 1).
            outcome: The outcome of the last attempt.

        Returns:
            The ``Retry-After`` delay of the outcome if present, otherwise
            the backoff delay of retry ``attempt_count - 1``.
        """
        if outcome.retry_after is not None:
            logger.debug(f"Using Retry-After value: {outcome.retry_after:.2f}s")
            return outcome.retry_after
        return self.backoff.calculate(max(attempt_count - 1, 0))

    def should_retry(
        self, outcome: AttemptOutcome, attempt_count: int, elapsed: float
    ) -> RetryDecision:
        """Decide whether to retry after an attempt.

        Args:
            outcome: The outcome of the last attempt.
            attempt_count: The number of attempts made so far.
            elapsed: Seconds elapsed since the first attempt started.

        Returns:
            ``RetryDecision.retry_after(delay)`` or ``RetryDecision.stop(reason)``.
        """
        if outcome.kind is OutcomeKind.SUCCESS:
            return RetryDecision.stop(StopReason.SUCCEEDED)
        if outcome.kind is OutcomeKind.CANCELLED:
            return RetryDecision.stop(StopReason.CANCELLED)
        if not self.is_retryable(outcome):
            return RetryDecision.stop(StopReason.NOT_RETRYABLE)
        if attempt_count >= self.config.max_attempts:
            logger.debug(f"Stopping after {attempt_count}/{self.config.max_attempts} attempts")
            return RetryDecision.stop(StopReason.MAX_ATTEMPTS)
        if elapsed >= self.config.max_elapsed:
            return RetryDecision.stop(StopReason.MAX_ELAPSED)

        delay = self.next_delay(attempt_count, outcome)
        if elapsed + delay > self.config.max_elapsed:
            logger.debug(
                f"Stopping: waiting {delay:.2f}s would exceed max_elapsed "
                f"({elapsed:.2f}s elapsed, budget {self.config.max_elapsed:.2f}s)"
            )
            return RetryDecision.stop(StopReason.MAX_ELAPSED)
        return RetryDecision.retry_after(delay)

r"""Event types and callback helpers for observability.

The executor emits one ``AttemptEvent`` after every attempt (including
attempts that could not get a pooled connection) and one
``TerminalEvent`` when the logical request completes. Both are passed to
the optional user callbacks and written to the structured log.

Example:
    ```pycon
    >>> from aresclient import AsyncResilientClient
    >>> from aresclient.callbacks import AttemptEvent
    >>> def log_attempt(event: AttemptEvent):
    ...     print(f"{event.route} attempt {event.attempt}: {event.outcome}")
    ...
    >>> client = AsyncResilientClient(on_attempt=log_attempt)  # doctest: +SKIP

    ```
"""

from __future__ import annotations

__all__ = ["AttemptEvent", "TerminalEvent", "invoke_callback"]

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

logger: logging.Logger = logging.getLogger(__name__)

E = TypeVar("E")


@dataclass(frozen=True)
class AttemptEvent:
    """Information passed to the ``on_attempt`` callback.

    Attributes:
        route: The route, formatted as ``scheme://host:port``.
        method: The HTTP method (e.g., "GET", "POST").
        attempt: The attempt number (1-indexed).
        outcome: The outcome kind value (e.g., "success", "timeout").
        reason: A short description of the outcome.
        status_code: The HTTP status code, if a response was received.
        latency: The attempt duration in seconds.
        circuit_state: The circuit state after the outcome was recorded.
        next_delay: The backoff delay before the next attempt, or None if
            no further attempt will be made.
    """

    route: str
    method: str
    attempt: int
    outcome: str
    reason: str
    status_code: int | None
    latency: float
    circuit_state: str
    next_delay: float | None

    def to_dict(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "method": self.method,
            "attempt": self.attempt,
            "outcome": self.outcome,
            "reason": self.reason,
            "status_code": self.status_code,
            "latency": round(self.latency, 6),
            "circuit_state": self.circuit_state,
            "next_delay": None if self.next_delay is None else round(self.next_delay, 6),
        }


@dataclass(frozen=True)
class TerminalEvent:
    """Information passed to the ``on_terminal`` callback.

    Attributes:
        route: The route, formatted as ``scheme://host:port``.
        method: The HTTP method (e.g., "GET", "POST").
        attempts: The number of attempts made.
        succeeded: Whether the logical request succeeded.
        outcome: The outcome kind value of the last attempt, or None if no
            attempt was made.
        elapsed: The total time spent on the logical request in seconds.
        circuit_state: The circuit state when the request completed.
        error: The error class name if the request failed.
    """

    route: str
    method: str
    attempts: int
    succeeded: bool
    outcome: str | None
    elapsed: float
    circuit_state: str
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "route": self.route,
            "method": self.method,
            "attempts": self.attempts,
            "succeeded": self.succeeded,
            "outcome": self.outcome,
            "elapsed": round(self.elapsed, 6),
            "circuit_state": self.circuit_state,
            "error": self.error,
        }


def invoke_callback(callback: Callable[[E], None] | None, event: E) -> None:
    """Invoke a user callback if provided.

    Errors raised by the callback are logged and ignored, so a faulty
    observer never changes the request result.

    Args:
        callback: Optional callback.
        event: The event passed to the callback.
    """
    if callback is None:
        return
    try:
        callback(event)
    except Exception as e:  # noqa: BLE001
        logger.warning(f"Error in {type(event).__name__} callback: {e}")

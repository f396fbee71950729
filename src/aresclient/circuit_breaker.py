r"""Circuit Breaker Pattern implementation for preventing cascading
failures.

This module provides per-route circuit breakers. Each route has its own
circuit with three states:

- CLOSED: Normal operation, attempts go through
- OPEN: After N consecutive failures (with enough volume), attempts fail
  fast without being made
- HALF_OPEN: After the sleep window, a bounded number of probe attempts test
  whether the destination recovered

Example:
    ```pycon
    >>> from aresclient.circuit_breaker import CircuitBreaker, CircuitState
    >>> from aresclient.core.config import CircuitBreakerConfig
    >>> from aresclient.outcome import AttemptOutcome
    >>> from aresclient.route import Route
    >>> breaker = CircuitBreaker(CircuitBreakerConfig(failure_threshold=2, volume_threshold=2))
    >>> route = Route.from_url("https://api.example.com")
    >>> for _ in range(2):
    ...     permit = breaker.admit(route)
    ...     breaker.record(route, AttemptOutcome.retryable_failure("status 503", status_code=503), permit)
    ...
    >>> breaker.state(route)
    <CircuitState.OPEN: 'open'>

    ```
"""

from __future__ import annotations

__all__ = ["CircuitBreaker", "CircuitSnapshot", "CircuitState", "Permit", "RouteCircuit"]

import logging
import threading
import time
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from aresclient.core.config import CircuitBreakerConfig
from aresclient.exceptions import CircuitOpenError
from aresclient.outcome import OutcomeKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from aresclient.outcome import AttemptOutcome
    from aresclient.route import Route

logger: logging.Logger = logging.getLogger(__name__)


class CircuitState(Enum):
    """Circuit breaker states.

    Attributes:
        CLOSED: Normal operation, attempts are admitted.
        OPEN: Circuit is open, attempts fail fast without being made.
        HALF_OPEN: Testing if the destination recovered with probe attempts.
    """

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


@dataclass(frozen=True)
class Permit:
    """Admission ticket returned by ``admit``.

    Attributes:
        route: The admitted route.
        probe: Whether the attempt is a half-open probe.
        generation: The circuit generation the attempt was admitted in. It
            changes on every state transition.
    """

    route: Route
    probe: bool
    generation: int


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of a circuit, for metrics and logging."""

    route: Route
    state: CircuitState
    consecutive_failures: int
    successes_in_half_open: int
    probes_in_flight: int
    volume: int
    opened_at: float | None


class RouteCircuit:
    r"""Circuit breaker state machine of one route.

    All the state is guarded by the circuit's own lock; critical sections
    never block on I/O, so the circuit can be shared by threads and by
    asyncio tasks alike.

    Args:
        route: The route the circuit protects.
        config: The circuit breaker configuration.
        on_state_change: Optional callback called on every transition with
            ``(route, old_state, new_state)``.
        clock: Monotonic clock used for the sleep window.
    """

    def __init__(
        self,
        route: Route,
        config: CircuitBreakerConfig,
        *,
        on_state_change: Callable[[Route, CircuitState, CircuitState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.route = route
        self.config = config
        self._on_state_change = on_state_change
        self._clock = clock

        # State tracking (protected by lock)
        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._generation = 0
        self._consecutive_failures = 0
        self._successes_in_half_open = 0
        self._probes_in_flight = 0
        self._opened_at: float | None = None
        # Without a rolling window only reaching the threshold matters
        self._volume: deque[float] = deque(
            maxlen=None if config.volume_window is not None else config.volume_threshold
        )

    @property
    def state(self) -> CircuitState:
        with self._lock:
            return self._state

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            return CircuitSnapshot(
                route=self.route,
                state=self._state,
                consecutive_failures=self._consecutive_failures,
                successes_in_half_open=self._successes_in_half_open,
                probes_in_flight=self._probes_in_flight,
                volume=self._current_volume(self._clock()),
                opened_at=self._opened_at,
            )

    def admit(self) -> Permit:
        """Decide whether an attempt may proceed.

        Returns:
            The permit to pass back to ``record``.

        Raises:
            CircuitOpenError: If the circuit is OPEN and the sleep window has
                not elapsed, or HALF_OPEN with all probe slots taken.
        """
        with self._lock:
            if self._state is CircuitState.CLOSED:
                return Permit(self.route, probe=False, generation=self._generation)

            if self._state is CircuitState.OPEN:
                elapsed = self._clock() - self._opened_at
                if elapsed < self.config.sleep_window:
                    raise CircuitOpenError(self.route, self.config.sleep_window - elapsed)
                self._change_state(CircuitState.HALF_OPEN)

            if self._probes_in_flight >= self.config.half_open_max_probes:
                raise CircuitOpenError(self.route, 0.0)
            self._probes_in_flight += 1
            logger.debug(
                f"Circuit for {self.route} admitted probe "
                f"({self._probes_in_flight}/{self.config.half_open_max_probes} in flight)"
            )
            return Permit(self.route, probe=True, generation=self._generation)

    def record(self, outcome: AttemptOutcome, permit: Permit | None = None) -> None:
        """Record the outcome of an attempt.

        Args:
            outcome: The attempt outcome.
            permit: The permit returned by ``admit`` for this attempt. A
                permit from an older generation is ignored, so late results
                never corrupt the current state. Without a permit the outcome
                applies to the current state, as a non-probe.
        """
        failure = self._counts_as_failure(outcome)
        with self._lock:
            if permit is not None and permit.generation != self._generation:
                logger.debug(
                    f"Circuit for {self.route} ignoring {outcome.describe()} "
                    f"from generation {permit.generation} (now {self._generation})"
                )
                return

            if self._state is CircuitState.CLOSED:
                self._record_closed(outcome, failure)
            elif self._state is CircuitState.HALF_OPEN:
                self._record_half_open(outcome, failure, probe=permit is not None and permit.probe)

    def reset(self) -> None:
        """Manually reset the circuit to the CLOSED state.

        Use with caution in production - typically you want the circuit to
        recover naturally.
        """
        with self._lock:
            old_state = self._state
            self._change_state(CircuitState.CLOSED)
            if old_state is not CircuitState.CLOSED:
                logger.info(f"Circuit for {self.route} manually reset to CLOSED state")

    def _record_closed(self, outcome: AttemptOutcome, failure: bool) -> None:
        now = self._clock()
        self._volume.append(now)
        if outcome.kind is OutcomeKind.SUCCESS:
            self._consecutive_failures = 0
            return
        if not failure:
            return

        self._consecutive_failures += 1
        volume = self._current_volume(now)
        logger.debug(
            f"Circuit for {self.route} recorded failure "
            f"({self._consecutive_failures}/{self.config.failure_threshold}, volume {volume})"
        )
        if (
            self._consecutive_failures >= self.config.failure_threshold
            and volume >= self.config.volume_threshold
        ):
            failures = self._consecutive_failures
            self._open(now)
            logger.warning(
                f"Circuit for {self.route} OPENED after {failures} consecutive failures"
            )

    def _record_half_open(self, outcome: AttemptOutcome, failure: bool, probe: bool) -> None:
        if probe:
            self._probes_in_flight = max(0, self._probes_in_flight - 1)
        if failure:
            self._open(self._clock())
            logger.warning(f"Circuit for {self.route} probe failed, circuit re-OPENED")
            return
        if not probe or outcome.kind is not OutcomeKind.SUCCESS:
            return

        self._successes_in_half_open += 1
        logger.debug(
            f"Circuit for {self.route} probe succeeded "
            f"({self._successes_in_half_open}/{self.config.success_threshold})"
        )
        if self._successes_in_half_open >= self.config.success_threshold:
            self._change_state(CircuitState.CLOSED)
            logger.debug(f"Circuit for {self.route} recovery successful, circuit CLOSED")

    def _open(self, now: float) -> None:
        self._change_state(CircuitState.OPEN)
        self._opened_at = now

    def _current_volume(self, now: float) -> int:
        window = self.config.volume_window
        if window is not None:
            while self._volume and now - self._volume[0] > window:
                self._volume.popleft()
        return len(self._volume)

    def _counts_as_failure(self, outcome: AttemptOutcome) -> bool:
        """Indicate whether an outcome counts toward opening the circuit.

        Timeouts, 5xx responses and connection-level errors count. 4xx
        responses and cancellations never count. Pool exhaustion counts only
        if configured. Errors raised outside the transport (a closed pool
        for instance) do not say anything about the destination and do not
        count.
        """
        if outcome.kind is OutcomeKind.TIMEOUT:
            return True
        if outcome.kind in {OutcomeKind.SUCCESS, OutcomeKind.CANCELLED}:
            return False
        if outcome.is_pool_exhausted:
            return self.config.count_pool_exhaustion
        if outcome.status_code is not None:
            return outcome.status_code >= 500
        return outcome.kind is OutcomeKind.RETRYABLE_FAILURE or isinstance(
            outcome.error, httpx.TransportError
        )

    def _change_state(self, new_state: CircuitState) -> None:
        """Change the circuit state, reset the counters of the new state and
        invoke the callback.

        Must be called with ``self._lock`` held.
        """
        old_state = self._state
        self._state = new_state
        self._generation += 1
        self._successes_in_half_open = 0
        self._probes_in_flight = 0
        if new_state is CircuitState.CLOSED:
            self._consecutive_failures = 0
            self._opened_at = None
            self._volume.clear()
        if old_state is new_state:
            return

        logger.debug(
            f"Circuit for {self.route} state changed: {old_state.value} -> {new_state.value}"
        )
        if self._on_state_change is not None:
            try:
                self._on_state_change(self.route, old_state, new_state)
            except Exception as e:  # noqa: BLE001
                logger.warning(f"Error in circuit breaker state change callback: {e}")


class CircuitBreaker:
    r"""Registry of per-route circuit breakers.

    Each route gets an independent ``RouteCircuit`` with its own lock, so
    concurrent records for the same route are linearizable while unrelated
    routes never contend. The registry lock is only taken to create the
    circuit of a route seen for the first time.

    Args:
        config: The circuit breaker configuration shared by all the routes.
            Defaults to ``CircuitBreakerConfig()``.
        on_state_change: Optional callback called on every transition with
            ``(route, old_state, new_state)``. Errors raised by the callback
            are logged and ignored.
        clock: Monotonic clock used for the sleep window.

    Example:
        ```pycon
        >>> from aresclient.circuit_breaker import CircuitBreaker
        >>> from aresclient.route import Route
        >>> breaker = CircuitBreaker()
        >>> permit = breaker.admit(Route.from_url("https://api.example.com"))
        >>> permit.probe
        False

        ```
    """

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        *,
        on_state_change: Callable[[Route, CircuitState, CircuitState], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config if config is not None else CircuitBreakerConfig()
        self._on_state_change = on_state_change
        self._clock = clock
        self._circuits: dict[Route, RouteCircuit] = {}
        self._registry_lock = threading.Lock()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(routes={len(self._circuits)}, config={self.config})"

    def circuit(self, route: Route) -> RouteCircuit:
        """Get the circuit of a route, creating it if needed."""
        circuit = self._circuits.get(route)
        if circuit is not None:
            return circuit
        with self._registry_lock:
            circuit = self._circuits.get(route)
            if circuit is None:
                circuit = RouteCircuit(
                    route,
                    self.config,
                    on_state_change=self._on_state_change,
                    clock=self._clock,
                )
                self._circuits[route] = circuit
            return circuit

    def admit(self, route: Route) -> Permit:
        """Decide whether an attempt to a route may proceed.

        Raises:
            CircuitOpenError: If the circuit of the route rejects the attempt.
        """
        return self.circuit(route).admit()

    def record(self, route: Route, outcome: AttemptOutcome, permit: Permit | None = None) -> None:
        """Record the outcome of an attempt to a route."""
        self.circuit(route).record(outcome, permit)

    def state(self, route: Route) -> CircuitState:
        """Get the state of the circuit of a route."""
        circuit = self._circuits.get(route)
        return CircuitState.CLOSED if circuit is None else circuit.state

    def snapshot(self, route: Route) -> CircuitSnapshot:
        return self.circuit(route).snapshot()

    def reset(self, route: Route | None = None) -> None:
        """Manually reset one circuit, or all of them when ``route`` is None."""
        if route is not None:
            self.circuit(route).reset()
            return
        with self._registry_lock:
            circuits = list(self._circuits.values())
        for circuit in circuits:
            circuit.reset()

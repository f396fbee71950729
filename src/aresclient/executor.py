r"""Request executor composing the resilience components.

The ``RequestExecutor`` drives one logical request through the circuit
breaker, the connection pool, the timeout manager and the retry policy:

```
admit -> acquire -> attempt (send + read body) -> record + release
      -> retry decision -> backoff sleep -> admit -> ...
```

The outcome of every attempt is recorded in the circuit breaker and its
connection released to the pool exactly once, including when the attempt
times out or is cancelled.
"""

from __future__ import annotations

__all__ = ["RequestExecutor"]

import asyncio
import logging
import time
from functools import partial
from typing import TYPE_CHECKING

import httpx

from aresclient.callbacks import AttemptEvent, TerminalEvent, invoke_callback
from aresclient.circuit_breaker import CircuitBreaker
from aresclient.core.config import ClientConfig
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
from aresclient.outcome import AttemptOutcome, classify_response, classify_transport_error
from aresclient.pool import ConnectionPool
from aresclient.retry import RetryDecision, RetryPolicy, RetryState, StopReason
from aresclient.route import Route
from aresclient.timeout import TimeoutManager
from aresclient.utils.structured_logging import log_structured

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType
    from typing import Self

    from aresclient.cancellation import CancellationToken
    from aresclient.circuit_breaker import Permit
    from aresclient.pool import PooledConnection
    from aresclient.timeout import AttemptTimer

logger: logging.Logger = logging.getLogger(__name__)

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"


class RequestExecutor:
    r"""Execute HTTP requests with circuit breaking, pooling, timeouts and
    retries.

    The pool and the circuit breaker are shared by all the requests of the
    executor. Retry bookkeeping is created per request and never shared.

    Args:
        config: The client configuration. Defaults to ``ClientConfig()``.
        pool: Optional connection pool. If None, the executor creates one
            from ``config.pool`` and closes it in ``aclose()``.
        circuit_breaker: Optional circuit breaker. Defaults to one built
            from ``config.circuit_breaker``.
        retry_policy: Optional retry policy. Defaults to one built from
            ``config.retry``.
        timeout_manager: Optional timeout manager. Defaults to one built
            from ``config.timeout``.
        on_attempt: Optional callback called with an ``AttemptEvent`` after
            every attempt.
        on_terminal: Optional callback called with a ``TerminalEvent`` when
            the logical request completes.
        clock: Monotonic clock used to measure latencies and elapsed time.

    Example:
        ```pycon
        >>> import asyncio
        >>> import httpx
        >>> from aresclient.executor import RequestExecutor
        >>> from aresclient.pool import ConnectionPool
        >>> async def main():
        ...     transport = httpx.MockTransport(lambda request: httpx.Response(200, text="ok"))
        ...     pool = ConnectionPool(connection_factory=lambda route: transport)
        ...     async with RequestExecutor(pool=pool) as executor:
        ...         request = httpx.Request("GET", "https://api.example.com/data")
        ...         response = await executor.execute(request, idempotent=True)
        ...     return response.status_code, response.text
        ...
        >>> asyncio.run(main())
        (200, 'ok')

        ```
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        pool: ConnectionPool | None = None,
        circuit_breaker: CircuitBreaker | None = None,
        retry_policy: RetryPolicy | None = None,
        timeout_manager: TimeoutManager | None = None,
        on_attempt: Callable[[AttemptEvent], None] | None = None,
        on_terminal: Callable[[TerminalEvent], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config if config is not None else ClientConfig()
        self._owns_pool = pool is None
        self.pool = pool if pool is not None else ConnectionPool(self.config.pool)
        self.circuit_breaker = (
            circuit_breaker
            if circuit_breaker is not None
            else CircuitBreaker(self.config.circuit_breaker)
        )
        self.retry_policy = (
            retry_policy if retry_policy is not None else RetryPolicy(self.config.retry)
        )
        self.timeout_manager = (
            timeout_manager
            if timeout_manager is not None
            else TimeoutManager.from_config(self.config.timeout)
        )
        self._on_attempt = on_attempt
        self._on_terminal = on_terminal
        self._clock = clock

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(pool={self.pool}, circuit_breaker={self.circuit_breaker}, "
            f"timeout_manager={self.timeout_manager})"
        )

    async def __aenter__(self) -> Self:
        if self._owns_pool:
            self.pool.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the connection pool if the executor created it."""
        if self._owns_pool:
            await self.pool.aclose()

    async def execute(
        self,
        request: httpx.Request,
        *,
        idempotent: bool,
        idempotency_key: str | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> httpx.Response:
        """Execute one logical request.

        Args:
            request: The HTTP request. It is sent as is on every attempt, so
                its body must be replayable.
            idempotent: Whether the caller declares the request idempotent.
                Failures of a request that is neither idempotent nor carries
                an idempotency key are never retried.
            idempotency_key: Optional idempotency key, sent in the
                ``Idempotency-Key`` header. It makes the request eligible
                for retries.
            cancel_token: Optional token to cancel the request from the
                outside.

        Returns:
            The successful HTTP response, with its body already read.

        Raises:
            CircuitOpenError: If the circuit of the route rejects an attempt.
            PoolExhaustedError: If no connection is available in time.
            NonRetryableTransportError: If the failure must not be retried.
            MaxAttemptsExceededError: If the last allowed attempt failed.
            MaxElapsedExceededError: If the time budget is exhausted.
            RequestCancelledError: If ``cancel_token`` is cancelled.
        """
        if idempotency_key is not None:
            request.headers[IDEMPOTENCY_KEY_HEADER] = idempotency_key
        retry_eligible = idempotent or IDEMPOTENCY_KEY_HEADER in request.headers
        route = Route.from_request(request)
        state = RetryState.start(self._clock())

        try:
            if cancel_token is None:
                return await self._run(request, route, state, retry_eligible)
            with cancel_token.scope():
                return await self._run(request, route, state, retry_eligible)
        except RequestCancelledError as exc:
            raise exc.with_context(
                route=route,
                attempt_count=state.attempt_count,
                elapsed=state.elapsed(self._clock()),
                last_outcome=state.last_outcome,
            )

    async def _run(
        self, request: httpx.Request, route: Route, state: RetryState, retry_eligible: bool
    ) -> httpx.Response:
        try:
            return await self._retry_loop(request, route, state, retry_eligible)
        except asyncio.CancelledError:
            state.last_outcome = AttemptOutcome.cancelled()
            self._emit_terminal(request, route, state, error=asyncio.CancelledError.__name__)
            raise

    async def _retry_loop(
        self, request: httpx.Request, route: Route, state: RetryState, retry_eligible: bool
    ) -> httpx.Response:
        while True:
            try:
                permit = self.circuit_breaker.admit(route)
            except CircuitOpenError as exc:
                self._fail(request, route, state, exc)
                raise

            attempt = state.begin_attempt()
            started = self._clock()
            outcome = await self._attempt(request, route, permit)
            latency = self._clock() - started
            state.last_outcome = outcome

            if outcome.is_success:
                self._emit_attempt(request, route, attempt, outcome, latency, next_delay=None)
                self._emit_terminal(request, route, state)
                return outcome.response

            if outcome.is_pool_exhausted:
                self._emit_attempt(request, route, attempt, outcome, latency, next_delay=None)
                error = outcome.error
                self._fail(request, route, state, error)
                raise error

            elapsed = state.elapsed(self._clock())
            if not retry_eligible and self.retry_policy.is_retryable(outcome):
                decision = RetryDecision.stop(StopReason.NOT_IDEMPOTENT)
            else:
                decision = self.retry_policy.should_retry(outcome, attempt, elapsed)
            self._emit_attempt(request, route, attempt, outcome, latency, next_delay=decision.delay)

            if not decision.should_retry:
                error = self._terminal_error(decision.reason, request, outcome, state)
                self._fail(request, route, state, error)
                raise error from outcome.error

            logger.debug(
                f"{request.method} request to {request.url} failed with {outcome.describe()} "
                f"(attempt {attempt}/{self.retry_policy.config.max_attempts}), "
                f"retrying in {decision.delay:.2f}s"
            )
            state.last_delay = decision.delay
            await asyncio.sleep(decision.delay)

    async def _attempt(self, request: httpx.Request, route: Route, permit: Permit) -> AttemptOutcome:
        """Make one network attempt.

        The outcome is recorded in the circuit breaker and the connection
        released in all cases, with a ``CANCELLED`` outcome if the attempt
        is interrupted.
        """
        conn: PooledConnection | None = None
        outcome = AttemptOutcome.cancelled()
        try:
            try:
                conn = await self.pool.acquire(route, self.timeout_manager.connect_timeout)
            except PoolExhaustedError as exc:
                outcome = AttemptOutcome.pool_exhausted(exc)
                return outcome
            except AttemptTimeoutError as exc:
                outcome = AttemptOutcome.timeout(exc.phase, error=exc)
                return outcome
            except RetryableTransportError as exc:
                outcome = AttemptOutcome.retryable_failure(exc.message, error=exc)
                return outcome

            outcome = await self.timeout_manager.run_attempt(partial(self._exchange, conn, request))
            return outcome
        except asyncio.CancelledError as exc:
            outcome = AttemptOutcome.cancelled(exc)
            raise
        except Exception as exc:
            outcome = AttemptOutcome.non_retryable_failure(f"{type(exc).__name__}: {exc}", error=exc)
            raise
        finally:
            self.circuit_breaker.record(route, outcome, permit)
            if conn is not None:
                await self.pool.release(conn, outcome)

    async def _exchange(
        self, conn: PooledConnection, request: httpx.Request, timer: AttemptTimer
    ) -> AttemptOutcome:
        """Send the request on a connection and read the whole response
        body, so the connection is free again when the attempt ends."""
        request.extensions["timeout"] = timer.extensions
        try:
            response = await timer.read(conn.send(request))
            if not response.is_stream_consumed:
                response = await self._read_body(response, request, timer)
        except httpx.TimeoutException:
            raise
        except httpx.TransportError as exc:
            return classify_transport_error(exc)
        except httpx.RequestError as exc:
            return AttemptOutcome.non_retryable_failure(f"{type(exc).__name__}: {exc}", error=exc)
        return classify_response(response, self.retry_policy.config.retry_status_codes)

    @staticmethod
    async def _read_body(
        response: httpx.Response, request: httpx.Request, timer: AttemptTimer
    ) -> httpx.Response:
        try:
            chunks = [chunk async for chunk in timer.iter_read(response.aiter_raw())]
        finally:
            await response.aclose()
        return httpx.Response(
            status_code=response.status_code,
            headers=response.headers,
            stream=httpx.ByteStream(b"".join(chunks)),
            request=request,
            extensions=response.extensions,
        )

    def _terminal_error(
        self,
        reason: StopReason,
        request: httpx.Request,
        outcome: AttemptOutcome,
        state: RetryState,
    ) -> ResilientHttpError:
        prefix = f"{request.method} request to {request.url}"
        if reason is StopReason.NOT_RETRYABLE:
            error_cls = NonRetryableTransportError
            msg = f"{prefix} failed with {outcome.describe()}"
        elif reason is StopReason.NOT_IDEMPOTENT:
            error_cls = NonRetryableTransportError
            msg = (
                f"{prefix} failed with {outcome.describe()} and is not retried "
                "because it is not idempotent"
            )
        elif reason is StopReason.MAX_ELAPSED:
            error_cls = MaxElapsedExceededError
            msg = (
                f"{prefix} failed after {state.attempt_count} attempts, exceeding max_elapsed "
                f"of {self.retry_policy.config.max_elapsed}s: {outcome.describe()}"
            )
        else:
            error_cls = MaxAttemptsExceededError
            msg = f"{prefix} failed after {state.attempt_count} attempts: {outcome.describe()}"
        logger.debug(msg)
        return error_cls(msg, cause=outcome.error)

    def _fail(
        self, request: httpx.Request, route: Route, state: RetryState, error: ResilientHttpError
    ) -> None:
        error.with_context(
            route=route,
            attempt_count=state.attempt_count,
            elapsed=state.elapsed(self._clock()),
            last_outcome=state.last_outcome,
        )
        self._emit_terminal(request, route, state, error=type(error).__name__)

    def _emit_attempt(
        self,
        request: httpx.Request,
        route: Route,
        attempt: int,
        outcome: AttemptOutcome,
        latency: float,
        next_delay: float | None,
    ) -> None:
        event = AttemptEvent(
            route=str(route),
            method=request.method,
            attempt=attempt,
            outcome=outcome.kind.value,
            reason=outcome.reason,
            status_code=outcome.status_code,
            latency=latency,
            circuit_state=self.circuit_breaker.state(route).value,
            next_delay=next_delay,
        )
        log_structured(
            logger,
            logging.DEBUG,
            f"{request.method} {route} attempt {attempt}: {outcome.describe()}",
            **event.to_dict(),
        )
        invoke_callback(self._on_attempt, event)

    def _emit_terminal(
        self,
        request: httpx.Request,
        route: Route,
        state: RetryState,
        error: str | None = None,
    ) -> None:
        outcome = state.last_outcome
        event = TerminalEvent(
            route=str(route),
            method=request.method,
            attempts=state.attempt_count,
            succeeded=error is None,
            outcome=None if outcome is None else outcome.kind.value,
            elapsed=state.elapsed(self._clock()),
            circuit_state=self.circuit_breaker.state(route).value,
            error=error,
        )
        status = "succeeded" if error is None else f"failed ({error})"
        log_structured(
            logger,
            logging.DEBUG,
            f"{request.method} {route} {status} after {state.attempt_count} attempt(s)",
            **event.to_dict(),
        )
        invoke_callback(self._on_terminal, event)

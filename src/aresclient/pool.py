r"""Bounded pool of reusable transport connections keyed by route.

Each ``PooledConnection`` wraps one httpx transport limited to a single
socket. The pool bounds the number of connections per route and in total,
hands every connection to one attempt at a time, validates idle
connections before reuse and sweeps stale ones in the background.

Example:
    ```pycon
    >>> import asyncio
    >>> import httpx
    >>> from aresclient.core.config import PoolConfig
    >>> from aresclient.outcome import AttemptOutcome
    >>> from aresclient.pool import ConnectionPool
    >>> from aresclient.route import Route
    >>> async def main():
    ...     transport = httpx.MockTransport(lambda request: httpx.Response(200))
    ...     async with ConnectionPool(
    ...         PoolConfig(max_per_route=2, max_total=4),
    ...         connection_factory=lambda route: transport,
    ...     ) as pool:
    ...         route = Route.from_url("https://api.example.com")
    ...         conn = await pool.acquire(route, connect_timeout=1.0)
    ...         await pool.release(conn, AttemptOutcome.success())
    ...         again = await pool.acquire(route, connect_timeout=1.0)
    ...         return again is conn, again.use_count
    ...
    >>> asyncio.run(main())
    (True, 2)

    ```
"""

from __future__ import annotations

__all__ = ["ConnectionPool", "ConnectionState", "PooledConnection"]

import asyncio
import inspect
import itertools
import logging
import time
from collections import defaultdict
from enum import Enum
from typing import TYPE_CHECKING

import httpx

from aresclient.core.config import PoolConfig
from aresclient.exceptions import AttemptTimeoutError, PoolExhaustedError, RetryableTransportError
from aresclient.outcome import TimeoutPhase

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable
    from types import TracebackType
    from typing import Self

    from aresclient.outcome import AttemptOutcome
    from aresclient.route import Route

    ConnectionFactory = Callable[
        [Route], httpx.AsyncBaseTransport | Awaitable[httpx.AsyncBaseTransport]
    ]

logger: logging.Logger = logging.getLogger(__name__)

_connection_ids = itertools.count(1)


class ConnectionState(Enum):
    """Lifecycle states of a pooled connection."""

    IDLE = "idle"
    IN_USE = "in_use"
    STALE = "stale"


def default_connection_factory(route: Route) -> httpx.AsyncBaseTransport:  # noqa: ARG001
    """Create an httpx transport holding at most one keep-alive socket.

    Keep-alive expiry is left to the pool, which tracks idle age itself.
    """
    return httpx.AsyncHTTPTransport(
        limits=httpx.Limits(max_connections=1, max_keepalive_connections=1, keepalive_expiry=None),
        retries=0,
    )


class PooledConnection:
    """One reusable transport connection to a route.

    Args:
        route: The route the connection is bound to.
        transport: The httpx transport performing the I/O.
        created_at: Clock value at creation.

    Attributes:
        route: The route the connection is bound to.
        transport: The httpx transport performing the I/O.
        connection_id: Unique id, for logging.
        created_at: Clock value at creation.
        last_used_at: Clock value of the last checkout or return.
        use_count: Number of times the connection was handed out.
        state: The lifecycle state.
        healthy: False once a transport-level error was reported on it.
    """

    def __init__(self, route: Route, transport: httpx.AsyncBaseTransport, created_at: float) -> None:
        self.route = route
        self.transport = transport
        self.connection_id = next(_connection_ids)
        self.created_at = created_at
        self.last_used_at = created_at
        self.use_count = 0
        self.state = ConnectionState.IDLE
        self.healthy = True

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(id={self.connection_id}, route={self.route}, "
            f"state={self.state.value}, use_count={self.use_count})"
        )

    async def send(self, request: httpx.Request) -> httpx.Response:
        """Send a request on this connection.

        Returns:
            The response with an unread body stream.

        Raises:
            RuntimeError: If the connection is not checked out.
        """
        if self.state is not ConnectionState.IN_USE:
            msg = f"Connection {self.connection_id} is not in use (state={self.state.value})"
            raise RuntimeError(msg)
        response = await self.transport.handle_async_request(request)
        response.request = request
        return response

    def is_stale(
        self,
        now: float,
        idle_timeout: float,
        max_lifetime: float | None = None,
    ) -> bool:
        """Indicate whether an idle connection must not be reused."""
        if not self.healthy:
            return True
        if now - self.last_used_at >= idle_timeout:
            return True
        return max_lifetime is not None and now - self.created_at >= max_lifetime

    async def aclose(self) -> None:
        """Close the underlying transport."""
        self.state = ConnectionState.STALE
        try:
            await self.transport.aclose()
        except Exception as exc:  # noqa: BLE001
            logger.debug(f"Error while closing connection {self.connection_id}: {exc}")


class ConnectionPool:
    r"""Bounded pool of connections keyed by route.

    Guarantees ``route_count(route) <= max_per_route`` and
    ``total_count <= max_total`` at all times: a free slot is checked and
    reserved without any suspension point in between. Every release or
    destruction wakes the waiting callers, which re-check the pool.

    Args:
        config: The pool configuration. Defaults to ``PoolConfig()``.
        connection_factory: Callable creating the transport of a new
            connection for a route. It may be sync or async. Defaults to a
            single-socket ``httpx.AsyncHTTPTransport``.
        validator: Optional liveness probe called on an idle connection
            before reuse; returning False destroys the connection.
        clock: Monotonic clock used for connection ages.
    """

    def __init__(
        self,
        config: PoolConfig | None = None,
        *,
        connection_factory: ConnectionFactory | None = None,
        validator: Callable[[PooledConnection], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config if config is not None else PoolConfig()
        self._factory = (
            connection_factory if connection_factory is not None else default_connection_factory
        )
        self._validator = validator
        self._clock = clock

        # Idle connections per route, most recently used last
        self._idle: dict[Route, list[PooledConnection]] = defaultdict(list)
        self._route_counts: dict[Route, int] = defaultdict(int)
        self._total = 0
        self._waiters: set[asyncio.Future[None]] = set()
        self._sweeper: asyncio.Task[None] | None = None
        self._closed = False

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(total={self._total}/{self.config.max_total}, "
            f"idle={self.idle_count()}, max_per_route={self.config.max_per_route})"
        )

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.aclose()

    @property
    def total_count(self) -> int:
        """Number of connections (idle, in use or being created)."""
        return self._total

    @property
    def closed(self) -> bool:
        return self._closed

    def route_count(self, route: Route) -> int:
        """Number of connections of a route (idle, in use or being
        created)."""
        return self._route_counts.get(route, 0)

    def idle_count(self, route: Route | None = None) -> int:
        """Number of idle connections, for one route or for all."""
        if route is not None:
            return len(self._idle.get(route, ()))
        return sum(len(conns) for conns in self._idle.values())

    def start(self) -> None:
        """Start the background sweep of stale idle connections.

        Must be called from a running event loop. Calling it twice has no
        effect.
        """
        if self._closed:
            msg = "ConnectionPool is closed"
            raise RuntimeError(msg)
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep_forever(), name="aresclient-pool-sweeper")

    async def acquire(self, route: Route, connect_timeout: float) -> PooledConnection:
        """Check out a connection to a route.

        Reuses a valid idle connection when there is one, otherwise creates
        a new connection if the bounds allow it, otherwise waits up to
        ``pool_wait_timeout`` for a connection to be released.

        Args:
            route: The destination route.
            connect_timeout: Deadline in seconds for creating a connection.

        Returns:
            A connection in the ``IN_USE`` state, owned by the caller until
            ``release`` is called.

        Raises:
            PoolExhaustedError: If no connection became available in time.
            AttemptTimeoutError: If creating the connection timed out.
            RetryableTransportError: If creating the connection failed.
            RuntimeError: If the pool is closed.
        """
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.config.pool_wait_timeout
        while True:
            if self._closed:
                msg = "ConnectionPool is closed"
                raise RuntimeError(msg)
            conn, reserved, discarded = self._checkout(route)
            if discarded:
                try:
                    await self._close_all(discarded)
                except BaseException:
                    self._return_unused(route, conn, reserved)
                    raise
            if conn is not None:
                return conn
            if reserved:
                return await self._create(route, connect_timeout)

            remaining = deadline - loop.time()
            if remaining <= 0:
                waited = loop.time() - started
                logger.debug(
                    f"Pool exhausted for {route}: {self.route_count(route)}/"
                    f"{self.config.max_per_route} on route, {self._total}/{self.config.max_total} total"
                )
                raise PoolExhaustedError(route, waited)
            await self._wait(remaining)

    async def release(self, conn: PooledConnection, outcome: AttemptOutcome) -> None:
        """Return a connection after an attempt.

        The connection is kept for reuse when the attempt completed its HTTP
        exchange, the connection is healthy and it is under its use and
        lifetime limits. Otherwise it is destroyed. Reuse is not limited to
        successes: a fully read error response such as a 503 also leaves the
        connection reusable. The bookkeeping happens before the first
        suspension point, so it completes even if the caller is cancelled
        while the transport closes.

        Args:
            conn: A connection returned by ``acquire``.
            outcome: The outcome of the attempt made on the connection.

        Raises:
            RuntimeError: If the connection is not checked out.
        """
        if conn.state is not ConnectionState.IN_USE:
            msg = f"Cannot release connection {conn.connection_id} in state {conn.state.value}"
            raise RuntimeError(msg)
        now = self._clock()
        conn.last_used_at = now
        if not outcome.completed_exchange:
            conn.healthy = False

        if self._closed or not self._reusable(conn, now):
            self._discard(conn)
            self._notify()
            logger.debug(f"Destroyed connection {conn.connection_id} after {outcome.describe()}")
            await conn.aclose()
            return

        conn.state = ConnectionState.IDLE
        self._idle[conn.route].append(conn)
        self._notify()

    async def sweep(self) -> int:
        """Destroy the idle connections whose idle age reached the idle
        timeout.

        Returns:
            The number of destroyed connections.
        """
        now = self._clock()
        stale: list[PooledConnection] = []
        for route, conns in list(self._idle.items()):
            keep = []
            for conn in conns:
                if conn.is_stale(now, self.config.idle_timeout, self.config.max_lifetime):
                    stale.append(conn)
                else:
                    keep.append(conn)
            self._idle[route] = keep
        for conn in stale:
            self._discard(conn)
        if stale:
            logger.debug(f"Swept {len(stale)} stale idle connection(s)")
            self._notify()
            await self._close_all(stale)
        return len(stale)

    async def aclose(self) -> None:
        """Close the pool.

        Stops the sweeper and closes the idle connections. Connections in
        use are destroyed when released. Waiting callers fail with
        ``RuntimeError``.
        """
        if self._closed:
            return
        self._closed = True
        if self._sweeper is not None:
            self._sweeper.cancel()
            try:
                await self._sweeper
            except asyncio.CancelledError:
                pass
            self._sweeper = None
        idle = [conn for conns in self._idle.values() for conn in conns]
        for conn in idle:
            self._discard(conn)
        self._idle.clear()
        self._notify()
        await self._close_all(idle)

    def _checkout(self, route: Route) -> tuple[PooledConnection | None, bool, list[PooledConnection]]:
        """Try to take an idle connection or reserve a slot.

        Runs without suspension point.

        Returns:
            The checked-out connection (or None), whether a slot for a new
            connection was reserved, and the connections discarded on the way.
        """
        now = self._clock()
        discarded: list[PooledConnection] = []
        idle = self._idle.get(route)
        while idle:
            conn = idle.pop()
            if conn.is_stale(now, self.config.idle_timeout, self.config.max_lifetime) or (
                self._validator is not None and not self._validator(conn)
            ):
                self._discard(conn)
                discarded.append(conn)
                continue
            conn.state = ConnectionState.IN_USE
            conn.use_count += 1
            conn.last_used_at = now
            logger.debug(f"Reusing connection {conn.connection_id} to {route} (use {conn.use_count})")
            return conn, False, discarded

        if self.route_count(route) >= self.config.max_per_route:
            return None, False, discarded
        if self._total >= self.config.max_total:
            victim = self._lru_idle_of_other_route(route)
            if victim is None:
                return None, False, discarded
            self._idle[victim.route].remove(victim)
            self._discard(victim)
            discarded.append(victim)
            logger.debug(f"Evicted idle connection {victim.connection_id} to make room for {route}")

        self._route_counts[route] += 1
        self._total += 1
        return None, True, discarded

    def _return_unused(self, route: Route, conn: PooledConnection | None, reserved: bool) -> None:
        """Undo a checkout whose caller never received the connection."""
        if conn is not None:
            conn.state = ConnectionState.IDLE
            conn.use_count -= 1
            self._idle[route].append(conn)
            self._notify()
        elif reserved:
            self._unreserve(route)

    async def _create(self, route: Route, connect_timeout: float) -> PooledConnection:
        """Create a connection in a reserved slot, bounded by the connect
        timeout."""
        try:
            async with asyncio.timeout(connect_timeout):
                transport = self._factory(route)
                if inspect.isawaitable(transport):
                    transport = await transport
        except TimeoutError as exc:
            self._unreserve(route)
            raise AttemptTimeoutError(TimeoutPhase.CONNECT, connect_timeout, route=route) from exc
        except BaseException as exc:
            self._unreserve(route)
            if isinstance(exc, Exception):
                msg = f"Failed to create connection to {route}: {exc}"
                raise RetryableTransportError(msg, route=route, cause=exc) from exc
            raise

        conn = PooledConnection(route, transport, created_at=self._clock())
        conn.state = ConnectionState.IN_USE
        conn.use_count = 1
        logger.debug(f"Created connection {conn.connection_id} to {route}")
        return conn

    def _reusable(self, conn: PooledConnection, now: float) -> bool:
        if not conn.healthy:
            return False
        if self.config.max_uses is not None and conn.use_count >= self.config.max_uses:
            return False
        return not (
            self.config.max_lifetime is not None
            and now - conn.created_at >= self.config.max_lifetime
        )

    def _lru_idle_of_other_route(self, route: Route) -> PooledConnection | None:
        candidates = [
            conns[0] for other, conns in self._idle.items() if other != route and conns
        ]
        if not candidates:
            return None
        return min(candidates, key=lambda conn: conn.last_used_at)

    def _discard(self, conn: PooledConnection) -> None:
        conn.state = ConnectionState.STALE
        self._unreserve(conn.route)

    def _unreserve(self, route: Route) -> None:
        self._route_counts[route] -= 1
        if self._route_counts[route] <= 0:
            del self._route_counts[route]
        self._total -= 1
        self._notify()

    def _notify(self) -> None:
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(None)
        self._waiters.clear()

    async def _wait(self, timeout: float) -> None:
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.add(waiter)
        try:
            async with asyncio.timeout(timeout):
                await waiter
        except TimeoutError:
            pass
        finally:
            self._waiters.discard(waiter)

    async def _sweep_forever(self) -> None:
        interval = self.config.sweep_interval or self.config.idle_timeout
        while True:
            await asyncio.sleep(interval)
            try:
                await self.sweep()
            except Exception:
                logger.exception("Error while sweeping idle connections")

    @staticmethod
    async def _close_all(conns: list[PooledConnection]) -> None:
        for conn in conns:
            await conn.aclose()

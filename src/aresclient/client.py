r"""Asynchronous context manager client for resilient HTTP requests.

This module provides an async context manager-based client for making
multiple HTTP requests through one shared connection pool and circuit
breaker. The AsyncResilientClient manages the lifecycle of the pool and
provides convenient methods for all HTTP operations.
"""

from __future__ import annotations

__all__ = ["IDEMPOTENT_METHODS", "AsyncResilientClient"]

from typing import TYPE_CHECKING, Any

import httpx

from aresclient.circuit_breaker import CircuitBreaker
from aresclient.core.config import ClientConfig
from aresclient.executor import RequestExecutor
from aresclient.pool import ConnectionPool

if TYPE_CHECKING:
    from collections.abc import Callable
    from types import TracebackType
    from typing import Self

    from aresclient.callbacks import AttemptEvent, TerminalEvent
    from aresclient.cancellation import CancellationToken
    from aresclient.circuit_breaker import CircuitState
    from aresclient.pool import ConnectionFactory, PooledConnection
    from aresclient.route import Route

# HTTP methods that are idempotent by definition (RFC 9110, section 9.2.2)
IDEMPOTENT_METHODS = frozenset({"GET", "HEAD", "OPTIONS", "PUT", "DELETE", "TRACE"})


class AsyncResilientClient:
    r"""Asynchronous context manager for resilient HTTP requests.

    The client owns a connection pool, a per-route circuit breaker and a
    request executor shared by all its requests. Requests are built with
    an ``httpx.AsyncClient`` (so ``base_url``, default headers, params,
    json, etc. work as usual) and executed through the resilience core.

    Args:
        config: Optional ClientConfig instance. If ``None``, a default
            ClientConfig is used.
        base_url: Optional base URL prepended to relative request URLs.
        headers: Optional headers sent with every request.
        connection_factory: Optional callable creating the transport of a
            new pooled connection for a route.
        validator: Optional liveness probe called on an idle connection
            before reuse.
        on_attempt: Optional callback called after every attempt.
        on_terminal: Optional callback called when a logical request
            completes.
        on_state_change: Optional callback called on every circuit
            transition with ``(route, old_state, new_state)``.

    Example:
        ```pycon
        >>> import asyncio
        >>> from aresclient import AsyncResilientClient, ClientConfig, RetryConfig
        >>> async def main():  # doctest: +SKIP
        ...     config = ClientConfig(retry=RetryConfig(max_attempts=5))
        ...     async with AsyncResilientClient(config=config) as client:
        ...         response1 = await client.get("https://api.example.com/data1")
        ...         response2 = await client.post(
        ...             "https://api.example.com/data2",
        ...             json={"key": "value"},
        ...             idempotency_key="order-42",
        ...         )
        ...
        >>> asyncio.run(main())  # doctest: +SKIP

        ```

    Note:
        ``get``, ``head``, ``options``, ``put`` and ``delete`` are declared
        idempotent and retried on transient failures. ``post`` and ``patch``
        are only retried when an idempotency key is given.
    """

    def __init__(
        self,
        config: ClientConfig | None = None,
        *,
        base_url: str | httpx.URL = "",
        headers: dict[str, str] | None = None,
        connection_factory: ConnectionFactory | None = None,
        validator: Callable[[PooledConnection], bool] | None = None,
        on_attempt: Callable[[AttemptEvent], None] | None = None,
        on_terminal: Callable[[TerminalEvent], None] | None = None,
        on_state_change: Callable[[Route, CircuitState, CircuitState], None] | None = None,
    ) -> None:
        self._config = config if config is not None else ClientConfig()
        self._base_url = base_url
        self._headers = headers
        self._connection_factory = connection_factory
        self._validator = validator
        self._on_attempt = on_attempt
        self._on_terminal = on_terminal
        self.circuit_breaker = CircuitBreaker(
            self._config.circuit_breaker, on_state_change=on_state_change
        )

        # Created when entering context
        self._client: httpx.AsyncClient | None = None
        self._executor: RequestExecutor | None = None
        self._entered = False

    @property
    def config(self) -> ClientConfig:
        return self._config

    @property
    def pool(self) -> ConnectionPool:
        return self._ensure_executor().pool

    async def __aenter__(self) -> Self:
        """Enter the async context manager, create the connection pool and
        start its background sweep.

        Returns:
            The AsyncResilientClient instance for making requests.
        """
        pool = ConnectionPool(
            self._config.pool,
            connection_factory=self._connection_factory,
            validator=self._validator,
        )
        pool.start()
        self._executor = RequestExecutor(
            self._config,
            pool=pool,
            circuit_breaker=self.circuit_breaker,
            on_attempt=self._on_attempt,
            on_terminal=self._on_terminal,
        )
        self._client = httpx.AsyncClient(base_url=self._base_url, headers=self._headers)
        self._entered = True
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Exit the async context manager and close the connection pool.

        Args:
            exc_type: Exception type if an exception occurred.
            exc_val: Exception value if an exception occurred.
            exc_tb: Exception traceback if an exception occurred.
        """
        if self._executor is not None:
            await self._executor.pool.aclose()
            self._executor = None
        if self._client is not None:
            await self._client.aclose()
            self._client = None
        self._entered = False

    def _ensure_executor(self) -> RequestExecutor:
        """Ensure the client is available for use.

        Raises:
            RuntimeError: If the client is used outside of a context manager.
        """
        if not self._entered or self._executor is None:
            msg = "AsyncResilientClient must be used within an async context manager (async with statement)"
            raise RuntimeError(msg)
        return self._executor

    async def request(
        self,
        method: str,
        url: str | httpx.URL,
        *,
        idempotent: bool | None = None,
        idempotency_key: str | None = None,
        cancel_token: CancellationToken | None = None,
        **kwargs: Any,
    ) -> httpx.Response:
        r"""Send an HTTP request through the resilience core.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE, PATCH, HEAD, OPTIONS, etc.).
            url: The URL to send the request to.
            idempotent: Whether the request is idempotent. If ``None``, it
                is derived from the method.
            idempotency_key: Optional idempotency key, sent in the
                ``Idempotency-Key`` header. It makes the request eligible
                for retries.
            cancel_token: Optional token to cancel the request.
            **kwargs: Additional keyword arguments passed to
                ``httpx.AsyncClient.build_request()`` (params, headers,
                json, content, ...).

        Returns:
            An httpx.Response object with its body already read.

        Raises:
            RuntimeError: If called outside of a context manager.
            ResilientHttpError: If the request fails.

        Example:
            ```pycon
            >>> import asyncio
            >>> from aresclient import AsyncResilientClient
            >>> async def main():  # doctest: +SKIP
            ...     async with AsyncResilientClient() as client:
            ...         response = await client.request("GET", "https://api.example.com/data")
            ...
            >>> asyncio.run(main())  # doctest: +SKIP

            ```
        """
        executor = self._ensure_executor()
        request = self._client.build_request(method, url, **kwargs)
        if idempotent is None:
            idempotent = request.method in IDEMPOTENT_METHODS
        return await executor.execute(
            request,
            idempotent=idempotent,
            idempotency_key=idempotency_key,
            cancel_token=cancel_token,
        )

    async def get(self, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send an HTTP GET request, declared idempotent.

        Args:
            url: The URL to send the request to.
            **kwargs: Additional keyword arguments passed to ``request``.

        Returns:
            An httpx.Response object.
        """
        return await self.request("GET", url, idempotent=True, **kwargs)

    async def head(self, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send an HTTP HEAD request, declared idempotent."""
        return await self.request("HEAD", url, idempotent=True, **kwargs)

    async def options(self, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send an HTTP OPTIONS request, declared idempotent."""
        return await self.request("OPTIONS", url, idempotent=True, **kwargs)

    async def put(self, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send an HTTP PUT request, declared idempotent."""
        return await self.request("PUT", url, idempotent=True, **kwargs)

    async def delete(self, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send an HTTP DELETE request, declared idempotent."""
        return await self.request("DELETE", url, idempotent=True, **kwargs)

    async def post(self, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send an HTTP POST request.

        The request is not idempotent: it is only retried when an
        ``idempotency_key`` is given.
        """
        return await self.request("POST", url, idempotent=False, **kwargs)

    async def patch(self, url: str | httpx.URL, **kwargs: Any) -> httpx.Response:
        """Send an HTTP PATCH request.

        The request is not idempotent: it is only retried when an
        ``idempotency_key`` is given.
        """
        return await self.request("PATCH", url, idempotent=False, **kwargs)

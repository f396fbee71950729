r"""Shared test helpers.

This module contains the fake clock, the scripted mock transport handler
and the pool builders used across the test files.
"""

from __future__ import annotations

__all__ = [
    "HTTPBIN_URL",
    "DelayedStream",
    "FakeClock",
    "ScriptedHandler",
    "make_executor",
    "make_pool",
]

import asyncio
from typing import TYPE_CHECKING, Any

import httpx

from aresclient.core.config import ClientConfig
from aresclient.executor import RequestExecutor
from aresclient.pool import ConnectionPool

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from aresclient.core.config import PoolConfig

# Use httpbin.org for real HTTP testing
HTTPBIN_URL = "https://httpbin.org"


class FakeClock:
    """Monotonic clock advanced manually."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedHandler:
    """``httpx.MockTransport`` handler replaying a script of results.

    Each item is a status code, an ``httpx.Response`` or an exception to
    raise. The last item is repeated once the script is exhausted. Every
    call is counted.
    """

    def __init__(self, *script: int | httpx.Response | BaseException) -> None:
        self.script = list(script) or [200]
        self.calls = 0
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        if isinstance(item, BaseException):
            raise item
        if isinstance(item, int):
            return httpx.Response(item, text=f"status {item}")
        return item


class DelayedStream(httpx.AsyncByteStream):
    """Response body stream yielding its chunks after a delay each."""

    def __init__(self, chunks: list[bytes], delay: float) -> None:
        self.chunks = chunks
        self.delay = delay
        self.closed = False

    async def __aiter__(self) -> AsyncIterator[bytes]:
        for chunk in self.chunks:
            await asyncio.sleep(self.delay)
            yield chunk

    async def aclose(self) -> None:
        self.closed = True


def make_pool(handler: Any, config: PoolConfig | None = None, **kwargs: Any) -> ConnectionPool:
    """Create a pool whose connections all use a mock transport calling
    ``handler``."""
    transport = httpx.MockTransport(handler)
    return ConnectionPool(config, connection_factory=lambda route: transport, **kwargs)  # noqa: ARG005


def make_executor(
    handler: Any, config: ClientConfig | None = None, **kwargs: Any
) -> RequestExecutor:
    """Create an executor whose pool uses a mock transport calling
    ``handler``."""
    config = config if config is not None else ClientConfig()
    return RequestExecutor(config, pool=make_pool(handler, config.pool), **kwargs)

r"""Timeout enforcement for a single attempt.

The ``TimeoutManager`` enforces a three-level hierarchy: a connect phase
deadline, a rolling read deadline reset on every chunk received, and an
overall deadline for the whole attempt. Whichever fires first cancels the
attempt and yields a ``TIMEOUT`` outcome tagged with its phase.
"""

from __future__ import annotations

__all__ = ["AttemptTimer", "TimeoutManager"]

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

import httpx

from aresclient.core.validation import validate_timeouts
from aresclient.exceptions import AttemptTimeoutError
from aresclient.outcome import AttemptOutcome, TimeoutPhase

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Awaitable, Callable

    from aresclient.core.config import TimeoutConfig

logger: logging.Logger = logging.getLogger(__name__)

T = TypeVar("T")


class AttemptTimer:
    """Phase deadlines handed to the attempt function.

    Args:
        connect_timeout: The connect phase deadline in seconds.
        read_timeout: The read phase deadline in seconds.
    """

    def __init__(self, connect_timeout: float, read_timeout: float) -> None:
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.phase: TimeoutPhase = TimeoutPhase.CONNECT

    @property
    def extensions(self) -> dict[str, float]:
        """The httpx ``timeout`` request extension matching these deadlines."""
        return {
            "connect": self.connect_timeout,
            "read": self.read_timeout,
            "write": self.read_timeout,
            "pool": self.connect_timeout,
        }

    async def connect(self, awaitable: Awaitable[T]) -> T:
        """Await the connect phase within the connect deadline.

        Raises:
            AttemptTimeoutError: If the connect deadline fires.
        """
        self.phase = TimeoutPhase.CONNECT
        return await self._race(awaitable, self.connect_timeout, TimeoutPhase.CONNECT)

    async def read(self, awaitable: Awaitable[T]) -> T:
        """Await one read operation within a fresh read deadline.

        Raises:
            AttemptTimeoutError: If the read deadline fires.
        """
        self.phase = TimeoutPhase.READ
        return await self._race(awaitable, self.read_timeout, TimeoutPhase.READ)

    async def iter_read(self, chunks: AsyncIterator[T]) -> AsyncIterator[T]:
        """Iterate over a stream with a rolling read deadline.

        The deadline restarts for every chunk, so a slow but steady stream
        never times out while a stalled one does.

        Raises:
            AttemptTimeoutError: If no chunk arrives within the read deadline.
        """
        iterator = aiter(chunks)
        while True:
            try:
                chunk = await self.read(anext(iterator))
            except StopAsyncIteration:
                return
            yield chunk

    @staticmethod
    async def _race(awaitable: Awaitable[T], timeout: float, phase: TimeoutPhase) -> T:
        try:
            async with asyncio.timeout(timeout):
                return await awaitable
        except TimeoutError as exc:
            raise AttemptTimeoutError(phase, timeout) from exc


class TimeoutManager:
    """Runs attempts under the connect/read/total timeout hierarchy.

    The ordering ``connect_timeout <= read_timeout <= total_timeout`` is
    validated at construction.

    Args:
        connect_timeout: The connect phase deadline in seconds.
        read_timeout: The rolling read deadline in seconds.
        total_timeout: The overall deadline of one attempt in seconds.

    Raises:
        ValueError: If a timeout is not > 0 or the ordering is violated.

    Example:
        ```pycon
        >>> import asyncio
        >>> from aresclient.timeout import TimeoutManager
        >>> manager = TimeoutManager(connect_timeout=0.1, read_timeout=0.1, total_timeout=1.0)
        >>> async def stalled(timer):
        ...     await timer.read(asyncio.sleep(10))
        ...
        >>> outcome = asyncio.run(manager.run_attempt(stalled))
        >>> outcome.kind, outcome.phase
        (<OutcomeKind.TIMEOUT: 'timeout'>, <TimeoutPhase.READ: 'read'>)

        ```
    """

    def __init__(self, connect_timeout: float, read_timeout: float, total_timeout: float) -> None:
        validate_timeouts(connect_timeout, read_timeout, total_timeout)
        self.connect_timeout = connect_timeout
        self.read_timeout = read_timeout
        self.total_timeout = total_timeout

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(connect_timeout={self.connect_timeout}, "
            f"read_timeout={self.read_timeout}, total_timeout={self.total_timeout})"
        )

    @classmethod
    def from_config(cls, config: TimeoutConfig) -> TimeoutManager:
        return cls(config.connect_timeout, config.read_timeout, config.total_timeout)

    async def run_attempt(
        self, fn: Callable[[AttemptTimer], Awaitable[AttemptOutcome]]
    ) -> AttemptOutcome:
        """Run one attempt under the timeout hierarchy.

        Args:
            fn: The attempt function. It receives an ``AttemptTimer`` to
                bound its connect and read phases and returns the attempt
                outcome.

        Returns:
            The outcome returned by ``fn``, or a ``TIMEOUT`` outcome tagged
            with the phase whose deadline fired first. httpx timeouts raised
            by the transport are mapped to the matching phase.
        """
        timer = AttemptTimer(self.connect_timeout, self.read_timeout)
        try:
            async with asyncio.timeout(self.total_timeout) as deadline:
                return await fn(timer)
        except AttemptTimeoutError as exc:
            logger.debug(f"Attempt timed out in {exc.phase.value} phase")
            return AttemptOutcome.timeout(exc.phase, error=exc)
        except (httpx.ConnectTimeout, httpx.PoolTimeout) as exc:
            logger.debug(f"Transport connect timeout: {exc}")
            return AttemptOutcome.timeout(
                TimeoutPhase.CONNECT,
                error=AttemptTimeoutError(TimeoutPhase.CONNECT, self.connect_timeout, cause=exc),
            )
        except httpx.TimeoutException as exc:
            logger.debug(f"Transport read timeout: {exc}")
            return AttemptOutcome.timeout(
                TimeoutPhase.READ,
                error=AttemptTimeoutError(TimeoutPhase.READ, self.read_timeout, cause=exc),
            )
        except TimeoutError:
            if not deadline.expired():
                raise
            logger.debug(f"Attempt exceeded total timeout of {self.total_timeout}s")
            return AttemptOutcome.timeout(
                TimeoutPhase.TOTAL,
                error=AttemptTimeoutError(TimeoutPhase.TOTAL, self.total_timeout),
            )

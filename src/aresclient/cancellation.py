r"""Caller-supplied cancellation token.

A ``CancellationToken`` lets a caller cancel in-flight requests from the
outside. Requests bind their task to the token with ``token.scope()``;
cancelling the token cancels every bound task, so the cancellation is
delivered at whatever suspension point the task is waiting on (pool wait,
backoff sleep or network I/O) without any polling.

Example:
    ```pycon
    >>> import asyncio
    >>> from aresclient.cancellation import CancellationToken
    >>> from aresclient.exceptions import RequestCancelledError
    >>> async def main():
    ...     token = CancellationToken()
    ...     async def work():
    ...         with token.scope():
    ...             await asyncio.sleep(10)
    ...     task = asyncio.create_task(work())
    ...     await asyncio.sleep(0)
    ...     token.cancel("shutting down")
    ...     try:
    ...         await task
    ...     except RequestCancelledError as exc:
    ...         return str(exc)
    ...
    >>> asyncio.run(main())
    'Request cancelled: shutting down'

    ```
"""

from __future__ import annotations

__all__ = ["CancellationToken"]

import asyncio
import logging
import threading
from contextlib import contextmanager
from typing import TYPE_CHECKING

from aresclient.exceptions import RequestCancelledError

if TYPE_CHECKING:
    from collections.abc import Generator

logger: logging.Logger = logging.getLogger(__name__)


class CancellationToken:
    """Cancellation signal shared between a caller and its requests.

    The token is thread-safe: ``cancel()`` may be called from any thread,
    the bound tasks are cancelled on their own event loop.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cancelled = False
        self._reason: str | None = None
        self._tasks: set[asyncio.Task] = set()
        self._delivered: set[asyncio.Task] = set()

    def __repr__(self) -> str:
        return f"{type(self).__name__}(cancelled={self._cancelled})"

    @property
    def cancelled(self) -> bool:
        """Whether ``cancel()`` has been called."""
        return self._cancelled

    @property
    def reason(self) -> str | None:
        return self._reason

    def cancel(self, reason: str | None = None) -> None:
        """Cancel the token and every task currently bound to it.

        Calling it again has no effect.

        Args:
            reason: Optional reason reported in ``RequestCancelledError``.
        """
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
            self._reason = reason
            tasks = list(self._tasks)
        logger.debug(f"Cancellation token cancelled ({reason}), {len(tasks)} bound task(s)")
        for task in tasks:
            task.get_loop().call_soon_threadsafe(self._deliver, task)

    def _deliver(self, task: asyncio.Task) -> None:
        # Runs on the task loop: skip tasks that left their scope meanwhile
        with self._lock:
            if task in self._tasks and task.cancel(self._reason):
                self._delivered.add(task)

    def raise_if_cancelled(self) -> None:
        """Raise ``RequestCancelledError`` if the token is cancelled."""
        if self._cancelled:
            raise RequestCancelledError(self._message())

    @contextmanager
    def scope(self) -> Generator[None, None, None]:
        """Bind the current task to the token for the duration of the block.

        Raises:
            RequestCancelledError: If the token is or gets cancelled while
                the block runs.
            RuntimeError: If called outside of a running task.
        """
        task = asyncio.current_task()
        if task is None:
            msg = "CancellationToken.scope() must be used inside an asyncio task"
            raise RuntimeError(msg)
        with self._lock:
            self.raise_if_cancelled()
            self._tasks.add(task)
        try:
            yield
        except asyncio.CancelledError:
            with self._lock:
                delivered = task in self._delivered
            if not delivered:
                raise
            # Only the request delivered by this token is withdrawn
            if task.uncancel() > 0:
                raise
            raise RequestCancelledError(self._message()) from None
        finally:
            with self._lock:
                self._tasks.discard(task)
                self._delivered.discard(task)

    def _message(self) -> str:
        if self._reason:
            return f"Request cancelled: {self._reason}"
        return "Request cancelled"

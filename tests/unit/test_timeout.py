"""Unit tests for the TimeoutManager and AttemptTimer."""

from __future__ import annotations

import asyncio

import httpx
import pytest

from aresclient.core.config import TimeoutConfig
from aresclient.exceptions import AttemptTimeoutError
from aresclient.outcome import AttemptOutcome, OutcomeKind, TimeoutPhase
from aresclient.timeout import AttemptTimer, TimeoutManager
from tests.helpers import DelayedStream

##################################
#     Tests for AttemptTimer     #
##################################


def test_attempt_timer_extensions() -> None:
    timer = AttemptTimer(connect_timeout=1.0, read_timeout=2.0)
    assert timer.extensions == {"connect": 1.0, "read": 2.0, "write": 2.0, "pool": 1.0}
    assert timer.phase == TimeoutPhase.CONNECT


@pytest.mark.asyncio
async def test_attempt_timer_connect() -> None:
    timer = AttemptTimer(connect_timeout=1.0, read_timeout=1.0)
    assert await timer.connect(asyncio.sleep(0, result=42)) == 42


@pytest.mark.asyncio
async def test_attempt_timer_connect_timeout() -> None:
    timer = AttemptTimer(connect_timeout=0.01, read_timeout=1.0)
    with pytest.raises(AttemptTimeoutError, match=r"connect timeout after 0.01s") as exc_info:
        await timer.connect(asyncio.sleep(1.0))
    assert exc_info.value.phase == TimeoutPhase.CONNECT
    assert exc_info.value.timeout == 0.01


@pytest.mark.asyncio
async def test_attempt_timer_read_timeout() -> None:
    timer = AttemptTimer(connect_timeout=0.01, read_timeout=0.02)
    with pytest.raises(AttemptTimeoutError) as exc_info:
        await timer.read(asyncio.sleep(1.0))
    assert exc_info.value.phase == TimeoutPhase.READ
    assert timer.phase == TimeoutPhase.READ


@pytest.mark.asyncio
async def test_attempt_timer_iter_read_rolling_deadline() -> None:
    """Test that the read deadline restarts for every chunk: the stream
    takes longer than the read timeout overall but never stalls."""
    timer = AttemptTimer(connect_timeout=0.05, read_timeout=0.05)
    stream = DelayedStream([b"a", b"b", b"c", b"d", b"e"], delay=0.02)
    chunks = [chunk async for chunk in timer.iter_read(aiter(stream))]
    assert chunks == [b"a", b"b", b"c", b"d", b"e"]


@pytest.mark.asyncio
async def test_attempt_timer_iter_read_stalled() -> None:
    timer = AttemptTimer(connect_timeout=0.01, read_timeout=0.02)
    stream = DelayedStream([b"a", b"b"], delay=0.5)
    with pytest.raises(AttemptTimeoutError) as exc_info:
        async for _ in timer.iter_read(aiter(stream)):
            pass
    assert exc_info.value.phase == TimeoutPhase.READ


####################################
#     Tests for TimeoutManager     #
####################################


def test_timeout_manager_init() -> None:
    manager = TimeoutManager(connect_timeout=1.0, read_timeout=2.0, total_timeout=3.0)
    assert manager.connect_timeout == 1.0
    assert manager.read_timeout == 2.0
    assert manager.total_timeout == 3.0


def test_timeout_manager_repr() -> None:
    assert repr(TimeoutManager(1.0, 2.0, 3.0)) == (
        "TimeoutManager(connect_timeout=1.0, read_timeout=2.0, total_timeout=3.0)"
    )


def test_timeout_manager_from_config() -> None:
    manager = TimeoutManager.from_config(TimeoutConfig(1.0, 5.0, 10.0))
    assert (manager.connect_timeout, manager.read_timeout, manager.total_timeout) == (
        1.0,
        5.0,
        10.0,
    )


@pytest.mark.parametrize(
    ("connect", "read", "total", "match"),
    [
        (0.0, 1.0, 2.0, r"connect_timeout must be > 0"),
        (2.0, 1.0, 3.0, r"connect_timeout must be <= read_timeout"),
        (1.0, 3.0, 2.0, r"read_timeout must be <= total_timeout"),
        (1.0, 1.0, -1.0, r"total_timeout must be > 0"),
    ],
)
def test_timeout_manager_invalid(connect: float, read: float, total: float, match: str) -> None:
    """Test that misconfigured timeouts fail fast at construction."""
    with pytest.raises(ValueError, match=match):
        TimeoutManager(connect, read, total)


@pytest.mark.asyncio
async def test_timeout_manager_run_attempt_success() -> None:
    manager = TimeoutManager(0.1, 0.1, 1.0)

    async def attempt(timer: AttemptTimer) -> AttemptOutcome:
        await timer.connect(asyncio.sleep(0))
        return AttemptOutcome.success()

    outcome = await manager.run_attempt(attempt)
    assert outcome.kind == OutcomeKind.SUCCESS


@pytest.mark.asyncio
@pytest.mark.parametrize("phase", [TimeoutPhase.CONNECT, TimeoutPhase.READ])
async def test_timeout_manager_phase_timeout(phase: TimeoutPhase) -> None:
    manager = TimeoutManager(0.01, 0.02, 1.0)

    async def attempt(timer: AttemptTimer) -> AttemptOutcome:
        stall = asyncio.sleep(1.0)
        if phase == TimeoutPhase.CONNECT:
            await timer.connect(stall)
        else:
            await timer.read(stall)
        return AttemptOutcome.success()

    outcome = await manager.run_attempt(attempt)
    assert outcome.kind == OutcomeKind.TIMEOUT
    assert outcome.phase == phase
    assert isinstance(outcome.error, AttemptTimeoutError)


@pytest.mark.asyncio
async def test_timeout_manager_total_timeout() -> None:
    """Test that a slow but steady attempt hits the total deadline."""
    manager = TimeoutManager(0.05, 0.05, 0.1)

    async def attempt(timer: AttemptTimer) -> AttemptOutcome:
        stream = DelayedStream([b"x"] * 20, delay=0.02)
        async for _ in timer.iter_read(aiter(stream)):
            pass
        return AttemptOutcome.success()

    outcome = await manager.run_attempt(attempt)
    assert outcome.kind == OutcomeKind.TIMEOUT
    assert outcome.phase == TimeoutPhase.TOTAL
    assert outcome.error.timeout == 0.1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("exc", "phase"),
    [
        (httpx.ConnectTimeout("connect"), TimeoutPhase.CONNECT),
        (httpx.PoolTimeout("pool"), TimeoutPhase.CONNECT),
        (httpx.ReadTimeout("read"), TimeoutPhase.READ),
        (httpx.WriteTimeout("write"), TimeoutPhase.READ),
    ],
)
async def test_timeout_manager_maps_httpx_timeouts(
    exc: httpx.TimeoutException, phase: TimeoutPhase
) -> None:
    manager = TimeoutManager(1.0, 2.0, 3.0)

    async def attempt(timer: AttemptTimer) -> AttemptOutcome:
        raise exc

    outcome = await manager.run_attempt(attempt)
    assert outcome.kind == OutcomeKind.TIMEOUT
    assert outcome.phase == phase
    assert outcome.error.cause is exc


@pytest.mark.asyncio
async def test_timeout_manager_propagates_foreign_timeout_error() -> None:
    """Test that a TimeoutError not raised by the total deadline is not
    mistaken for a total timeout."""
    manager = TimeoutManager(1.0, 2.0, 3.0)

    async def attempt(timer: AttemptTimer) -> AttemptOutcome:
        msg = "unrelated"
        raise TimeoutError(msg)

    with pytest.raises(TimeoutError, match=r"unrelated"):
        await manager.run_attempt(attempt)


@pytest.mark.asyncio
async def test_timeout_manager_propagates_cancellation() -> None:
    manager = TimeoutManager(1.0, 2.0, 3.0)

    async def attempt(timer: AttemptTimer) -> AttemptOutcome:
        await timer.read(asyncio.sleep(10))
        return AttemptOutcome.success()

    task = asyncio.create_task(manager.run_attempt(attempt))
    await asyncio.sleep(0.01)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

from __future__ import annotations

import random
from unittest.mock import Mock

import pytest

from aresclient.backoff import ExponentialBackoff, FullJitterBackoff

#######################################
#     Tests for FullJitterBackoff     #
#######################################


def test_full_jitter_backoff_is_exponential() -> None:
    backoff = FullJitterBackoff(base=0.5, cap=10.0)
    assert isinstance(backoff, ExponentialBackoff)
    assert repr(backoff) == "FullJitterBackoff(base=0.5, cap=10.0)"


@pytest.mark.parametrize(("retry", "ceiling"), [(0, 1.0), (1, 2.0), (2, 4.0), (6, 30.0)])
def test_full_jitter_backoff_range(retry: int, ceiling: float) -> None:
    backoff = FullJitterBackoff(base=1.0, cap=30.0, rng=random.Random(42))
    for _ in range(200):
        delay = backoff.calculate(retry)
        assert 0.0 < delay <= ceiling


def test_full_jitter_backoff_is_randomized() -> None:
    backoff = FullJitterBackoff(base=1.0, cap=30.0, rng=random.Random(7))
    delays = {backoff.calculate(3) for _ in range(20)}
    assert len(delays) > 1


def test_full_jitter_backoff_seeded_is_reproducible() -> None:
    delays1 = [FullJitterBackoff(rng=random.Random(3)).calculate(i) for i in range(5)]
    delays2 = [FullJitterBackoff(rng=random.Random(3)).calculate(i) for i in range(5)]
    assert delays1 == delays2


def test_full_jitter_backoff_random_zero_gives_ceiling() -> None:
    backoff = FullJitterBackoff(base=1.0, cap=30.0, rng=Mock(random=Mock(return_value=0.0)))
    assert backoff.calculate(2) == 4.0


def test_full_jitter_backoff_never_zero() -> None:
    backoff = FullJitterBackoff(
        base=1.0, cap=30.0, rng=Mock(random=Mock(return_value=0.9999999999))
    )
    assert backoff.calculate(0) > 0.0


def test_full_jitter_backoff_invalid() -> None:
    with pytest.raises(ValueError, match=r"cap must be >= base"):
        FullJitterBackoff(base=5.0, cap=1.0)

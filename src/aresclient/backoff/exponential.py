r"""Capped exponential backoff strategy."""

from __future__ import annotations

__all__ = ["ExponentialBackoff"]

from aresclient.backoff.base import BaseBackoffStrategy


class ExponentialBackoff(BaseBackoffStrategy):
    """Capped exponential backoff strategy.

    Calculates delay as: ``min(cap, base * 2 ** retry)``.

    This deterministic strategy is the ceiling used by full jitter backoff.
    Used alone it makes concurrent clients retry in lockstep.

    Args:
        base: The base delay in seconds (default: 1.0).
        cap: The maximum delay in seconds (default: 30.0).

    Example:
        ```pycon
        >>> from aresclient.backoff import ExponentialBackoff
        >>> backoff = ExponentialBackoff(base=1.0, cap=30.0)
        >>> backoff.calculate(0)
        1.0
        >>> backoff.calculate(2)
        4.0
        >>> backoff.calculate(10)  # Would be 1024.0, but capped
        30.0

        ```
    """

    def __init__(self, base: float = 1.0, cap: float = 30.0) -> None:
        if base <= 0:
            msg = f"base must be > 0, got {base}"
            raise ValueError(msg)
        if cap < base:
            msg = f"cap must be >= base, got {cap} < {base}"
            raise ValueError(msg)

        self.base = base
        self.cap = cap

    def __repr__(self) -> str:
        return f"{type(self).__name__}(base={self.base}, cap={self.cap})"

    def calculate(self, retry: int) -> float:
        """Calculate the capped exponential delay.

        Args:
            retry: The retry number (0-indexed).

        Returns:
            ``min(cap, base * 2 ** retry)``.
        """
        if retry < 0:
            msg = f"retry must be >= 0, got {retry}"
            raise ValueError(msg)
        # Avoid float overflow for very large retry numbers
        if retry >= 64:
            return self.cap
        return min(self.cap, self.base * (2**retry))

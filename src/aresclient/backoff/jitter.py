r"""Full jitter backoff strategy."""

from __future__ import annotations

__all__ = ["FullJitterBackoff"]

import random

from aresclient.backoff.exponential import ExponentialBackoff


class FullJitterBackoff(ExponentialBackoff):
    """Exponential backoff with full jitter.

    The delay is drawn uniformly from ``(0, min(cap, base * 2 ** retry)]``
    instead of using the ceiling directly, so that clients failing at the
    same time do not retry at the same time. The lower bound is excluded
    so a retry never fires immediately.

    Args:
        base: The base delay in seconds (default: 1.0).
        cap: The maximum delay in seconds (default: 30.0).
        rng: Optional random number generator, for reproducible delays.

    Example:
        ```pycon
        >>> import random
        >>> from aresclient.backoff import FullJitterBackoff
        >>> backoff = FullJitterBackoff(base=1.0, cap=30.0, rng=random.Random(42))
        >>> 0.0 < backoff.calculate(2) <= 4.0
        True

        ```
    """

    def __init__(
        self, base: float = 1.0, cap: float = 30.0, rng: random.Random | None = None
    ) -> None:
        super().__init__(base=base, cap=cap)
        self._rng = rng if rng is not None else random.Random()  # noqa: S311

    def calculate(self, retry: int) -> float:
        """Draw a jittered delay.

        Args:
            retry: The retry number (0-indexed).

        Returns:
            A delay in ``(0, min(cap, base * 2 ** retry)]``.
        """
        ceiling = super().calculate(retry)
        # random() is in [0, 1), so 1 - random() is in (0, 1]
        return ceiling * (1.0 - self._rng.random())

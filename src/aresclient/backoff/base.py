r"""Abstract base class for backoff strategies."""

from __future__ import annotations

__all__ = ["BaseBackoffStrategy"]

from abc import ABC, abstractmethod


class BaseBackoffStrategy(ABC):
    """Abstract base class for backoff strategies.

    A backoff strategy determines how long to wait before retrying a
    failed attempt based on the retry number.
    """

    @abstractmethod
    def calculate(self, retry: int) -> float:
        """Calculate the backoff delay before a retry.

        Args:
            retry: The retry number (0-indexed). ``retry=0`` is the delay
                between the first and the second attempt.

        Returns:
            The delay in seconds before the next attempt.
        """

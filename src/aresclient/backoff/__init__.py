r"""Backoff strategies for retry delays.

This package provides the capped exponential backoff and its full
jitter variant, the default strategy of the retry policy.
"""

from __future__ import annotations

__all__ = ["BaseBackoffStrategy", "ExponentialBackoff", "FullJitterBackoff"]

from aresclient.backoff.base import BaseBackoffStrategy
from aresclient.backoff.exponential import ExponentialBackoff
from aresclient.backoff.jitter import FullJitterBackoff

r"""Retry policy and per-request retry state."""

from __future__ import annotations

__all__ = ["RetryDecision", "RetryPolicy", "RetryState", "StopReason"]

from aresclient.retry.policy import RetryDecision, RetryPolicy, RetryState, StopReason

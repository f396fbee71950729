r"""Utility functions for Retry-After parsing and structured logging."""

from __future__ import annotations

__all__ = [
    "StructuredFormatter",
    "log_structured",
    "parse_retry_after",
    "retry_after_from_response",
]

from aresclient.utils.retry_after import parse_retry_after, retry_after_from_response
from aresclient.utils.structured_logging import StructuredFormatter, log_structured

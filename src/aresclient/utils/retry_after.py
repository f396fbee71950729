r"""Retry-After header parsing utilities.

This module converts the ``Retry-After`` header of an HTTP response
(RFC 9110, section 10.2.3) into a delay in seconds.
"""

from __future__ import annotations

__all__ = ["parse_retry_after", "retry_after_from_response"]

import logging
import math
from contextlib import suppress
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import httpx

logger: logging.Logger = logging.getLogger(__name__)


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """Parse a ``Retry-After`` header value into a delay in seconds.

    The header is either a non-negative number of seconds (e.g. ``"120"``) or
    an HTTP-date (e.g. ``"Wed, 21 Oct 2015 07:28:00 GMT"``). HTTP-dates are
    converted to an absolute delay from ``now``; dates in the past give 0.

    Args:
        value: The header value, or None if the header is absent.
        now: The reference time for HTTP-dates. Defaults to the current UTC
            time.

    Returns:
        The delay in seconds, or None if the header is absent or malformed.

    Example:
        ```pycon
        >>> from aresclient.utils.retry_after import parse_retry_after
        >>> parse_retry_after("120")
        120.0
        >>> parse_retry_after("-3") is None
        True
        >>> parse_retry_after(None) is None
        True
        >>> parse_retry_after("soon") is None
        True

        ```
    """
    if value is None:
        return None
    value = value.strip()

    with suppress(ValueError):
        seconds = float(value)
        if not math.isfinite(seconds) or seconds < 0:
            logger.debug(f"Ignoring invalid Retry-After header: {value!r}")
            return None
        return seconds

    try:
        retry_date = parsedate_to_datetime(value)
    except (ValueError, TypeError, OverflowError):
        logger.debug(f"Failed to parse Retry-After header: {value!r}")
        return None
    if retry_date.tzinfo is None:
        retry_date = retry_date.replace(tzinfo=timezone.utc)
    now = now if now is not None else datetime.now(timezone.utc)
    return max(0.0, (retry_date - now).total_seconds())


def retry_after_from_response(response: httpx.Response) -> float | None:
    """Return the delay requested by the ``Retry-After`` header of a
    response, or None."""
    return parse_retry_after(response.headers.get("Retry-After"))

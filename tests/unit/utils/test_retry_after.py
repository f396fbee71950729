r"""Unit tests for Retry-After header parsing utilities."""

from __future__ import annotations

from datetime import datetime, timezone

import httpx
import pytest

from aresclient.utils.retry_after import parse_retry_after, retry_after_from_response

NOW = datetime(year=2015, month=10, day=21, hour=7, minute=28, second=0, tzinfo=timezone.utc)

#######################################
#     Tests for parse_retry_after     #
#######################################


@pytest.mark.parametrize(
    ("header", "seconds"),
    [("1", 1.0), ("0", 0.0), ("120", 120.0), ("3600", 3600.0), ("1.5", 1.5), (" 7 ", 7.0)],
)
def test_parse_retry_after_seconds(header: str, seconds: float) -> None:
    assert parse_retry_after(header) == seconds


@pytest.mark.parametrize(
    "header", [None, "invalid", "not a number", "1.2.3", "-1", "-0.5", "nan", "inf", ""]
)
def test_parse_retry_after_none(header: str | None) -> None:
    """Test that absent, malformed and negative values are ignored."""
    assert parse_retry_after(header) is None


def test_parse_retry_after_http_date() -> None:
    assert parse_retry_after("Wed, 21 Oct 2015 07:30:00 GMT", now=NOW) == 120.0


def test_parse_retry_after_http_date_in_past() -> None:
    assert parse_retry_after("Wed, 21 Oct 2015 07:00:00 GMT", now=NOW) == 0.0


def test_parse_retry_after_http_date_default_now() -> None:
    """Test that a date far in the past gives no delay against the
    current time."""
    assert parse_retry_after("Wed, 21 Oct 2015 07:28:00 GMT") == 0.0


###############################################
#     Tests for retry_after_from_response     #
###############################################


def test_retry_after_from_response() -> None:
    response = httpx.Response(429, headers={"Retry-After": "30"})
    assert retry_after_from_response(response) == 30.0


def test_retry_after_from_response_case_insensitive() -> None:
    response = httpx.Response(503, headers={"retry-after": "5"})
    assert retry_after_from_response(response) == 5.0


def test_retry_after_from_response_missing() -> None:
    assert retry_after_from_response(httpx.Response(503)) is None

from __future__ import annotations

import httpx
import pytest

from aresclient.exceptions import PoolExhaustedError
from aresclient.outcome import (
    AttemptOutcome,
    OutcomeKind,
    TimeoutPhase,
    classify_response,
    classify_transport_error,
)
from aresclient.route import Route

RETRY_STATUS_CODES = (408, 429, 500, 502, 503, 504)


####################################
#     Tests for AttemptOutcome     #
####################################


def test_attempt_outcome_success() -> None:
    response = httpx.Response(200)
    outcome = AttemptOutcome.success(response)
    assert outcome.kind == OutcomeKind.SUCCESS
    assert outcome.is_success
    assert not outcome.is_failure
    assert outcome.status_code == 200
    assert outcome.response is response


def test_attempt_outcome_timeout() -> None:
    outcome = AttemptOutcome.timeout(TimeoutPhase.CONNECT)
    assert outcome.kind == OutcomeKind.TIMEOUT
    assert outcome.phase == TimeoutPhase.CONNECT
    assert outcome.reason == "connect timeout"
    assert outcome.is_failure


def test_attempt_outcome_cancelled() -> None:
    outcome = AttemptOutcome.cancelled()
    assert outcome.kind == OutcomeKind.CANCELLED
    assert not outcome.is_success
    assert not outcome.is_failure


def test_attempt_outcome_pool_exhausted() -> None:
    error = PoolExhaustedError(Route("https", "api.example.com", 443), waited=0.5)
    outcome = AttemptOutcome.pool_exhausted(error)
    assert outcome.kind == OutcomeKind.RETRYABLE_FAILURE
    assert outcome.is_pool_exhausted
    assert outcome.error is error


def test_attempt_outcome_is_pool_exhausted_false() -> None:
    assert not AttemptOutcome.retryable_failure("status 503", status_code=503).is_pool_exhausted


@pytest.mark.parametrize(
    ("outcome", "expected"),
    [
        (AttemptOutcome.success(), True),
        (AttemptOutcome.success(httpx.Response(204)), True),
        (
            AttemptOutcome.retryable_failure(
                "status 503", status_code=503, response=httpx.Response(503)
            ),
            True,
        ),
        (
            AttemptOutcome.non_retryable_failure(
                "status 404", status_code=404, response=httpx.Response(404)
            ),
            True,
        ),
        (AttemptOutcome.retryable_failure("ConnectError: refused"), False),
        (AttemptOutcome.timeout(TimeoutPhase.READ), False),
        (AttemptOutcome.cancelled(), False),
    ],
)
def test_attempt_outcome_completed_exchange(outcome: AttemptOutcome, expected: bool) -> None:
    assert outcome.completed_exchange == expected


@pytest.mark.parametrize(
    ("outcome", "expected"),
    [
        (AttemptOutcome.success(httpx.Response(200)), "success (status 200)"),
        (AttemptOutcome.timeout(TimeoutPhase.READ), "timeout (read timeout)"),
        (AttemptOutcome(kind=OutcomeKind.CANCELLED), "cancelled"),
    ],
)
def test_attempt_outcome_describe(outcome: AttemptOutcome, expected: str) -> None:
    assert outcome.describe() == expected


#######################################
#     Tests for classify_response     #
#######################################


@pytest.mark.parametrize("status_code", [200, 201, 204, 301, 304])
def test_classify_response_success(status_code: int) -> None:
    outcome = classify_response(httpx.Response(status_code), RETRY_STATUS_CODES)
    assert outcome.kind == OutcomeKind.SUCCESS
    assert outcome.status_code == status_code


@pytest.mark.parametrize("status_code", RETRY_STATUS_CODES)
def test_classify_response_retryable(status_code: int) -> None:
    outcome = classify_response(httpx.Response(status_code), RETRY_STATUS_CODES)
    assert outcome.kind == OutcomeKind.RETRYABLE_FAILURE
    assert outcome.reason == f"status {status_code}"
    assert outcome.retry_after is None


@pytest.mark.parametrize("status_code", [400, 401, 403, 404, 409, 422, 501])
def test_classify_response_non_retryable(status_code: int) -> None:
    outcome = classify_response(httpx.Response(status_code), RETRY_STATUS_CODES)
    assert outcome.kind == OutcomeKind.NON_RETRYABLE_FAILURE
    assert outcome.status_code == status_code


def test_classify_response_custom_status_codes() -> None:
    outcome = classify_response(httpx.Response(404), (404,))
    assert outcome.kind == OutcomeKind.RETRYABLE_FAILURE


def test_classify_response_retry_after() -> None:
    response = httpx.Response(429, headers={"Retry-After": "12"})
    assert classify_response(response, RETRY_STATUS_CODES).retry_after == 12.0


##############################################
#     Tests for classify_transport_error     #
##############################################


@pytest.mark.parametrize(
    "exc",
    [
        httpx.ConnectError("Connection refused"),
        httpx.ReadError("Connection reset"),
        httpx.WriteError("Broken pipe"),
        httpx.RemoteProtocolError("Server disconnected"),
        httpx.ProxyError("Proxy failed"),
    ],
)
def test_classify_transport_error_retryable(exc: httpx.TransportError) -> None:
    outcome = classify_transport_error(exc)
    assert outcome.kind == OutcomeKind.RETRYABLE_FAILURE
    assert outcome.error is exc
    assert outcome.reason == f"{type(exc).__name__}: {exc}"


@pytest.mark.parametrize(
    "exc",
    [httpx.UnsupportedProtocol("Unsupported"), httpx.LocalProtocolError("Invalid header")],
)
def test_classify_transport_error_non_retryable(exc: httpx.TransportError) -> None:
    assert classify_transport_error(exc).kind == OutcomeKind.NON_RETRYABLE_FAILURE

from __future__ import annotations

import asyncio

import httpx
import pytest

from parley._http import classify_status, error_for_status
from parley.errors import (
    APIError,
    ConfigurationError,
    ErrorKind,
    ParleyError,
    RateLimitError,
    RequestAborted,
)
from parley.providers._errors import (
    classify_error,
    extract_retry_after_s,
    extract_status_code,
)

pytestmark = pytest.mark.unit


class _StatusError(Exception):
    """SDK-style error carrying a status code and optional body/headers."""

    def __init__(self, message: str, status_code: int, **attrs: object) -> None:
        super().__init__(message)
        self.status_code = status_code
        for name, value in attrs.items():
            setattr(self, name, value)


# =============================================================================
# Hierarchy
# =============================================================================


def test_api_error_structured_metadata() -> None:
    err = APIError(
        "boom",
        kind=ErrorKind.QUOTA_EXCEEDED,
        hint="do this",
        retryable=False,
        status_code=402,
        retry_after_s=2.0,
        provider="openai",
    )

    assert str(err) == "boom"
    assert err.message == "boom"
    assert err.kind is ErrorKind.QUOTA_EXCEEDED
    assert err.hint == "do this"
    assert err.status_code == 402
    assert err.retry_after_s == 2.0
    assert err.provider == "openai"
    assert err.to_dict() == {
        "message": "boom",
        "kind": "QUOTA_EXCEEDED",
        "retryable": False,
        "status_code": 402,
    }


def test_api_error_defaults() -> None:
    err = APIError("fail")
    assert err.kind is ErrorKind.UNKNOWN
    assert err.retryable is False
    assert err.hint is None
    assert err.status_code is None
    assert err.to_dict() == {"message": "fail", "kind": "UNKNOWN", "retryable": False}


def test_subclass_hierarchy() -> None:
    """RateLimitError and RequestAborted are catchable as APIError and ParleyError."""
    rate = RateLimitError("slow down")
    aborted = RequestAborted()

    assert isinstance(rate, APIError)
    assert isinstance(aborted, ParleyError)
    assert isinstance(ConfigurationError("bad"), ParleyError)
    assert rate.kind is ErrorKind.RATE_LIMIT
    assert rate.retryable is True
    assert rate.status_code == 429
    assert aborted.kind is ErrorKind.ABORTED
    assert aborted.retryable is False


def test_error_kind_is_closed_set_of_ten() -> None:
    assert {k.value for k in ErrorKind} == {
        "NETWORK_ERROR",
        "TIMEOUT",
        "INVALID_API_KEY",
        "RATE_LIMIT",
        "QUOTA_EXCEEDED",
        "MODEL_NOT_FOUND",
        "CONTEXT_LENGTH_EXCEEDED",
        "INVALID_REQUEST",
        "ABORTED",
        "UNKNOWN",
    }


# =============================================================================
# Status Table
# =============================================================================


@pytest.mark.parametrize(
    ("status", "message", "kind", "retryable"),
    [
        (401, "", ErrorKind.INVALID_API_KEY, False),
        (403, "", ErrorKind.INVALID_API_KEY, False),
        (402, "", ErrorKind.QUOTA_EXCEEDED, False),
        (404, "", ErrorKind.MODEL_NOT_FOUND, False),
        (429, "", ErrorKind.RATE_LIMIT, True),
        (400, "This model's maximum Context length is 8192", ErrorKind.CONTEXT_LENGTH_EXCEEDED, False),  # noqa: E501
        (400, "too many TOKENS", ErrorKind.CONTEXT_LENGTH_EXCEEDED, False),
        (400, "missing field 'messages'", ErrorKind.INVALID_REQUEST, False),
        (500, "", ErrorKind.UNKNOWN, True),
        (502, "", ErrorKind.UNKNOWN, True),
        (503, "", ErrorKind.UNKNOWN, True),
        (418, "", ErrorKind.UNKNOWN, False),
    ],
)
def test_classify_status(
    status: int, message: str, kind: ErrorKind, retryable: bool
) -> None:
    assert classify_status(status, message) == (kind, retryable)


def test_error_for_status_uses_body_for_400_subclassification() -> None:
    err = error_for_status(
        400,
        "HTTP 400: request failed",
        provider="custom",
        body="prompt exceeds context window",
    )
    assert err.kind is ErrorKind.CONTEXT_LENGTH_EXCEEDED
    assert err.message == "HTTP 400: request failed"


def test_error_for_status_429_is_rate_limit_error() -> None:
    err = error_for_status(429, "HTTP 429: busy", retry_after_s=3.0)
    assert isinstance(err, RateLimitError)
    assert err.retry_after_s == 3.0


# =============================================================================
# Classifier
# =============================================================================


def test_classify_api_error_is_returned_unchanged() -> None:
    original = APIError("already normalized", kind=ErrorKind.MODEL_NOT_FOUND)
    assert classify_error(original) is original


def test_classify_429_is_retryable_rate_limit() -> None:
    err = classify_error(_StatusError("Too Many Requests", 429), provider="openai")
    assert err.kind is ErrorKind.RATE_LIMIT
    assert err.retryable is True
    assert err.provider == "openai"
    assert err.status_code == 429


def test_classify_401_names_the_env_var() -> None:
    err = classify_error(_StatusError("invalid x-api-key", 401), provider="anthropic")
    assert err.kind is ErrorKind.INVALID_API_KEY
    assert err.retryable is False
    assert err.hint is not None
    assert "ANTHROPIC_API_KEY" in err.hint


def test_classify_400_context_overflow_uses_sdk_body_message() -> None:
    exc = _StatusError(
        "Error code: 400",
        400,
        body={"error": {"message": "maximum context length exceeded"}},
    )
    err = classify_error(exc, provider="openai")
    assert err.kind is ErrorKind.CONTEXT_LENGTH_EXCEEDED


def test_classify_connect_error_is_network_error() -> None:
    err = classify_error(httpx.ConnectError("connection refused"))
    assert err.kind is ErrorKind.NETWORK_ERROR
    assert err.retryable is True


def test_classify_connection_marker_in_message() -> None:
    err = classify_error(OSError("connect ECONNREFUSED 127.0.0.1:11434"))
    assert err.kind is ErrorKind.NETWORK_ERROR


def test_classify_timeout() -> None:
    err = classify_error(httpx.ReadTimeout("read timed out"))
    assert err.kind is ErrorKind.TIMEOUT
    assert err.retryable is True


def test_classify_builtin_timeout_error() -> None:
    err = classify_error(TimeoutError())
    assert err.kind is ErrorKind.TIMEOUT


def test_classify_wrapped_transport_error_by_root_cause() -> None:
    """SDK errors wrapping httpx errors classify by the wrapped cause."""
    try:
        try:
            raise httpx.ConnectError("dns failure")
        except httpx.ConnectError as inner:
            raise RuntimeError("Connection error.") from inner
    except RuntimeError as outer:
        err = classify_error(outer)
    assert err.kind is ErrorKind.NETWORK_ERROR


def test_classify_cancellation_is_aborted() -> None:
    err = classify_error(asyncio.CancelledError())
    assert isinstance(err, RequestAborted)
    assert err.kind is ErrorKind.ABORTED
    assert err.retryable is False


def test_classify_unrecognised_exception_is_unknown() -> None:
    err = classify_error(ValueError("weird"))
    assert err.kind is ErrorKind.UNKNOWN
    assert err.retryable is False
    assert err.message == "weird"


def test_classify_server_error_is_retryable_unknown() -> None:
    err = classify_error(_StatusError("overloaded", 503))
    assert err.kind is ErrorKind.UNKNOWN
    assert err.retryable is True


# =============================================================================
# Extraction Helpers
# =============================================================================


def test_extract_status_code_from_response_attribute() -> None:
    request = httpx.Request("POST", "https://example.test")
    response = httpx.Response(404, request=request)
    exc = httpx.HTTPStatusError("not found", request=request, response=response)
    assert extract_status_code(exc) == 404


def test_extract_status_code_ignores_non_http_codes() -> None:
    exc = _StatusError("odd", 0)
    assert extract_status_code(exc) is None


def test_extract_retry_after_from_header() -> None:
    request = httpx.Request("POST", "https://example.test")
    response = httpx.Response(429, headers={"Retry-After": "7"}, request=request)
    exc = httpx.HTTPStatusError("busy", request=request, response=response)
    assert extract_retry_after_s(exc) == 7.0


def test_extract_retry_after_from_google_retry_info() -> None:
    exc = _StatusError(
        "quota",
        429,
        details={
            "error": {
                "details": [
                    {
                        "@type": "type.googleapis.com/google.rpc.RetryInfo",
                        "retryDelay": "8s",
                    }
                ]
            }
        },
    )
    assert extract_retry_after_s(exc) == 8.0

"""Error classification: transport, HTTP, and SDK failures to ``APIError``.

Classification is deterministic and ordered: connection failures, then
timeouts, then cancellation, then HTTP status. The ``retryable`` flag is
advisory output for the caller.
"""

from __future__ import annotations

import asyncio
import re
from typing import Any

import httpx

from parley._http import AUTH_STATUS_CODES, error_for_status
from parley.config import api_key_env_vars
from parley.errors import APIError, ErrorKind, RequestAborted, _walk_exception_chain

# errno-style markers some transports put in messages instead of types.
_NETWORK_MARKERS = ("ECONNREFUSED", "ENOTFOUND", "ECONNRESET", "EAI_AGAIN")
_TIMEOUT_MARKERS = ("ETIMEDOUT",)


def extract_status_code(exc: BaseException) -> int | None:
    """Walk the exception chain to find an HTTP status code."""
    for e in _walk_exception_chain(exc):
        for attr in ("status_code", "status", "code"):
            value = getattr(e, attr, None)
            if isinstance(value, bool) or not isinstance(value, int):
                continue
            if 100 <= value <= 599:
                return value
        response = getattr(e, "response", None)
        value = getattr(response, "status_code", None)
        if isinstance(value, int) and 100 <= value <= 599:
            return value
    return None


_PROTO_DURATION_RE = re.compile(r"^(\d+(?:\.\d+)?)s$")


def _extract_retry_info_seconds(exc: BaseException) -> float | None:
    """Extract retry delay from Google API-style RetryInfo in error details.

    Gemini SDK ``ClientError`` exposes the parsed JSON body via ``.details``::

        {"error": {"details": [{"@type": "...RetryInfo", "retryDelay": "8s"}]}}
    """
    details: Any = getattr(exc, "details", None)
    if not isinstance(details, dict):
        return None
    error: Any = details.get("error")
    if not isinstance(error, dict):
        return None
    detail_list: Any = error.get("details")
    if not isinstance(detail_list, list):
        return None
    for entry in detail_list:
        if not isinstance(entry, dict):
            continue
        at_type = entry.get("@type", "")
        if not isinstance(at_type, str) or "RetryInfo" not in at_type:
            continue
        delay_raw = entry.get("retryDelay")
        if not isinstance(delay_raw, str):
            continue
        m = _PROTO_DURATION_RE.match(delay_raw)
        if m:
            return float(m.group(1))
    return None


def extract_retry_after_s(exc: BaseException) -> float | None:
    """Walk the exception chain to find a retry-after delay in seconds."""
    for e in _walk_exception_chain(exc):
        value = getattr(e, "retry_after", None)
        if isinstance(value, (int, float)) and value >= 0:
            return float(value)

        response = getattr(e, "response", None)
        headers: Any = getattr(response, "headers", None)
        if headers is not None and hasattr(headers, "get"):
            raw: Any = headers.get("Retry-After")
            if isinstance(raw, str) and raw.strip():
                try:
                    seconds = float(raw)
                except ValueError:
                    seconds = -1.0
                if seconds >= 0:
                    return seconds

        retry_info = _extract_retry_info_seconds(e)
        if retry_info is not None:
            return retry_info
    return None


def _is_timeout(e: BaseException) -> bool:
    if isinstance(e, (httpx.TimeoutException, TimeoutError, asyncio.TimeoutError)):
        return True
    name = type(e).__name__
    if name in ("APITimeoutError", "TimeoutError", "ReadTimeout", "ConnectTimeout"):
        return True
    message = str(e)
    return any(marker in message for marker in _TIMEOUT_MARKERS)


def _is_connection_failure(e: BaseException) -> bool:
    if isinstance(e, (httpx.NetworkError, ConnectionError)):
        return True
    if type(e).__name__ == "APIConnectionError":
        return True
    message = str(e)
    return any(marker in message for marker in _NETWORK_MARKERS)


def _is_cancellation(e: BaseException) -> bool:
    return isinstance(e, (asyncio.CancelledError, RequestAborted)) or (
        type(e).__name__ == "AbortError"
    )


def _auth_hint(provider: str | None, status_code: int | None) -> str | None:
    """Name the env var to check for credential failures."""
    if status_code not in AUTH_STATUS_CODES:
        return None
    env_var = api_key_env_vars(provider)[0] if provider else "the API key"
    return (
        f"Check credentials/permissions (try setting {env_var} or LLMConfig.api_key)."
    )


def _message_of(exc: BaseException) -> str:
    body: Any = getattr(exc, "body", None)
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and isinstance(error.get("message"), str):
            return error["message"]
    return str(exc) or type(exc).__name__


def classify_error(exc: BaseException, *, provider: str | None = None) -> APIError:
    """Map any failure to the normalized ``APIError``.

    An ``APIError`` is returned unchanged. Exception chains are walked so SDK
    errors wrapping transport errors classify by their root cause.
    """
    if isinstance(exc, APIError):
        return exc

    chain = list(_walk_exception_chain(exc))
    message = _message_of(exc)

    if any(_is_connection_failure(e) and not _is_timeout(e) for e in chain):
        return APIError(
            f"Network error: {message}",
            kind=ErrorKind.NETWORK_ERROR,
            retryable=True,
            provider=provider,
            hint="Check network connectivity and the provider base URL.",
        )
    if any(_is_timeout(e) for e in chain):
        return APIError(
            f"Request timed out: {message}",
            kind=ErrorKind.TIMEOUT,
            retryable=True,
            provider=provider,
        )
    if any(_is_cancellation(e) for e in chain):
        return RequestAborted(provider=provider)

    status_code = extract_status_code(exc)
    if status_code is not None:
        prefix = f"{provider} request failed" if provider else "Request failed"
        return error_for_status(
            status_code,
            f"{prefix} (status={status_code}): {message}",
            provider=provider,
            retry_after_s=extract_retry_after_s(exc),
            hint=_auth_hint(provider, status_code),
            body=message,
        )

    return APIError(message, kind=ErrorKind.UNKNOWN, retryable=False, provider=provider)

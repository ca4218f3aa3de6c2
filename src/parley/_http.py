"""Small HTTP-related helpers shared across Parley.

This module is intentionally tiny: the classifier, the HTTP driver, and the
stream parsers all agree on one status table without importing each other.
"""

from __future__ import annotations

from parley.errors import APIError, ErrorKind, RateLimitError

# Statuses reported as transient server failures.
SERVER_ERROR_STATUS_CODES: frozenset[int] = frozenset({500, 502, 503})

# Statuses that identify a credential problem.
AUTH_STATUS_CODES: frozenset[int] = frozenset({401, 403})

# Substrings of a 400 body that indicate the prompt overflowed the model window.
CONTEXT_OVERFLOW_MARKERS: tuple[str, ...] = ("context", "token")


def is_success(status_code: int) -> bool:
    """Return whether *status_code* is a 2xx response."""
    return 200 <= status_code < 300


def classify_status(status_code: int, message: str = "") -> tuple[ErrorKind, bool]:
    """Map an HTTP status (and body text for 400s) to ``(kind, retryable)``."""
    if status_code in AUTH_STATUS_CODES:
        return ErrorKind.INVALID_API_KEY, False
    if status_code == 402:
        return ErrorKind.QUOTA_EXCEEDED, False
    if status_code == 404:
        return ErrorKind.MODEL_NOT_FOUND, False
    if status_code == 429:
        return ErrorKind.RATE_LIMIT, True
    if status_code == 400:
        lowered = message.lower()
        if any(marker in lowered for marker in CONTEXT_OVERFLOW_MARKERS):
            return ErrorKind.CONTEXT_LENGTH_EXCEEDED, False
        return ErrorKind.INVALID_REQUEST, False
    if status_code in SERVER_ERROR_STATUS_CODES:
        return ErrorKind.UNKNOWN, True
    return ErrorKind.UNKNOWN, False


def error_for_status(
    status_code: int,
    message: str,
    *,
    provider: str | None = None,
    retry_after_s: float | None = None,
    hint: str | None = None,
    body: str | None = None,
) -> APIError:
    """Build the normalized error for an HTTP failure.

    *body* (the provider's own error text) drives 400 sub-classification when
    given; otherwise *message* does.
    """
    kind, retryable = classify_status(status_code, message if body is None else body)
    if kind is ErrorKind.RATE_LIMIT:
        return RateLimitError(
            message,
            hint=hint,
            status_code=status_code,
            retry_after_s=retry_after_s,
            provider=provider,
        )
    return APIError(
        message,
        kind=kind,
        hint=hint,
        retryable=retryable,
        status_code=status_code,
        retry_after_s=retry_after_s,
        provider=provider,
    )

"""Exception hierarchy and error taxonomy for Parley."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator


class ErrorKind(str, Enum):
    """Closed set of normalized failure kinds."""

    NETWORK_ERROR = "NETWORK_ERROR"
    TIMEOUT = "TIMEOUT"
    INVALID_API_KEY = "INVALID_API_KEY"
    RATE_LIMIT = "RATE_LIMIT"
    QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
    MODEL_NOT_FOUND = "MODEL_NOT_FOUND"
    CONTEXT_LENGTH_EXCEEDED = "CONTEXT_LENGTH_EXCEEDED"
    INVALID_REQUEST = "INVALID_REQUEST"
    ABORTED = "ABORTED"
    UNKNOWN = "UNKNOWN"


class ParleyError(Exception):
    """Base exception for all Parley errors."""

    def __init__(self, message: str, *, hint: str | None = None) -> None:
        super().__init__(message)
        self.hint = hint


class ConfigurationError(ParleyError):
    """Configuration, message, or request validation failed."""


class APIError(ParleyError):
    """A request-level failure, normalized across providers.

    This is the single error shape delivered to ``on_error``. ``retryable`` is
    advisory: Parley never retries on its own.
    """

    def __init__(
        self,
        message: str,
        *,
        kind: ErrorKind = ErrorKind.UNKNOWN,
        hint: str | None = None,
        retryable: bool = False,
        status_code: int | None = None,
        retry_after_s: float | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(message, hint=hint)
        self.kind = kind
        self.retryable = retryable
        self.status_code = status_code
        self.retry_after_s = retry_after_s
        self.provider = provider

    @property
    def message(self) -> str:
        """The human-readable message."""
        return str(self)

    def to_dict(self) -> dict[str, object]:
        """Return the ``{message, kind, retryable}`` payload for UI layers."""
        payload: dict[str, object] = {
            "message": self.message,
            "kind": self.kind.value,
            "retryable": self.retryable,
        }
        if self.status_code is not None:
            payload["status_code"] = self.status_code
        return payload


class RateLimitError(APIError):
    """Rate limit exceeded (HTTP 429)."""

    def __init__(
        self,
        message: str,
        *,
        hint: str | None = None,
        status_code: int | None = 429,
        retry_after_s: float | None = None,
        provider: str | None = None,
    ) -> None:
        super().__init__(
            message,
            kind=ErrorKind.RATE_LIMIT,
            hint=hint,
            retryable=True,
            status_code=status_code,
            retry_after_s=retry_after_s,
            provider=provider,
        )


class RequestAborted(APIError):
    """The request was cancelled by the caller."""

    def __init__(
        self, message: str = "Request aborted", *, provider: str | None = None
    ) -> None:
        super().__init__(
            message, kind=ErrorKind.ABORTED, retryable=False, provider=provider
        )


def _walk_exception_chain(exc: BaseException) -> Iterator[BaseException]:
    """Yield *exc* and its ``__cause__``/``__context__`` chain (cycle-safe)."""
    seen: set[int] = set()
    stack: list[BaseException] = [exc]
    while stack:
        cur = stack.pop()
        if id(cur) in seen:
            continue
        seen.add(id(cur))
        yield cur

        cause = cur.__cause__
        if isinstance(cause, BaseException):
            stack.append(cause)
        context = cur.__context__
        if isinstance(context, BaseException):
            stack.append(context)

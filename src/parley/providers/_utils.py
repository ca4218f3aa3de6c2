"""Shared utilities for driver implementations."""

from __future__ import annotations

from copy import deepcopy
from typing import TYPE_CHECKING, Any

from parley.adapters.paths import rebase_path

if TYPE_CHECKING:
    from parley.adapters.config import ResponseFieldPaths

# Body keys the drivers always own; templates cannot override them.
RESERVED_BODY_KEYS: frozenset[str] = frozenset(
    {
        "model",
        "messages",
        "tools",
        "max_tokens",
        "temperature",
        "top_p",
        "stream",
        "system",
    }
)


def _is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and "{{" in value


def template_extras(
    template: dict[str, Any], reserved: frozenset[str] = RESERVED_BODY_KEYS
) -> dict[str, Any]:
    """Return template entries to merge into a request body.

    Reserved keys and unrendered ``{{placeholder}}`` values are skipped.
    """
    extras: dict[str, Any] = {}
    for key, value in template.items():
        if key in reserved or _is_placeholder(value):
            continue
        extras[key] = deepcopy(value)
    return extras


def drop_none(values: dict[str, Any]) -> dict[str, Any]:
    """Return *values* without ``None`` entries."""
    return {k: v for k, v in values.items() if v is not None}


def to_plain(obj: Any) -> Any:
    """Convert an SDK pydantic object (or plain data) into JSON-like data."""
    dump = getattr(obj, "model_dump", None)
    if callable(dump):
        return dump(mode="json", exclude_none=True)
    return obj


async def close_stream(stream: Any) -> None:
    """Close an SDK stream or HTTP response, whichever close it offers."""
    for name in ("aclose", "close"):
        close = getattr(stream, name, None)
        if callable(close):
            result = close()
            if hasattr(result, "__await__"):
                await result
            return


def message_paths(paths: ResponseFieldPaths) -> ResponseFieldPaths:
    """Field paths for a non-streamed body, where ``delta.`` becomes ``message.``."""
    update: dict[str, Any] = {}
    for name in (
        "content_path",
        "reasoning_path",
        "tool_call_array_path",
    ):
        value = getattr(paths, name)
        if value:
            update[name] = rebase_path(value, "delta.", "message.")
    return paths.model_copy(update=update)

"""Three-tier repair for malformed streamed tool-call arguments.

Models occasionally emit arguments that are truncated, wrapped in chat-template
sentinels such as ``<|tool_call_end|>``, or that contain raw newlines inside
string literals. ``repair_json`` tries, in order:

1. clean: drop sentinel tokens and anything after the last balanced ``}``;
2. escape control characters found inside string literals;
3. close an unterminated string and append the missing ``]``/``}``.

Each tier builds on the previous one. Nothing here raises.
"""

from __future__ import annotations

import json
import re
from typing import Any

_SENTINEL_RE = re.compile(r"<\|[^|<>]*\|>")

_CONTROL_ESCAPES = {"\n": "\\n", "\r": "\\r", "\t": "\\t"}


def _loads_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except (json.JSONDecodeError, RecursionError):
        return None
    return value if isinstance(value, dict) else None


def clean_tool_arguments(text: str) -> str:
    """Strip sentinel tokens and trailing content past the last balanced brace."""
    cleaned = _SENTINEL_RE.sub("", text).strip()
    start = cleaned.find("{")
    if start > 0:
        cleaned = cleaned[start:]
    if cleaned.endswith("}"):
        return cleaned

    depth = 0
    in_string = False
    escaped = False
    last_close = -1
    for i, ch in enumerate(cleaned):
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch in "{[":
            depth += 1
        elif ch in "}]":
            depth -= 1
            if depth == 0 and ch == "}":
                last_close = i
    if last_close != -1:
        return cleaned[: last_close + 1]
    return cleaned


def escape_control_characters(text: str) -> str:
    """Escape raw control characters (code point < 32) inside string literals."""
    out: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            elif ord(ch) < 32:
                out.append(_CONTROL_ESCAPES.get(ch, f"\\u{ord(ch):04x}"))
                continue
        elif ch == '"':
            in_string = True
        out.append(ch)
    return "".join(out)


def balance_brackets(text: str) -> str:
    """Close an unterminated string and append missing closing brackets."""
    stack: list[str] = []
    in_string = False
    escaped = False
    for ch in text:
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            stack.append("}")
        elif ch == "[":
            stack.append("]")
        elif ch in "}]" and stack and stack[-1] == ch:
            stack.pop()

    fixed = text
    if in_string:
        if escaped:
            fixed = fixed[:-1]
        fixed += '"'
    if stack:
        fixed = fixed.rstrip()
        if fixed.endswith(","):
            fixed = fixed[:-1]
        fixed += "".join(reversed(stack))
    return fixed


def repair_json(text: str) -> dict[str, Any] | None:
    """Parse *text* as a JSON object, repairing it if needed.

    Returns ``None`` when no tier produces an object.
    """
    parsed = _loads_object(text)
    if parsed is not None:
        return parsed

    cleaned = clean_tool_arguments(text)
    parsed = _loads_object(cleaned)
    if parsed is not None:
        return parsed

    escaped = escape_control_characters(cleaned)
    parsed = _loads_object(escaped)
    if parsed is not None:
        return parsed

    return _loads_object(balance_brackets(escaped))

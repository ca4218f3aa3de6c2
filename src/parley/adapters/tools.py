"""Tool definition translation and tolerant argument parsing."""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from parley.adapters.config import ProtocolFamily
from parley.streaming.repair import repair_json

if TYPE_CHECKING:
    from collections.abc import Sequence

    from parley.adapters.config import AdapterConfig, ToolFormat
    from parley.types import ToolDefinition

logger = logging.getLogger(__name__)

# Keys Gemini's function-declaration schema accepts.
_GEMINI_SCHEMA_KEYS = frozenset(
    {
        "type",
        "description",
        "properties",
        "required",
        "items",
        "enum",
        "format",
        "nullable",
    }
)


def convert_tools(
    tools: Sequence[ToolDefinition] | None,
    protocol: ProtocolFamily,
    config: AdapterConfig,
) -> list[dict[str, Any]]:
    """Translate tool definitions into *protocol*'s wire shape.

    Gemini yields a single ``{"function_declarations": [...]}`` entry; every
    other family yields one entry per tool.
    """
    if not tools:
        return []
    if protocol is ProtocolFamily.ANTHROPIC:
        return [
            {
                "name": t.name,
                "description": t.description,
                "input_schema": _object_schema(t),
            }
            for t in tools
        ]
    if protocol is ProtocolFamily.GEMINI:
        return [
            {
                "function_declarations": [
                    {
                        "name": t.name,
                        "description": t.description,
                        "parameters": to_gemini_schema(_object_schema(t)),
                    }
                    for t in tools
                ]
            }
        ]
    return [_custom_tool(t, config.tool_format) for t in tools]


def _object_schema(tool: ToolDefinition) -> dict[str, Any]:
    """Return the tool's schema with ``type``/``properties``/``required`` present."""
    schema = dict(tool.parameters)
    schema["type"] = "object"
    schema.setdefault("properties", {})
    schema["required"] = tool.required
    return schema


def _custom_tool(tool: ToolDefinition, fmt: ToolFormat) -> dict[str, Any]:
    """Shape one tool per a configured ``ToolFormat``."""
    inner: dict[str, Any] = {
        "name": tool.name,
        "description": tool.description,
        fmt.parameter_field_name: _object_schema(tool),
    }
    if fmt.wrap_mode == "function":
        wrapped: dict[str, Any] = {fmt.wrap_field: inner}
        if fmt.include_type_tag:
            wrapped = {"type": "function", **wrapped}
        return wrapped
    if fmt.wrap_mode == "tool" and fmt.include_type_tag:
        return {"type": "tool", **inner}
    return inner


def to_gemini_schema(schema: Any) -> Any:
    """Convert a JSON-Schema subset to Gemini's upper-case typed schema."""
    if isinstance(schema, list):
        return [to_gemini_schema(s) for s in schema]
    if not isinstance(schema, dict):
        return schema
    out: dict[str, Any] = {}
    for key, value in schema.items():
        if key not in _GEMINI_SCHEMA_KEYS:
            continue
        if key == "type" and isinstance(value, str):
            out[key] = value.upper()
        elif key == "properties" and isinstance(value, dict):
            out[key] = {name: to_gemini_schema(sub) for name, sub in value.items()}
        elif key == "items":
            out[key] = to_gemini_schema(value)
        else:
            out[key] = value
    if out.get("type") == "OBJECT" and not out.get("required"):
        out.pop("required", None)
    return out


def parse_tool_arguments(text: str | dict[str, Any] | None) -> dict[str, Any]:
    """Parse a complete (non-streamed) tool argument payload.

    Accepts an object as-is. Strings are parsed directly, then from the first
    ``{`` to the last ``}``, then through JSON repair. Unparseable input
    yields ``{}``.
    """
    if isinstance(text, dict):
        return text
    if not text or not text.strip():
        return {}
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        try:
            parsed = json.loads(text[start : end + 1])
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed

    repaired = repair_json(text)
    if repaired is not None:
        return repaired
    logger.warning("Could not parse tool arguments; using empty object")
    return {}

"""Conversation translation into each protocol family's wire shape.

Everything here is a pure function of its inputs: no I/O, no shared state.
"""

from __future__ import annotations

import base64
import binascii
from dataclasses import dataclass, field, replace
import json
import logging
from typing import TYPE_CHECKING, Any

from parley.adapters.config import ProtocolFamily
from parley.types import ImagePart, Message, TextPart

if TYPE_CHECKING:
    from collections.abc import Sequence

    from parley.adapters.config import AdapterConfig, MessageFormat

logger = logging.getLogger(__name__)

SYSTEM_SEPARATOR = "\n\n"

# Gemini rejects histories that do not open with a user turn.
_GEMINI_HISTORY_PREFIX = "Continue the conversation."
_GEMINI_EMPTY_PROMPT = "Continue."

# Families without a system role.
_BLOCK_FAMILIES = frozenset({ProtocolFamily.ANTHROPIC, ProtocolFamily.GEMINI})


@dataclass(frozen=True)
class ConvertedMessages:
    """Wire messages plus any system text extracted for a top-level field."""

    messages: list[dict[str, Any]] = field(default_factory=list)
    system: str | None = None


def collect_system_text(
    messages: Sequence[Message], system_prompt: str | None
) -> str | None:
    """Join the caller's system prompt and every system message with blank lines."""
    chunks = [system_prompt] if system_prompt else []
    chunks.extend(m.text for m in messages if m.role == "system" and m.text)
    return SYSTEM_SEPARATOR.join(chunks) or None


def convert_messages(
    messages: Sequence[Message],
    system_prompt: str | None,
    protocol: ProtocolFamily,
    config: AdapterConfig,
) -> ConvertedMessages:
    """Translate a unified conversation for *protocol*.

    System text placement follows ``config.message_format.system_message_mode``.
    Block-style families have no system role, so ``inline`` degrades to
    ``parameter`` for them.
    """
    fmt = config.message_format
    system_text = collect_system_text(messages, system_prompt)
    conversation = [m for m in messages if m.role != "system"]

    mode = fmt.system_message_mode
    if mode == "inline" and protocol in _BLOCK_FAMILIES:
        mode = "parameter"
    if system_text and mode == "merge_into_first_user":
        conversation = _merge_into_first_user(conversation, system_text)
        system_text = None

    if protocol is ProtocolFamily.ANTHROPIC:
        wire = _to_anthropic(conversation)
    elif protocol is ProtocolFamily.GEMINI:
        wire = _to_gemini(conversation)
    else:
        wire = _to_openai_style(conversation, fmt)

    if system_text and mode == "inline":
        wire.insert(0, {"role": "system", "content": system_text})
        system_text = None
    return ConvertedMessages(messages=wire, system=system_text)


def _merge_into_first_user(
    conversation: list[Message], system_text: str
) -> list[Message]:
    """Prefix *system_text* onto the first user message, exactly once."""
    merged = list(conversation)
    for i, message in enumerate(merged):
        if message.role != "user":
            continue
        if isinstance(message.content, str):
            content: Any = f"{system_text}{SYSTEM_SEPARATOR}{message.content}"
        else:
            content = (TextPart(system_text + SYSTEM_SEPARATOR), *message.content)
        merged[i] = replace(message, content=content)
        return merged
    merged.insert(0, Message(role="user", content=system_text))
    return merged


def _dump_arguments(arguments: dict[str, Any]) -> str:
    return json.dumps(arguments, ensure_ascii=False)


# --- OpenAI / custom (function-call style) ---


def _openai_content(message: Message) -> str | list[dict[str, Any]]:
    if isinstance(message.content, str):
        return message.content
    if all(isinstance(p, TextPart) for p in message.content):
        return message.text
    blocks: list[dict[str, Any]] = []
    for part in message.content:
        if isinstance(part, TextPart):
            blocks.append({"type": "text", "text": part.text})
        else:
            blocks.append({"type": "image_url", "image_url": {"url": part.data_url}})
    return blocks


def _to_openai_style(
    conversation: list[Message], fmt: MessageFormat
) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    for message in conversation:
        if message.role == "tool":
            wire.append(_openai_tool_result(message, fmt))
            continue
        entry: dict[str, Any] = {"role": message.role}
        if message.role == "assistant":
            entry["content"] = message.text
            if message.tool_calls:
                entry[fmt.assistant_tool_call_field] = [
                    {
                        "id": call.id,
                        "type": "function",
                        "function": {
                            "name": call.name,
                            "arguments": _dump_arguments(call.arguments),
                        },
                    }
                    for call in message.tool_calls
                ]
        else:
            entry["content"] = _openai_content(message)
        wire.append(entry)
    return wire


def _openai_tool_result(message: Message, fmt: MessageFormat) -> dict[str, Any]:
    """Express a tool result per the configured role, id field, and wrapper."""
    content = message.text
    if fmt.tool_result_wrapper_tag:
        return {
            "role": fmt.tool_result_role,
            "content": [
                {
                    "type": fmt.tool_result_wrapper_tag,
                    fmt.tool_result_id_field: message.tool_call_id,
                    "content": content,
                }
            ],
        }
    if fmt.tool_result_role == "function":
        return {
            "role": "function",
            "name": message.tool_name or message.tool_call_id,
            "content": content,
        }
    return {
        "role": fmt.tool_result_role,
        "content": content,
        fmt.tool_result_id_field: message.tool_call_id,
    }


# --- Anthropic (content-block style) ---


def _anthropic_blocks(message: Message) -> list[dict[str, Any]]:
    blocks: list[dict[str, Any]] = []
    for part in message.parts:
        if isinstance(part, TextPart):
            if part.text:
                blocks.append({"type": "text", "text": part.text})
        elif part.source == "url":
            source = {"type": "url", "url": part.data}
            blocks.append({"type": "image", "source": source})
        else:
            blocks.append(
                {
                    "type": "image",
                    "source": {
                        "type": "base64",
                        "media_type": part.media_type,
                        "data": part.data,
                    },
                }
            )
    return blocks


def _as_blocks(content: Any) -> list[Any]:
    if isinstance(content, str):
        return [{"type": "text", "text": content}] if content else []
    return list(content)


def _append_message(wire: list[dict[str, Any]], msg: dict[str, Any], key: str) -> None:
    """Append *msg*, merging into the previous message when roles match.

    Block-style protocols require strict user/assistant alternation, so a tool
    result followed by a user prompt collapses into one user turn.
    """
    if wire and wire[-1]["role"] == msg["role"]:
        prev = wire[-1]
        prev[key] = _as_blocks(prev[key]) + _as_blocks(msg[key])
    else:
        wire.append(msg)


def _to_anthropic(conversation: list[Message]) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    for message in conversation:
        if message.role == "tool":
            block = {
                "type": "tool_result",
                "tool_use_id": message.tool_call_id,
                "content": message.text,
            }
            _append_message(wire, {"role": "user", "content": [block]}, "content")
            continue
        if message.role == "assistant" and message.tool_calls:
            blocks = _anthropic_blocks(message)
            blocks.extend(
                {
                    "type": "tool_use",
                    "id": call.id,
                    "name": call.name,
                    "input": dict(call.arguments),
                }
                for call in message.tool_calls
            )
            _append_message(wire, {"role": "assistant", "content": blocks}, "content")
            continue
        content: Any
        if isinstance(message.content, str):
            content = message.content
        else:
            content = _anthropic_blocks(message)
        _append_message(wire, {"role": message.role, "content": content}, "content")
    return wire


# --- Gemini (parts style) ---


def _gemini_part(part: TextPart | ImagePart) -> dict[str, Any] | None:
    if isinstance(part, TextPart):
        return {"text": part.text} if part.text else None
    if part.source == "url":
        return {"file_data": {"file_uri": part.data, "mime_type": part.media_type}}
    try:
        data = base64.b64decode(part.data, validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Skipping image part with invalid base64 data")
        return None
    return {"inline_data": {"mime_type": part.media_type, "data": data}}


def _function_response(text: str) -> dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        return parsed
    return {"result": text}


def _to_gemini(conversation: list[Message]) -> list[dict[str, Any]]:
    wire: list[dict[str, Any]] = []
    call_names: dict[str, str] = {}
    for message in conversation:
        parts: list[dict[str, Any]] = []
        if message.role == "tool":
            call_id = message.tool_call_id or ""
            name = message.tool_name or call_names.get(call_id, call_id)
            parts.append(
                {
                    "function_response": {
                        "id": call_id,
                        "name": name,
                        "response": _function_response(message.text),
                    }
                }
            )
            _append_message(wire, {"role": "user", "parts": parts}, "parts")
            continue

        for part in message.parts:
            converted = _gemini_part(part)
            if converted is not None:
                parts.append(converted)
        role = "user"
        if message.role == "assistant":
            role = "model"
            for call in message.tool_calls or ():
                call_names[call.id] = call.name
                parts.append(
                    {
                        "function_call": {
                            "id": call.id,
                            "name": call.name,
                            "args": dict(call.arguments),
                        }
                    }
                )
        if parts:
            _append_message(wire, {"role": role, "parts": parts}, "parts")

    if not wire:
        return [{"role": "user", "parts": [{"text": _GEMINI_EMPTY_PROMPT}]}]
    if wire[0]["role"] != "user":
        wire.insert(0, {"role": "user", "parts": [{"text": _GEMINI_HISTORY_PREFIX}]})
    return wire

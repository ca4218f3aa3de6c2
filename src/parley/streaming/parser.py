"""Incremental stream parsers producing normalized ``StreamEvent`` lists.

Three input shapes are understood:

- ``SSEStreamParser``: newline-delimited ``data: {...}`` lines (or decoded
  JSON chunks) walked with configurable field paths. Covers OpenAI-style
  streams and any vendor described by an ``AdapterConfig``.
- ``ContentBlockStreamParser``: block-oriented events
  (``content_block_start``/``delta``/``stop``) as used by Anthropic.
- ``PartsStreamParser``: candidate ``parts`` chunks as used by Gemini.

Parsers never raise for a malformed chunk; those are logged and skipped. A
provider error embedded in the stream is raised as ``APIError``.
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any
import uuid

from parley._http import error_for_status
from parley.adapters.paths import resolve, resolve_in_chunk
from parley.errors import APIError
from parley.streaming.assembler import ToolCallAssembler
from parley.types import (
    ChatResult,
    ReasoningDelta,
    StreamEvent,
    TextDelta,
    ToolCall,
    ToolCallFinished,
    Usage,
    UsageReported,
)

if TYPE_CHECKING:
    from parley.adapters.config import ResponseFieldPaths

logger = logging.getLogger(__name__)

# Anthropic stream error types mapped onto the HTTP statuses they mirror.
_BLOCK_ERROR_STATUS: dict[str, int] = {
    "invalid_request_error": 400,
    "authentication_error": 401,
    "permission_error": 403,
    "not_found_error": 404,
    "rate_limit_error": 429,
    "api_error": 500,
    "overloaded_error": 503,
}


def _decode(payload: str) -> Any:
    try:
        return json.loads(payload)
    except json.JSONDecodeError:
        logger.debug("Skipping non-JSON stream line: %.200r", payload)
        return None


def _raise_embedded_error(error: Any, *, provider: str | None) -> None:
    """Raise an ``APIError`` for an error object delivered inside the stream."""
    if isinstance(error, str):
        raise APIError(error, provider=provider)
    if not isinstance(error, dict):
        return
    message = str(error.get("message") or error.get("type") or "Stream error")
    status = error.get("code") or error.get("status")
    if isinstance(status, str) and status.isdigit():
        status = int(status)
    if not isinstance(status, int):
        status = _BLOCK_ERROR_STATUS.get(str(error.get("type", "")))
    if isinstance(status, int):
        raise error_for_status(status, message, provider=provider)
    raise APIError(message, provider=provider)


class SSEStreamParser:
    """Field-path driven parser for ``data:`` line streams."""

    def __init__(
        self, paths: ResponseFieldPaths, *, provider: str | None = None
    ) -> None:
        self._paths = paths
        self._provider = provider
        self._calls = ToolCallAssembler()
        self._generated: dict[Any, int] = {}
        self.done = False

    def feed_line(self, line: str) -> list[StreamEvent]:
        """Consume one raw line of the response body."""
        if self.done:
            return []
        stripped = line.strip()
        if not stripped:
            return []
        marker = self._paths.done_marker
        if marker and stripped == marker:
            self.done = True
            return []
        prefix = self._paths.data_line_prefix
        if prefix:
            if not stripped.startswith(prefix):
                return []
            stripped = stripped[len(prefix) :].strip()
        if marker and stripped == marker:
            self.done = True
            return []
        chunk = _decode(stripped)
        if chunk is None:
            return []
        return self.feed_chunk(chunk)

    def feed_chunk(self, chunk: Any) -> list[StreamEvent]:
        """Consume one decoded JSON chunk."""
        if self.done or not isinstance(chunk, dict):
            return []
        if "error" in chunk and not chunk.get("choices"):
            _raise_embedded_error(chunk["error"], provider=self._provider)

        paths = self._paths
        events: list[StreamEvent] = []
        if paths.reasoning_path:
            reasoning = resolve_in_chunk(chunk, paths.reasoning_path)
            if isinstance(reasoning, str) and reasoning:
                events.append(ReasoningDelta(reasoning))

        text = resolve_in_chunk(chunk, paths.content_path)
        if isinstance(text, str) and text:
            events.append(TextDelta(text))

        deltas = resolve_in_chunk(chunk, paths.tool_call_array_path)
        if isinstance(deltas, dict):
            deltas = [deltas]
        if isinstance(deltas, list):
            for position, raw in enumerate(deltas):
                events.extend(self._tool_delta(raw, position))

        usage_raw = resolve(chunk, paths.usage_path)
        if isinstance(usage_raw, dict):
            usage = Usage.from_mapping(usage_raw)
            if usage is not None:
                events.append(UsageReported(usage))
        return events

    def _tool_delta(self, raw: Any, position: int) -> list[StreamEvent]:
        if not isinstance(raw, dict):
            return []
        paths = self._paths
        index = resolve(raw, paths.tool_index_path)
        slot = index if isinstance(index, int) else position
        call_id = resolve(raw, paths.tool_id_path)
        name = resolve(raw, paths.tool_name_path)
        name = name if isinstance(name, str) else ""
        args = resolve(raw, paths.tool_args_path)

        events: list[StreamEvent] = []
        current = self._calls.get(slot)
        if isinstance(call_id, str) and call_id and (
            current is None or current.id != call_id
        ):
            events.extend(self._calls.open(slot, call_id, name))
        elif current is None:
            if not name:
                logger.debug("Ignoring tool-call delta for unknown slot %r", slot)
                return events
            events.extend(self._calls.open(slot, self._generate_id(slot), name))
        elif name and (current.value is not None or paths.args_are_object):
            # Id-less dialect: a full name in an occupied slot is a new call.
            events.extend(self._calls.open(slot, self._generate_id(slot), name))
        else:
            self._calls.append_name(slot, name)

        if isinstance(args, dict):
            events.extend(self._calls.replace_object(slot, args))
        elif isinstance(args, str) and args:
            structured = _decode_object(args) if paths.args_are_object else None
            if structured is not None:
                events.extend(self._calls.replace_object(slot, structured))
            else:
                events.extend(self._calls.append_text(slot, args))
        return events

    def _generate_id(self, slot: Any) -> str:
        count = self._generated.get(slot, 0)
        self._generated[slot] = count + 1
        return f"call_{slot}" if count == 0 else f"call_{slot}_{count}"

    def finish(self) -> list[StreamEvent]:
        """Finalize every open tool call; call once when the stream ends."""
        self.done = True
        return self._calls.finish_all()


def _decode_object(text: str) -> dict[str, Any] | None:
    try:
        value = json.loads(text)
    except json.JSONDecodeError:
        return None
    return value if isinstance(value, dict) else None


class ContentBlockStreamParser:
    """Parser for block-oriented (Anthropic-style) stream events."""

    def __init__(self, *, provider: str | None = None) -> None:
        self._provider = provider
        self._calls = ToolCallAssembler()
        self._input_tokens = 0
        self.done = False

    def feed_line(self, line: str) -> list[StreamEvent]:
        """Consume one SSE line; ``event:`` lines are redundant with ``type``."""
        stripped = line.strip()
        if not stripped.startswith("data:"):
            return []
        event = _decode(stripped[len("data:") :].strip())
        if event is None:
            return []
        return self.feed_event(event)

    def feed_event(self, event: Any) -> list[StreamEvent]:
        """Consume one decoded event."""
        if self.done or not isinstance(event, dict):
            return []
        kind = event.get("type")
        index = event.get("index", 0)
        events: list[StreamEvent] = []

        if kind == "message_start":
            usage = resolve(event, "message.usage")
            if isinstance(usage, dict):
                self._input_tokens = int(usage.get("input_tokens") or 0)
        elif kind == "content_block_start":
            block = event.get("content_block") or {}
            block_type = block.get("type")
            if block_type == "tool_use":
                call_id = str(block.get("id", ""))
                events.extend(self._calls.open(index, call_id, block.get("name", "")))
                initial = block.get("input")
                if isinstance(initial, dict) and initial:
                    events.extend(self._calls.replace_object(index, initial))
            elif block_type == "text" and block.get("text"):
                events.append(TextDelta(block["text"]))
            elif block_type == "thinking" and block.get("thinking"):
                events.append(ReasoningDelta(block["thinking"]))
        elif kind == "content_block_delta":
            delta = event.get("delta") or {}
            delta_type = delta.get("type")
            if delta_type == "text_delta" and delta.get("text"):
                events.append(TextDelta(delta["text"]))
            elif delta_type == "thinking_delta" and delta.get("thinking"):
                events.append(ReasoningDelta(delta["thinking"]))
            elif delta_type == "input_json_delta":
                events.extend(
                    self._calls.append_text(index, delta.get("partial_json") or "")
                )
        elif kind == "content_block_stop":
            events.extend(self._calls.finish(index, lenient=True))
        elif kind == "message_delta":
            usage = event.get("usage")
            if isinstance(usage, dict):
                prompt = int(usage.get("input_tokens") or self._input_tokens)
                completion = int(usage.get("output_tokens") or 0)
                events.append(
                    UsageReported(
                        Usage(
                            prompt_tokens=prompt,
                            completion_tokens=completion,
                            total_tokens=prompt + completion,
                        )
                    )
                )
        elif kind == "message_stop":
            events.extend(self.finish())
        elif kind == "error":
            _raise_embedded_error(event.get("error"), provider=self._provider)
        return events

    def finish(self) -> list[StreamEvent]:
        """Close any block the stream left open."""
        self.done = True
        return self._calls.finish_all(lenient=True)


class PartsStreamParser:
    """Parser for Gemini-style candidate chunks.

    Function calls arrive whole, with object arguments, so each one opens and
    closes within a single chunk.
    """

    def __init__(self, *, provider: str | None = None) -> None:
        self._provider = provider
        self._calls = ToolCallAssembler()
        self.done = False

    def feed_chunk(self, chunk: Any) -> list[StreamEvent]:
        """Consume one decoded chunk (snake_case or camelCase keys)."""
        if self.done or not isinstance(chunk, dict):
            return []
        if "error" in chunk and not chunk.get("candidates"):
            _raise_embedded_error(chunk["error"], provider=self._provider)

        events: list[StreamEvent] = []
        parts = resolve(chunk, "candidates.0.content.parts")
        for part in parts if isinstance(parts, list) else ():
            if not isinstance(part, dict):
                continue
            text = part.get("text")
            if isinstance(text, str) and text:
                if part.get("thought"):
                    events.append(ReasoningDelta(text))
                else:
                    events.append(TextDelta(text))
            call = part.get("function_call") or part.get("functionCall")
            if isinstance(call, dict) and call.get("name"):
                call_id = call.get("id") or f"gemini-{uuid.uuid4().hex[:12]}"
                events.extend(self._calls.open(call_id, call_id, call["name"]))
                args = call.get("args")
                if isinstance(args, dict) and args:
                    events.extend(self._calls.replace_object(call_id, args))
                events.extend(self._calls.finish(call_id, lenient=True))

        usage_raw = chunk.get("usage_metadata") or chunk.get("usageMetadata")
        if isinstance(usage_raw, dict):
            usage = Usage.from_mapping(usage_raw)
            if usage is not None:
                events.append(UsageReported(usage))
        return events

    def finish(self) -> list[StreamEvent]:
        """Mark the stream finished."""
        self.done = True
        return self._calls.finish_all(lenient=True)


class ResponseCollector:
    """Accumulates stream events into the terminal ``ChatResult``."""

    def __init__(self) -> None:
        self._text: list[str] = []
        self._reasoning: list[str] = []
        self._tool_calls: list[ToolCall] = []
        self.usage: Usage | None = None

    def add(self, event: StreamEvent) -> None:
        """Record one event."""
        if isinstance(event, TextDelta):
            self._text.append(event.text)
        elif isinstance(event, ReasoningDelta):
            self._reasoning.append(event.text)
        elif isinstance(event, ToolCallFinished):
            self._tool_calls.append(event.tool_call)
        elif isinstance(event, UsageReported):
            self.usage = event.usage

    @property
    def content(self) -> str:
        """Text accumulated so far."""
        return "".join(self._text)

    def result(self) -> ChatResult:
        """Build the terminal result."""
        reasoning = "".join(self._reasoning)
        return ChatResult(
            content=self.content,
            reasoning=reasoning or None,
            tool_calls=tuple(self._tool_calls) or None,
            usage=self.usage,
        )

"""Converted assistant turns parse back into the same text and tool calls."""

from __future__ import annotations

import json
from typing import Any

import pytest

from parley.adapters.config import (
    ANTHROPIC_ADAPTER,
    GEMINI_ADAPTER,
    OPENAI_ADAPTER,
    ProtocolFamily,
)
from parley.adapters.messages import convert_messages
from parley.streaming.parser import (
    ContentBlockStreamParser,
    PartsStreamParser,
    ResponseCollector,
    SSEStreamParser,
)
from parley.types import ChatResult, Message, StreamEvent, ToolCall

pytestmark = pytest.mark.unit

CALLS = (
    ToolCall(id="c1", name="lookup", arguments={"q": "weather", "days": 2}),
    ToolCall(id="c2", name="convert", arguments={"unit": "celsius"}),
)
ASSISTANT = Message(role="assistant", content="Let me check.", tool_calls=CALLS)
CONVERSATION = [Message(role="user", content="Weather in Oslo?"), ASSISTANT]


def collect(events: list[StreamEvent]) -> ChatResult:
    collector = ResponseCollector()
    for event in events:
        collector.add(event)
    return collector.result()


# =============================================================================
# Replaying a converted turn as a provider response
# =============================================================================


def replay_openai(turn: dict[str, Any]) -> list[StreamEvent]:
    parser = SSEStreamParser(OPENAI_ADAPTER.response)
    lines = [{"choices": [{"index": 0, "delta": {"content": turn["content"]}}]}]
    for index, call in enumerate(turn["tool_calls"]):
        lines.append(
            {
                "choices": [
                    {
                        "index": 0,
                        "delta": {"tool_calls": [{"index": index, **call}]},
                    }
                ]
            }
        )
    events: list[StreamEvent] = []
    for payload in lines:
        events.extend(parser.feed_line(f"data: {json.dumps(payload)}"))
    events.extend(parser.feed_line("data: [DONE]"))
    events.extend(parser.finish())
    return events


def replay_anthropic(turn: dict[str, Any]) -> list[StreamEvent]:
    parser = ContentBlockStreamParser()
    events: list[StreamEvent] = []
    for index, block in enumerate(turn["content"]):
        if block["type"] == "text":
            start = {"type": "text", "text": ""}
            delta = {"type": "text_delta", "text": block["text"]}
        else:
            start = {
                "type": "tool_use",
                "id": block["id"],
                "name": block["name"],
                "input": {},
            }
            delta = {
                "type": "input_json_delta",
                "partial_json": json.dumps(block["input"]),
            }
        for event in (
            {"type": "content_block_start", "index": index, "content_block": start},
            {"type": "content_block_delta", "index": index, "delta": delta},
            {"type": "content_block_stop", "index": index},
        ):
            events.extend(parser.feed_event(event))
    events.extend(parser.feed_event({"type": "message_stop"}))
    return events


def replay_gemini(turn: dict[str, Any]) -> list[StreamEvent]:
    parser = PartsStreamParser()
    chunk = {"candidates": [{"content": {"role": "model", "parts": turn["parts"]}}]}
    events = parser.feed_chunk(chunk)
    events.extend(parser.finish())
    return events


@pytest.mark.parametrize(
    ("protocol", "adapter", "assistant_role", "replay"),
    [
        (ProtocolFamily.OPENAI, OPENAI_ADAPTER, "assistant", replay_openai),
        (ProtocolFamily.ANTHROPIC, ANTHROPIC_ADAPTER, "assistant", replay_anthropic),
        (ProtocolFamily.GEMINI, GEMINI_ADAPTER, "model", replay_gemini),
    ],
    ids=["openai", "anthropic", "gemini"],
)
def test_converted_assistant_turn_parses_back(
    protocol: ProtocolFamily, adapter: Any, assistant_role: str, replay: Any
) -> None:
    wire = convert_messages(CONVERSATION, None, protocol, adapter).messages
    (turn,) = [m for m in wire if m["role"] == assistant_role]

    result = collect(replay(turn))

    assert result.content == ASSISTANT.text
    assert result.tool_calls == CALLS

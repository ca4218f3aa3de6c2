"""Incremental assembly of tool calls from streamed fragments."""

from __future__ import annotations

from dataclasses import dataclass
import json
import logging
from typing import Any

from parley.streaming.repair import repair_json
from parley.types import (
    StreamEvent,
    ToolCall,
    ToolCallDelta,
    ToolCallFinished,
    ToolCallStarted,
)

logger = logging.getLogger(__name__)


@dataclass
class PendingToolCall:
    """A tool call whose arguments are still streaming."""

    id: str
    name: str = ""
    text: str = ""
    value: dict[str, Any] | None = None


class ToolCallAssembler:
    """Tracks open tool calls by slot (stream index or block index).

    Every call moves open -> argument-streaming -> closed exactly once;
    ``finish_all`` closes whatever the stream left open.
    """

    def __init__(self) -> None:
        self._open: dict[Any, PendingToolCall] = {}

    def __contains__(self, slot: object) -> bool:
        return slot in self._open

    def __len__(self) -> int:
        return len(self._open)

    def get(self, slot: Any) -> PendingToolCall | None:
        """Return the open call in *slot*, if any."""
        return self._open.get(slot)

    def open(self, slot: Any, call_id: str, name: str = "") -> list[StreamEvent]:
        """Open a call; a different call already in *slot* is finished first."""
        events: list[StreamEvent] = []
        current = self._open.get(slot)
        if current is not None:
            if current.id == call_id:
                return events
            events.extend(self.finish(slot))
        self._open[slot] = PendingToolCall(id=call_id, name=name)
        events.append(ToolCallStarted(id=call_id, name=name))
        return events

    def append_name(self, slot: Any, fragment: str) -> None:
        """Append to the call's name (some vendors stream names in pieces)."""
        call = self._open.get(slot)
        if call is not None and fragment and fragment != call.name:
            call.name += fragment

    def append_text(self, slot: Any, fragment: str) -> list[StreamEvent]:
        """Append a raw argument fragment."""
        call = self._open.get(slot)
        if call is None or not fragment:
            return []
        call.text += fragment
        return [ToolCallDelta(id=call.id, fragment=fragment)]

    def replace_object(self, slot: Any, value: dict[str, Any]) -> list[StreamEvent]:
        """Replace the call's arguments with an already-structured object."""
        call = self._open.get(slot)
        if call is None:
            return []
        call.value = value
        return [ToolCallDelta(id=call.id, fragment=value)]

    def finish(self, slot: Any, *, lenient: bool = False) -> list[StreamEvent]:
        """Close the call in *slot*.

        Unparseable arguments drop the call, or become ``{}`` when *lenient*.
        Calls that never received a name are dropped.
        """
        call = self._open.pop(slot, None)
        if call is None:
            return []
        if not call.name:
            logger.warning("Dropping tool call %s: no function name received", call.id)
            return []
        arguments = self._arguments(call)
        if arguments is None:
            if not lenient:
                logger.warning(
                    "Dropping tool call %s (%s): arguments are not valid JSON "
                    "after repair: %.200r",
                    call.id,
                    call.name,
                    call.text,
                )
                return []
            logger.debug("Tool call %s arguments unparseable; using {}", call.id)
            arguments = {}
        return [
            ToolCallFinished(ToolCall(id=call.id, name=call.name, arguments=arguments))
        ]

    def finish_all(self, *, lenient: bool = False) -> list[StreamEvent]:
        """Close every open call in the order they were opened."""
        events: list[StreamEvent] = []
        for slot in list(self._open):
            events.extend(self.finish(slot, lenient=lenient))
        return events

    @staticmethod
    def _arguments(call: PendingToolCall) -> dict[str, Any] | None:
        if call.value is not None:
            return call.value
        if not call.text.strip():
            return {}
        try:
            parsed = json.loads(call.text)
        except json.JSONDecodeError:
            parsed = None
        if isinstance(parsed, dict):
            return parsed
        return repair_json(call.text)

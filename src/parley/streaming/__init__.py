"""Streaming response parsing and tool-call assembly."""

from .assembler import PendingToolCall, ToolCallAssembler
from .parser import (
    ContentBlockStreamParser,
    PartsStreamParser,
    ResponseCollector,
    SSEStreamParser,
)
from .repair import repair_json

__all__ = [
    "ContentBlockStreamParser",
    "PartsStreamParser",
    "PendingToolCall",
    "ResponseCollector",
    "SSEStreamParser",
    "ToolCallAssembler",
    "repair_json",
]

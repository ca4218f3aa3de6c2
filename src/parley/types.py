"""Provider-agnostic data model: conversations, tools, results, stream events."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal, Union

from parley.cancellation import CancellationToken
from parley.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

Role = Literal["user", "assistant", "system", "tool"]

_ROLES = frozenset({"user", "assistant", "system", "tool"})


@dataclass(frozen=True)
class TextPart:
    """A text segment of multimodal content."""

    text: str


@dataclass(frozen=True)
class ImagePart:
    """An image segment, inline base64 or a remote URL."""

    data: str
    media_type: str = "image/png"
    source: Literal["base64", "url"] = "base64"

    @property
    def data_url(self) -> str:
        """Return a ``data:`` URL (or the remote URL) for this image."""
        if self.source == "url":
            return self.data
        return f"data:{self.media_type};base64,{self.data}"


ContentPart = Union[TextPart, ImagePart]


@dataclass(frozen=True)
class ToolCall:
    """A completed, model-requested tool invocation."""

    id: str
    name: str
    arguments: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Message:
    """One conversation turn.

    ``content`` is plain text or an ordered sequence of text/image parts.
    A ``tool`` message must name the call it answers via ``tool_call_id``.
    """

    role: Role
    content: str | tuple[ContentPart, ...] = ""
    tool_call_id: str | None = None
    tool_name: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None

    def __post_init__(self) -> None:
        """Normalize sequences to tuples and validate role invariants."""
        if self.role not in _ROLES:
            raise ConfigurationError(
                f"Unknown message role: {self.role!r}",
                hint="Use one of 'user', 'assistant', 'system', 'tool'.",
            )
        if isinstance(self.content, list):
            object.__setattr__(self, "content", tuple(self.content))
        if isinstance(self.tool_calls, list):
            object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        if self.role == "tool" and not self.tool_call_id:
            raise ConfigurationError(
                "Tool messages must carry tool_call_id",
                hint="Pass the id of the ToolCall this message answers.",
            )

    @property
    def text(self) -> str:
        """Concatenated text content (image parts are skipped)."""
        if isinstance(self.content, str):
            return self.content
        return "".join(p.text for p in self.content if isinstance(p, TextPart))

    @property
    def parts(self) -> tuple[ContentPart, ...]:
        """Content as a tuple of parts (empty text yields no parts)."""
        if isinstance(self.content, str):
            return (TextPart(self.content),) if self.content else ()
        return self.content


@dataclass(frozen=True)
class ToolDefinition:
    """A caller-supplied function the model may invoke."""

    name: str
    description: str = ""
    parameters: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        """Validate the name and fill the schema's object type."""
        if not self.name:
            raise ConfigurationError("Tool name must be non-empty")
        schema = dict(self.parameters)
        schema.setdefault("type", "object")
        schema.setdefault("properties", {})
        object.__setattr__(self, "parameters", schema)

    @property
    def required(self) -> list[str]:
        """Required parameter names."""
        return list(self.parameters.get("required") or [])


@dataclass(frozen=True)
class Usage:
    """Token accounting for one request."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> Usage | None:
        """Build usage from any of the common vendor spellings.

        Returns ``None`` when no recognised counter is present.
        """
        prompt = _first_int(
            raw,
            "prompt_tokens",
            "promptTokens",
            "input_tokens",
            "prompt_token_count",
            "promptTokenCount",
        )
        completion = _first_int(
            raw,
            "completion_tokens",
            "completionTokens",
            "output_tokens",
            "candidates_token_count",
            "candidatesTokenCount",
        )
        total = _first_int(
            raw, "total_tokens", "totalTokens", "total_token_count", "totalTokenCount"
        )
        if prompt is None and completion is None and total is None:
            return None
        prompt = prompt or 0
        completion = completion or 0
        return cls(
            prompt_tokens=prompt,
            completion_tokens=completion,
            total_tokens=total if total is not None else prompt + completion,
        )


def _first_int(raw: Mapping[str, Any], *keys: str) -> int | None:
    for key in keys:
        value = raw.get(key)
        if isinstance(value, bool):
            continue
        if isinstance(value, (int, float)):
            return int(value)
    return None


@dataclass(frozen=True)
class ChatResult:
    """Terminal result of one request."""

    content: str
    reasoning: str | None = None
    tool_calls: tuple[ToolCall, ...] | None = None
    usage: Usage | None = None


@dataclass
class ChatRequest:
    """A fully populated request, owned by exactly one in-flight call."""

    model: str
    messages: Sequence[Message]
    tools: Sequence[ToolDefinition] | None = None
    system_prompt: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    streaming: bool = True
    cancellation: CancellationToken = field(default_factory=CancellationToken)

    def __post_init__(self) -> None:
        """Reject duplicate tool names."""
        if self.tools:
            seen: set[str] = set()
            for tool in self.tools:
                if tool.name in seen:
                    raise ConfigurationError(
                        f"Duplicate tool name: {tool.name!r}",
                        hint="Tool names must be unique within one request.",
                    )
                seen.add(tool.name)


# --- Stream events ---


@dataclass(frozen=True)
class TextDelta:
    """A non-empty fragment of assistant text."""

    text: str


@dataclass(frozen=True)
class ReasoningDelta:
    """A non-empty fragment of reasoning ("thinking") text."""

    text: str


@dataclass(frozen=True)
class ToolCallStarted:
    """A tool call was opened."""

    id: str
    name: str


@dataclass(frozen=True)
class ToolCallDelta:
    """An argument fragment (text) or a full argument object for an open call."""

    id: str
    fragment: str | dict[str, Any]


@dataclass(frozen=True)
class ToolCallFinished:
    """A tool call was closed with parsed arguments."""

    tool_call: ToolCall


@dataclass(frozen=True)
class UsageReported:
    """Usage statistics reported by the provider."""

    usage: Usage


StreamEvent = Union[
    TextDelta,
    ReasoningDelta,
    ToolCallStarted,
    ToolCallDelta,
    ToolCallFinished,
    UsageReported,
]

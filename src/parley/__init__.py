"""Parley: one streaming chat contract over many LLM wire protocols.

Public API:
    - send_chat(): Stream one turn through the default orchestrator
    - abort(): Cancel the default orchestrator's in-flight request
    - ChatOrchestrator: Per-conversation entry point (send, abort, complete)
    - LLMConfig: Per-call configuration
    - AdapterConfig: Declarative wire dialect for custom vendors
    - Message, ToolDefinition, ToolCall, ChatResult: Unified data model
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from parley.adapters.config import (
    BUILTIN_ADAPTERS,
    AdapterConfig,
    AuthConfig,
    MessageFormat,
    ProtocolFamily,
    RequestTemplate,
    ResponseFieldPaths,
    ToolFormat,
)
from parley.cancellation import CancellationToken
from parley.config import LLMConfig
from parley.errors import (
    APIError,
    ConfigurationError,
    ErrorKind,
    ParleyError,
    RateLimitError,
    RequestAborted,
)
from parley.orchestrator import ChatCallbacks, ChatListener, ChatOrchestrator
from parley.router import ProviderRouter
from parley.types import (
    ChatRequest,
    ChatResult,
    ImagePart,
    Message,
    TextPart,
    ToolCall,
    ToolDefinition,
    Usage,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

try:
    from importlib.metadata import PackageNotFoundError, version

    __version__ = version("parley-llm")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"

# Library-level NullHandler: stay silent unless the consumer configures logging.
logging.getLogger("parley").addHandler(logging.NullHandler())

logger = logging.getLogger(__name__)

# Module-level orchestrator shared by the convenience functions
_default = ChatOrchestrator()


async def send_chat(
    config: LLMConfig,
    messages: Sequence[Message],
    listener: ChatListener,
    *,
    tools: Sequence[ToolDefinition] | None = None,
    system_prompt: str | None = None,
) -> ChatResult | None:
    """Stream one conversation turn through the default orchestrator.

    Example:
        config = LLMConfig(provider="openai", model="gpt-4o-mini")
        await send_chat(
            config,
            [Message(role="user", content="2+2?")],
            ChatCallbacks(on_text=print),
        )
    """
    return await _default.send(
        config, messages, listener, tools=tools, system_prompt=system_prompt
    )


def abort() -> None:
    """Cancel the default orchestrator's in-flight request (idempotent)."""
    _default.abort()


def invalidate_provider(provider_id: str) -> None:
    """Drop cached drivers for *provider_id* after its credentials change."""
    _default.invalidate_provider(provider_id)


def invalidate_all_providers() -> None:
    """Drop every cached driver."""
    _default.invalidate_all_providers()


__all__ = [  # noqa: RUF022
    # Entry points
    "send_chat",
    "abort",
    "invalidate_provider",
    "invalidate_all_providers",
    "ChatOrchestrator",
    "ChatCallbacks",
    "ChatListener",
    "ProviderRouter",
    # Configuration
    "LLMConfig",
    "AdapterConfig",
    "AuthConfig",
    "MessageFormat",
    "ProtocolFamily",
    "RequestTemplate",
    "ResponseFieldPaths",
    "ToolFormat",
    "BUILTIN_ADAPTERS",
    # Data model
    "CancellationToken",
    "ChatRequest",
    "ChatResult",
    "ImagePart",
    "Message",
    "TextPart",
    "ToolCall",
    "ToolDefinition",
    "Usage",
    # Errors
    "ParleyError",
    "ConfigurationError",
    "APIError",
    "ErrorKind",
    "RateLimitError",
    "RequestAborted",
]

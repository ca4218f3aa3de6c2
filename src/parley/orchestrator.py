"""Chat orchestrator: the public entry point for one conversation turn.

The orchestrator resolves a driver, relays its events to a listener, and
guarantees that exactly one terminal callback (``on_complete`` or
``on_error``) fires, after every other callback for that request.
"""

from __future__ import annotations

from contextlib import aclosing
from dataclasses import dataclass
import logging
from typing import TYPE_CHECKING, Any, Callable, Protocol

from parley.errors import APIError, ErrorKind
from parley.providers._errors import classify_error
from parley.router import ProviderRouter
from parley.streaming.parser import ResponseCollector
from parley.types import (
    ChatRequest,
    ChatResult,
    ReasoningDelta,
    TextDelta,
    ToolCallDelta,
    ToolCallFinished,
    ToolCallStarted,
)

if TYPE_CHECKING:
    from collections.abc import Sequence

    from parley.cancellation import CancellationToken
    from parley.config import LLMConfig
    from parley.router import CacheStats
    from parley.types import Message, StreamEvent, ToolCall, ToolDefinition

logger = logging.getLogger(__name__)

# Defaults for one-shot background completions.
COMPLETE_MAX_TOKENS = 1000
COMPLETE_TEMPERATURE = 0.3


class ChatListener(Protocol):
    """Receives the normalized event stream of one request."""

    def on_text(self, text: str) -> None: ...

    def on_reasoning(self, text: str) -> None: ...

    def on_tool_call_start(self, call_id: str, name: str) -> None: ...

    def on_tool_call_delta(
        self, call_id: str, fragment: str | dict[str, Any]
    ) -> None: ...

    def on_tool_call_end(self, tool_call: ToolCall) -> None: ...

    def on_complete(self, result: ChatResult) -> None: ...

    def on_error(self, error: APIError) -> None: ...


def _noop(*_args: Any) -> None:
    return None


@dataclass(frozen=True)
class ChatCallbacks:
    """A ``ChatListener`` assembled from optional plain callables."""

    on_text: Callable[[str], None] = _noop
    on_reasoning: Callable[[str], None] = _noop
    on_tool_call_start: Callable[[str, str], None] = _noop
    on_tool_call_delta: Callable[[str, str | dict[str, Any]], None] = _noop
    on_tool_call_end: Callable[[ToolCall], None] = _noop
    on_complete: Callable[[ChatResult], None] = _noop
    on_error: Callable[[APIError], None] = _noop


def _dispatch(event: StreamEvent, listener: ChatListener) -> None:
    if isinstance(event, TextDelta):
        listener.on_text(event.text)
    elif isinstance(event, ReasoningDelta):
        listener.on_reasoning(event.text)
    elif isinstance(event, ToolCallStarted):
        listener.on_tool_call_start(event.id, event.name)
    elif isinstance(event, ToolCallDelta):
        listener.on_tool_call_delta(event.id, event.fragment)
    elif isinstance(event, ToolCallFinished):
        listener.on_tool_call_end(event.tool_call)


class ChatOrchestrator:
    """Runs chat requests and owns the current cancellation token.

    One orchestrator tracks at most one outstanding token; run several
    orchestrators for concurrent conversations.
    """

    def __init__(self, router: ProviderRouter | None = None) -> None:
        """Use *router* for driver resolution (a private one by default)."""
        self.router = router if router is not None else ProviderRouter()
        self._token: CancellationToken | None = None

    @property
    def is_busy(self) -> bool:
        """Whether a request is in flight."""
        return self._token is not None

    def build_request(
        self,
        config: LLMConfig,
        messages: Sequence[Message],
        *,
        tools: Sequence[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> ChatRequest:
        """Populate a ``ChatRequest`` from *config* and the conversation."""
        return ChatRequest(
            model=config.model,
            messages=list(messages),
            tools=list(tools) if tools else None,
            system_prompt=system_prompt,
            max_tokens=config.effective_max_tokens,
            temperature=config.temperature,
            top_p=config.top_p,
            streaming=config.adapter.streaming,
        )

    async def send(
        self,
        config: LLMConfig,
        messages: Sequence[Message],
        listener: ChatListener,
        *,
        tools: Sequence[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> ChatResult | None:
        """Run one turn, delivering events to *listener*.

        Returns the result on success and ``None`` after ``on_error``. Never
        raises for request failures.
        """
        try:
            request = self.build_request(
                config, messages, tools=tools, system_prompt=system_prompt
            )
        except Exception as e:
            listener.on_error(_normalize(e, config.provider))
            return None
        return await self.run(config, request, listener)

    async def run(
        self, config: LLMConfig, request: ChatRequest, listener: ChatListener
    ) -> ChatResult | None:
        """Run a prepared *request* (see ``send``)."""
        token = request.cancellation
        self._token = token
        logger.debug(
            "Sending chat: provider=%s model=%s messages=%d tools=%d stream=%s",
            config.provider,
            request.model,
            len(request.messages),
            len(request.tools or ()),
            request.streaming,
        )
        collector = ResponseCollector()
        try:
            self.router.start()
            driver = self.router.resolve(config)
            async with aclosing(driver.stream(request)) as events:
                async for event in events:
                    if token.cancelled:
                        break
                    collector.add(event)
                    _dispatch(event, listener)
            token.raise_if_cancelled()
        except BaseException as e:  # noqa: BLE001 - terminal callback must fire
            error = _normalize(e, config.provider)
            if error.kind is ErrorKind.ABORTED:
                logger.info("Chat request aborted (provider=%s)", config.provider)
            else:
                logger.error(
                    "Chat request failed (provider=%s kind=%s): %s",
                    config.provider,
                    error.kind.value,
                    error,
                )
            listener.on_error(error)
            if not isinstance(e, Exception):
                raise
            return None
        finally:
            if self._token is token:
                self._token = None

        result = collector.result()
        logger.debug(
            "Chat complete: %d chars, %d tool call(s)",
            len(result.content),
            len(result.tool_calls or ()),
        )
        listener.on_complete(result)
        return result

    def abort(self) -> None:
        """Cancel the in-flight request; a no-op when none is outstanding."""
        token = self._token
        if token is not None:
            token.cancel()

    async def complete(
        self,
        config: LLMConfig,
        messages: Sequence[Message],
        *,
        tools: Sequence[ToolDefinition] | None = None,
        system_prompt: str | None = None,
    ) -> ChatResult:
        """Run one turn to completion without callbacks.

        Intended for background tasks (summaries, titles). Uses conservative
        sampling defaults when the config leaves them unset. Raises the
        normalized ``APIError`` on failure.
        """
        request = self.build_request(
            config, messages, tools=tools, system_prompt=system_prompt
        )
        if config.max_tokens is None:
            request.max_tokens = COMPLETE_MAX_TOKENS
        if config.temperature is None:
            request.temperature = COMPLETE_TEMPERATURE

        failure: list[APIError] = []
        result = await self.run(config, request, ChatCallbacks(on_error=failure.append))
        if result is None:
            raise failure[0]
        return result

    # --- Cache control ---

    def invalidate_provider(self, provider_id: str) -> None:
        """Drop cached drivers for *provider_id* (e.g. after a key change)."""
        self.router.invalidate(provider_id)

    def invalidate_all_providers(self) -> None:
        """Drop every cached driver."""
        self.router.invalidate_all()

    def cache_stats(self) -> CacheStats:
        """Return the driver cache snapshot."""
        return self.router.stats()

    async def aclose(self) -> None:
        """Abort any in-flight request and release the router."""
        self.abort()
        await self.router.aclose()


def _normalize(exc: BaseException, provider: str) -> APIError:
    """Classify *exc*; anything unrecognised becomes ``UNKNOWN``."""
    try:
        return classify_error(exc, provider=provider)
    except Exception:  # noqa: BLE001 - classification must not mask the failure
        return APIError(str(exc) or type(exc).__name__, kind=ErrorKind.UNKNOWN)

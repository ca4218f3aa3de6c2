"""Anthropic driver (Messages API, content-block streaming)."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from parley.adapters.config import ProtocolFamily
from parley.adapters.messages import convert_messages
from parley.adapters.tools import convert_tools
from parley.errors import APIError
from parley.providers._errors import classify_error
from parley.providers._utils import close_stream, template_extras, to_plain
from parley.streaming.parser import ContentBlockStreamParser

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from parley.config import LLMConfig
    from parley.types import ChatRequest, StreamEvent

logger = logging.getLogger(__name__)


def _strip_version_suffix(base_url: str | None) -> str | None:
    """The SDK appends ``/v1`` itself; accept base URLs written with it."""
    if base_url and base_url.endswith("/v1"):
        return base_url[: -len("/v1")]
    return base_url


class AnthropicDriver:
    """Anthropic Messages API driver."""

    family = ProtocolFamily.ANTHROPIC

    def __init__(self, config: LLMConfig) -> None:
        """Capture connection settings; the SDK client is created lazily."""
        self.provider = config.provider
        self.api_key = config.api_key
        self.base_url = _strip_version_suffix(config.base_url)
        self.timeout = config.effective_timeout
        self.adapter = config.adapter
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the Anthropic client."""
        if self._client is None:
            try:
                from anthropic import AsyncAnthropic
            except ImportError as e:
                raise APIError(
                    "anthropic package not installed",
                    hint="uv pip install anthropic",
                ) from e
            credentials: dict[str, Any] = {"api_key": self.api_key}
            if self.base_url and self.adapter.auth.type == "bearer":
                # Proxies in front of the Messages API expect a bearer token.
                credentials = {"api_key": None, "auth_token": self.api_key}
            self._client = AsyncAnthropic(
                **credentials,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                default_headers=self.adapter.request.headers or None,
            )
        return self._client

    def build_body(self, request: ChatRequest) -> dict[str, Any]:
        """Build ``messages.create`` keyword arguments."""
        converted = convert_messages(
            request.messages, request.system_prompt, self.family, self.adapter
        )
        body: dict[str, Any] = {
            "model": request.model,
            "messages": converted.messages,
            "max_tokens": request.max_tokens or 4096,
            "stream": request.streaming,
        }
        if converted.system:
            body["system"] = [{"type": "text", "text": converted.system}]

        extras = template_extras(self.adapter.request.body_template)
        # Extended thinking rejects sampling overrides.
        if "thinking" not in extras:
            if request.temperature is not None:
                body["temperature"] = request.temperature
            if request.top_p is not None:
                body["top_p"] = request.top_p
        tools = convert_tools(request.tools, self.family, self.adapter)
        if tools:
            body["tools"] = tools
        if extras:
            body["extra_body"] = extras
        return body

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Send *request* and yield normalized events."""
        token = request.cancellation
        parser = ContentBlockStreamParser(provider=self.provider)
        try:
            client = self._get_client()
            body = self.build_body(request)
            logger.debug(
                "anthropic request model=%s messages=%d stream=%s",
                request.model,
                len(body["messages"]),
                request.streaming,
            )
            response = await token.race(client.messages.create(**body))

            if not request.streaming:
                for event in _replay_message(parser, to_plain(response)):
                    yield event
                return

            try:
                async for raw in token.iterate(response):
                    for event in parser.feed_event(to_plain(raw)):
                        yield event
                    if parser.done:
                        break
            finally:
                await close_stream(response)
            for event in parser.finish():
                yield event
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise classify_error(e, provider=self.provider) from e

    async def aclose(self) -> None:
        """Close underlying async client resources."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.close()


def _replay_message(
    parser: ContentBlockStreamParser, message: dict[str, Any]
) -> list[StreamEvent]:
    """Feed a complete (non-streamed) message through the block parser."""
    events: list[StreamEvent] = []
    for index, block in enumerate(message.get("content") or []):
        events.extend(
            parser.feed_event(
                {"type": "content_block_start", "index": index, "content_block": block}
            )
        )
        events.extend(parser.feed_event({"type": "content_block_stop", "index": index}))
    usage = message.get("usage")
    if isinstance(usage, dict):
        events.extend(parser.feed_event({"type": "message_delta", "usage": usage}))
    events.extend(parser.feed_event({"type": "message_stop"}))
    return events

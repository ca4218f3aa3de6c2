"""OpenAI driver (Chat Completions, streamed)."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from parley.adapters.config import ProtocolFamily
from parley.adapters.messages import convert_messages
from parley.adapters.tools import convert_tools
from parley.errors import APIError
from parley.providers._errors import classify_error
from parley.providers._utils import (
    close_stream,
    message_paths,
    template_extras,
    to_plain,
)
from parley.streaming.parser import SSEStreamParser

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from parley.config import LLMConfig
    from parley.types import ChatRequest, StreamEvent

logger = logging.getLogger(__name__)


class OpenAIDriver:
    """OpenAI Chat Completions driver.

    Also serves OpenAI-compatible hosts through ``base_url``.
    """

    family = ProtocolFamily.OPENAI

    def __init__(self, config: LLMConfig) -> None:
        """Capture connection settings; the SDK client is created lazily."""
        self.provider = config.provider
        self.api_key = config.api_key
        self.base_url = config.endpoint_base
        self.timeout = config.effective_timeout
        self.adapter = config.adapter
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazily initialize and return the OpenAI client."""
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as e:
                raise APIError(
                    "openai package not installed",
                    hint="uv pip install openai",
                ) from e
            self._client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
                max_retries=0,
                default_headers=self.adapter.request.headers or None,
            )
        return self._client

    def build_body(self, request: ChatRequest) -> dict[str, Any]:
        """Build ``chat.completions.create`` keyword arguments."""
        converted = convert_messages(
            request.messages, request.system_prompt, self.family, self.adapter
        )
        body: dict[str, Any] = {
            "model": request.model,
            "messages": converted.messages,
            "stream": request.streaming,
        }
        if request.max_tokens is not None:
            body["max_tokens"] = request.max_tokens
        if request.temperature is not None:
            body["temperature"] = request.temperature
        if request.top_p is not None:
            body["top_p"] = request.top_p
        tools = convert_tools(request.tools, self.family, self.adapter)
        if tools:
            body["tools"] = tools
        if request.streaming:
            body["stream_options"] = {"include_usage": True}

        extra_body = template_extras(self.adapter.request.body_template)
        if converted.system:
            extra_body[self.adapter.message_format.system_parameter_name] = (
                converted.system
            )
        if extra_body:
            body["extra_body"] = extra_body
        return body

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Send *request* and yield normalized events."""
        token = request.cancellation
        try:
            client = self._get_client()
            body = self.build_body(request)
            logger.debug(
                "openai request model=%s messages=%d stream=%s",
                request.model,
                len(body["messages"]),
                request.streaming,
            )
            response = await token.race(client.chat.completions.create(**body))

            if not request.streaming:
                parser = SSEStreamParser(
                    message_paths(self.adapter.response), provider=self.provider
                )
                for event in parser.feed_chunk(to_plain(response)):
                    yield event
                for event in parser.finish():
                    yield event
                return

            parser = SSEStreamParser(self.adapter.response, provider=self.provider)
            try:
                async for chunk in token.iterate(response):
                    for event in parser.feed_chunk(to_plain(chunk)):
                        yield event
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

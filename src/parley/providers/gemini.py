"""Gemini driver (google-genai, function declarations)."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from parley.adapters.config import ProtocolFamily
from parley.adapters.messages import convert_messages
from parley.adapters.tools import convert_tools
from parley.errors import APIError
from parley.providers._errors import classify_error
from parley.providers._utils import template_extras, to_plain
from parley.streaming.parser import PartsStreamParser

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from parley.config import LLMConfig
    from parley.types import ChatRequest, StreamEvent

logger = logging.getLogger(__name__)


class GeminiDriver:
    """Google Gemini API driver."""

    family = ProtocolFamily.GEMINI

    def __init__(self, config: LLMConfig) -> None:
        """Capture connection settings; the SDK client is created lazily."""
        self.provider = config.provider
        self.api_key = config.api_key
        self.base_url = config.base_url
        self.timeout = config.effective_timeout
        self.adapter = config.adapter
        self._client: Any = None

    def _get_client(self) -> Any:
        """Lazy-initialize the Gemini client."""
        if self._client is None:
            try:
                from google import genai
                from google.genai import types
            except ImportError as e:
                raise APIError(
                    "google-genai package not installed",
                    hint="uv pip install google-genai",
                ) from e

            http_options: dict[str, Any] = {"timeout": int(self.timeout * 1000)}
            if self.base_url:
                http_options["base_url"] = self.base_url
            if self.adapter.request.headers:
                http_options["headers"] = dict(self.adapter.request.headers)
            self._client = genai.Client(
                api_key=self.api_key, http_options=types.HttpOptions(**http_options)
            )
        return self._client

    def build_request(self, request: ChatRequest) -> dict[str, Any]:
        """Build ``generate_content`` keyword arguments."""
        from google.genai import types

        converted = convert_messages(
            request.messages, request.system_prompt, self.family, self.adapter
        )
        config_kwargs: dict[str, Any] = {}
        if converted.system:
            config_kwargs["system_instruction"] = converted.system
        if request.max_tokens is not None:
            config_kwargs["max_output_tokens"] = request.max_tokens
        if request.temperature is not None:
            config_kwargs["temperature"] = request.temperature
        if request.top_p is not None:
            config_kwargs["top_p"] = request.top_p
        tools = convert_tools(request.tools, self.family, self.adapter)
        if tools:
            config_kwargs["tools"] = tools
        config_kwargs.update(template_extras(self.adapter.request.body_template))

        return {
            "model": request.model,
            "contents": converted.messages,
            "config": types.GenerateContentConfig(**config_kwargs),
        }

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Send *request* and yield normalized events."""
        token = request.cancellation
        parser = PartsStreamParser(provider=self.provider)
        try:
            client = self._get_client()
            kwargs = self.build_request(request)
            logger.debug(
                "gemini request model=%s contents=%d stream=%s",
                request.model,
                len(kwargs["contents"]),
                request.streaming,
            )
            if not request.streaming:
                response = await token.race(
                    client.aio.models.generate_content(**kwargs)
                )
                for event in parser.feed_chunk(to_plain(response)):
                    yield event
            else:
                chunks = await token.race(
                    client.aio.models.generate_content_stream(**kwargs)
                )
                async for chunk in token.iterate(chunks):
                    for event in parser.feed_chunk(to_plain(chunk)):
                        yield event
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
        await client.aio.aclose()

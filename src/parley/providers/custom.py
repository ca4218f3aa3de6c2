"""Custom HTTP driver: any vendor described by an ``AdapterConfig``."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import TYPE_CHECKING, Any

import httpx

from parley._http import error_for_status, is_success
from parley.adapters.config import ProtocolFamily
from parley.adapters.messages import convert_messages
from parley.adapters.tools import convert_tools
from parley.errors import APIError
from parley.providers._errors import classify_error
from parley.providers._utils import (
    RESERVED_BODY_KEYS,
    drop_none,
    message_paths,
    template_extras,
)
from parley.streaming.parser import SSEStreamParser

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from parley.config import LLMConfig
    from parley.types import ChatRequest, StreamEvent

logger = logging.getLogger(__name__)

# Native DashScope bodies nest the conversation under these keys.
_NESTED_BODY_KEYS = RESERVED_BODY_KEYS | {"input", "parameters"}


class CustomHTTPDriver:
    """Configuration-driven driver over plain HTTP and SSE."""

    family = ProtocolFamily.CUSTOM

    def __init__(self, config: LLMConfig, *, transport: Any = None) -> None:
        """Capture connection settings; *transport* is forwarded to httpx."""
        self.provider = config.provider
        self.api_key = config.api_key
        self.base_url = config.endpoint_base or ""
        self.timeout = config.effective_timeout
        self.adapter = config.adapter
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        """Lazily create the pooled HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout),
                transport=self._transport,
            )
        return self._client

    def url_for(self, model: str) -> str:
        """Join the base URL and the (possibly model-templated) endpoint."""
        endpoint = self.adapter.request.endpoint.replace("{model}", model)
        if endpoint.startswith(("http://", "https://")):
            return endpoint
        if endpoint.startswith((":", "?")):
            return self.base_url + endpoint
        return f"{self.base_url.rstrip('/')}/{endpoint.lstrip('/')}"

    def build_headers(self, *, streaming: bool) -> dict[str, str]:
        """Content type, auth, and template headers (template wins)."""
        headers = {"Content-Type": "application/json"}
        if streaming:
            headers["Accept"] = "text/event-stream"
        headers.update(self.adapter.auth.headers_for(self.api_key))
        headers.update(self.adapter.request.headers)
        return headers

    def build_body(self, request: ChatRequest) -> dict[str, Any]:
        """Build the JSON body from the template and the request."""
        converted = convert_messages(
            request.messages, request.system_prompt, self.family, self.adapter
        )
        tools = convert_tools(request.tools, self.family, self.adapter) or None
        template = self.adapter.request.body_template
        system_field = self.adapter.message_format.system_parameter_name

        if isinstance(template.get("input"), dict):
            input_body: dict[str, Any] = {
                **template["input"],
                "messages": converted.messages,
            }
            if converted.system:
                input_body[system_field] = converted.system
            parameters = drop_none(
                {
                    **(template.get("parameters") or {}),
                    "max_tokens": request.max_tokens,
                    "incremental_output": request.streaming,
                    "temperature": request.temperature,
                    "top_p": request.top_p,
                    "tools": tools,
                }
            )
            return {
                **template_extras(template, _NESTED_BODY_KEYS),
                "model": request.model,
                "input": input_body,
                "parameters": parameters,
            }

        body = {
            **template_extras(template),
            **drop_none(
                {
                    "model": request.model,
                    "messages": converted.messages,
                    "stream": request.streaming,
                    "max_tokens": request.max_tokens,
                    "temperature": request.temperature,
                    "top_p": request.top_p,
                    "tools": tools,
                }
            ),
        }
        if converted.system:
            body[system_field] = converted.system
        return body

    async def stream(self, request: ChatRequest) -> AsyncIterator[StreamEvent]:
        """Send *request* and yield normalized events."""
        token = request.cancellation
        try:
            client = self._get_client()
            http_request = client.build_request(
                self.adapter.request.method,
                self.url_for(request.model),
                headers=self.build_headers(streaming=request.streaming),
                json=self.build_body(request),
            )
            logger.debug(
                "%s request url=%s stream=%s",
                self.provider,
                http_request.url,
                request.streaming,
            )
            response = await token.race(client.send(http_request, stream=True))
            try:
                if not is_success(response.status_code):
                    raise await self._http_error(response)

                if not request.streaming:
                    await token.race(response.aread())
                    parser = SSEStreamParser(
                        message_paths(self.adapter.response), provider=self.provider
                    )
                    for event in parser.feed_chunk(response.json()):
                        yield event
                    for event in parser.finish():
                        yield event
                    return

                parser = SSEStreamParser(self.adapter.response, provider=self.provider)
                async for line in token.iterate(response.aiter_lines()):
                    for event in parser.feed_line(line):
                        yield event
                    if parser.done:
                        break
                for event in parser.finish():
                    yield event
            finally:
                await response.aclose()
        except asyncio.CancelledError:
            raise
        except APIError:
            raise
        except Exception as e:
            raise classify_error(e, provider=self.provider) from e

    async def _http_error(self, response: httpx.Response) -> APIError:
        """Read the error body and classify it by status."""
        await response.aread()
        text = response.text
        try:
            payload: Any = json.loads(text)
        except json.JSONDecodeError:
            payload = None
        detail = text
        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and isinstance(error.get("message"), str):
                detail = error["message"]
            elif isinstance(payload.get("message"), str):
                detail = payload["message"]
        retry_after: float | None = None
        raw_retry = response.headers.get("Retry-After")
        if raw_retry and raw_retry.strip().replace(".", "", 1).isdigit():
            retry_after = float(raw_retry)
        return error_for_status(
            response.status_code,
            f"HTTP {response.status_code}: {text}",
            provider=self.provider,
            retry_after_s=retry_after,
            body=detail,
        )

    async def aclose(self) -> None:
        """Close the pooled HTTP client."""
        client = self._client
        if client is None:
            return
        self._client = None
        await client.aclose()

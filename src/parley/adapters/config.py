"""Declarative adapter configuration and the built-in presets.

Adapter configs describe a provider's wire dialect: where to send requests,
how to shape messages and tools, and which field paths carry text, reasoning,
tool calls, and usage in a streamed response. They are validated once with
Pydantic and are read-only afterwards, so a single instance is shared by
every concurrent request for that provider.

Stored configs may use camelCase keys (``contentPath``) or snake_case keys
(``content_path``) interchangeably.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class ProtocolFamily(str, Enum):
    """The closed set of wire dialects a driver can speak."""

    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    CUSTOM = "custom"


class _Frozen(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class RequestTemplate(_Frozen):
    """Where and how requests are sent."""

    endpoint: str = "/chat/completions"
    method: Literal["POST", "PUT"] = "POST"
    headers: dict[str, str] = Field(default_factory=dict)
    body_template: dict[str, Any] = Field(default_factory=dict)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method(cls, v: Any) -> Any:
        """Accept lowercase HTTP methods."""
        if isinstance(v, str):
            return v.strip().upper()
        return v


class ResponseFieldPaths(_Frozen):
    """Field paths into each decoded stream chunk."""

    content_path: str = "delta.content"
    reasoning_path: str | None = None
    tool_call_array_path: str = "delta.tool_calls"
    tool_id_path: str = "id"
    tool_name_path: str = "function.name"
    tool_args_path: str = "function.arguments"
    tool_index_path: str = "index"
    usage_path: str = "usage"
    args_are_object: bool = False
    done_marker: str = "[DONE]"
    data_line_prefix: str = "data:"


class MessageFormat(_Frozen):
    """How conversation messages are laid out on the wire."""

    system_message_mode: Literal["inline", "parameter", "merge_into_first_user"] = (
        "inline"
    )
    system_parameter_name: str = "system"
    tool_result_role: str = "tool"
    tool_result_id_field: str = "tool_call_id"
    tool_result_wrapper_tag: str | None = None
    assistant_tool_call_field: str = "tool_calls"

    @field_validator("system_message_mode", mode="before")
    @classmethod
    def normalize_mode(cls, v: Any) -> Any:
        """Accept camelCase and legacy spellings of the system mode."""
        if isinstance(v, str):
            return {
                "message": "inline",
                "mergeIntoFirstUser": "merge_into_first_user",
                "first-user": "merge_into_first_user",
            }.get(v, v)
        return v


class ToolFormat(_Frozen):
    """How tool definitions are wrapped."""

    wrap_mode: Literal["none", "function", "tool"] = "function"
    wrap_field: str = "function"
    parameter_field_name: Literal["parameters", "input_schema", "schema"] = (
        "parameters"
    )
    include_type_tag: bool = True


class AuthConfig(_Frozen):
    """How the API key is attached to requests."""

    type: Literal["bearer", "header", "api-key", "none"] = "bearer"
    header_name: str = "x-api-key"
    prefix: str = "Bearer "

    @property
    def requires_key(self) -> bool:
        """Whether requests need an API key at all."""
        return self.type != "none"

    def headers_for(self, api_key: str | None) -> dict[str, str]:
        """Return the auth headers for *api_key*."""
        if self.type == "none" or not api_key:
            return {}
        if self.type in ("header", "api-key"):
            return {self.header_name: api_key}
        return {"Authorization": f"{self.prefix}{api_key}"}


class AdapterConfig(_Frozen):
    """A provider's complete wire dialect."""

    id: str
    name: str = ""
    protocol: ProtocolFamily = ProtocolFamily.CUSTOM
    default_base_url: str | None = None
    request: RequestTemplate = Field(default_factory=RequestTemplate)
    response: ResponseFieldPaths = Field(default_factory=ResponseFieldPaths)
    message_format: MessageFormat = Field(default_factory=MessageFormat)
    tool_format: ToolFormat = Field(default_factory=ToolFormat)
    auth: AuthConfig = Field(default_factory=AuthConfig)

    @property
    def streaming(self) -> bool:
        """Streaming unless the body template sets ``stream: false``."""
        return self.request.body_template.get("stream") is not False


# --- Built-in presets ---

OPENAI_ADAPTER = AdapterConfig(
    id="openai",
    name="OpenAI",
    protocol=ProtocolFamily.OPENAI,
    default_base_url="https://api.openai.com/v1",
    request=RequestTemplate(body_template={"stream": True}),
)

ANTHROPIC_ADAPTER = AdapterConfig(
    id="anthropic",
    name="Anthropic",
    protocol=ProtocolFamily.ANTHROPIC,
    default_base_url="https://api.anthropic.com",
    request=RequestTemplate(
        endpoint="/v1/messages",
        headers={"anthropic-version": "2023-06-01"},
        body_template={"stream": True},
    ),
    response=ResponseFieldPaths(
        content_path="delta.text",
        reasoning_path="delta.thinking",
        tool_call_array_path="content_block",
        tool_args_path="delta.partial_json",
        tool_name_path="name",
        done_marker="message_stop",
    ),
    message_format=MessageFormat(
        system_message_mode="parameter",
        tool_result_role="user",
        tool_result_id_field="tool_use_id",
        assistant_tool_call_field="content",
    ),
    tool_format=ToolFormat(
        wrap_mode="none", parameter_field_name="input_schema", include_type_tag=False
    ),
    auth=AuthConfig(type="header", header_name="x-api-key"),
)

GEMINI_ADAPTER = AdapterConfig(
    id="gemini",
    name="Google Gemini",
    protocol=ProtocolFamily.GEMINI,
    request=RequestTemplate(
        endpoint="/models/{model}:streamGenerateContent",
        body_template={"stream": True},
    ),
    response=ResponseFieldPaths(
        content_path="candidates.0.content.parts.0.text",
        tool_call_array_path="candidates.0.content.parts",
        tool_id_path="function_call.id",
        tool_name_path="function_call.name",
        tool_args_path="function_call.args",
        usage_path="usage_metadata",
        args_are_object=True,
        done_marker="",
    ),
    message_format=MessageFormat(
        system_message_mode="parameter",
        system_parameter_name="system_instruction",
        tool_result_role="user",
    ),
    tool_format=ToolFormat(wrap_mode="none", include_type_tag=False),
    auth=AuthConfig(type="header", header_name="x-goog-api-key"),
)

DEEPSEEK_ADAPTER = AdapterConfig(
    id="deepseek",
    name="DeepSeek",
    default_base_url="https://api.deepseek.com",
    request=RequestTemplate(body_template={"stream": True}),
    response=ResponseFieldPaths(reasoning_path="delta.reasoning_content"),
)

ZHIPU_ADAPTER = AdapterConfig(
    id="zhipu",
    name="Zhipu GLM",
    default_base_url="https://open.bigmodel.cn/api/paas/v4",
    request=RequestTemplate(body_template={"stream": True, "tool_choice": "auto"}),
    response=ResponseFieldPaths(reasoning_path="delta.reasoning_content"),
)

DASHSCOPE_ADAPTER = AdapterConfig(
    id="dashscope",
    name="Alibaba DashScope",
    default_base_url="https://dashscope.aliyuncs.com/api/v1",
    request=RequestTemplate(
        endpoint="/services/aigc/text-generation/generation",
        headers={"X-DashScope-SSE": "enable"},
        body_template={
            "stream": True,
            "input": {},
            "parameters": {"result_format": "message"},
        },
    ),
    response=ResponseFieldPaths(
        content_path="output.choices.0.message.content",
        reasoning_path="output.choices.0.message.reasoning_content",
        tool_call_array_path="output.choices.0.message.tool_calls",
        done_marker="",
    ),
    message_format=MessageFormat(system_message_mode="parameter"),
)

OLLAMA_ADAPTER = AdapterConfig(
    id="ollama",
    name="Ollama",
    default_base_url="http://localhost:11434/v1",
    request=RequestTemplate(body_template={"stream": True}),
    auth=AuthConfig(type="none"),
)

BUILTIN_ADAPTERS: dict[str, AdapterConfig] = {
    a.id: a
    for a in (
        OPENAI_ADAPTER,
        ANTHROPIC_ADAPTER,
        GEMINI_ADAPTER,
        DEEPSEEK_ADAPTER,
        ZHIPU_ADAPTER,
        DASHSCOPE_ADAPTER,
        OLLAMA_ADAPTER,
    )
}


def get_builtin_adapter(provider: str) -> AdapterConfig | None:
    """Return the built-in preset for *provider*, if one exists."""
    return BUILTIN_ADAPTERS.get(provider.strip().lower())

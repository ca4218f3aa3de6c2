"""Stateless translators between the unified model and wire dialects."""

from .config import (
    BUILTIN_ADAPTERS,
    AdapterConfig,
    AuthConfig,
    MessageFormat,
    ProtocolFamily,
    RequestTemplate,
    ResponseFieldPaths,
    ToolFormat,
    get_builtin_adapter,
)
from .messages import ConvertedMessages, convert_messages
from .paths import parse_path, resolve
from .tools import convert_tools, parse_tool_arguments

__all__ = [
    "BUILTIN_ADAPTERS",
    "AdapterConfig",
    "AuthConfig",
    "ConvertedMessages",
    "MessageFormat",
    "ProtocolFamily",
    "RequestTemplate",
    "ResponseFieldPaths",
    "ToolFormat",
    "convert_messages",
    "convert_tools",
    "get_builtin_adapter",
    "parse_path",
    "parse_tool_arguments",
    "resolve",
]

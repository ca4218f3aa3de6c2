"""Protocol drivers, one per protocol family."""

from __future__ import annotations

from typing import TYPE_CHECKING

from .anthropic import AnthropicDriver
from .base import Driver, ProtocolFamily
from .custom import CustomHTTPDriver
from .gemini import GeminiDriver
from .openai import OpenAIDriver

if TYPE_CHECKING:
    from parley.config import LLMConfig

_DRIVERS: dict[ProtocolFamily, type] = {
    ProtocolFamily.OPENAI: OpenAIDriver,
    ProtocolFamily.ANTHROPIC: AnthropicDriver,
    ProtocolFamily.GEMINI: GeminiDriver,
    ProtocolFamily.CUSTOM: CustomHTTPDriver,
}


def create_driver(config: LLMConfig) -> Driver:
    """Build the driver for *config*'s protocol family."""
    driver: Driver = _DRIVERS[config.protocol](config)
    return driver


__all__ = [
    "AnthropicDriver",
    "CustomHTTPDriver",
    "Driver",
    "GeminiDriver",
    "OpenAIDriver",
    "ProtocolFamily",
    "create_driver",
]

"""Pytest configuration and fixtures.

Provides environment isolation, logging configuration, marker handling,
automatic API test skipping, and shared test doubles. Fixtures here are
autouse unless noted.
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from dataclasses import dataclass, field
import logging
import os
from typing import Any

import pytest

from parley.adapters.config import ProtocolFamily
from parley.config import LLMConfig

# =============================================================================
# Test Doubles
# =============================================================================


@dataclass
class RecordingListener:
    """Listener test double that records every callback in order."""

    calls: list[tuple[str, tuple[Any, ...]]] = field(default_factory=list)

    def _record(self, name: str, *args: Any) -> None:
        self.calls.append((name, args))

    def on_text(self, text: str) -> None:
        self._record("text", text)

    def on_reasoning(self, text: str) -> None:
        self._record("reasoning", text)

    def on_tool_call_start(self, call_id: str, name: str) -> None:
        self._record("tool_start", call_id, name)

    def on_tool_call_delta(self, call_id: str, fragment: Any) -> None:
        self._record("tool_delta", call_id, fragment)

    def on_tool_call_end(self, tool_call: Any) -> None:
        self._record("tool_end", tool_call)

    def on_complete(self, result: Any) -> None:
        self._record("complete", result)

    def on_error(self, error: Any) -> None:
        self._record("error", error)

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.calls]

    @property
    def terminal(self) -> list[tuple[str, tuple[Any, ...]]]:
        return [c for c in self.calls if c[0] in ("complete", "error")]

    @property
    def text(self) -> str:
        return "".join(args[0] for name, args in self.calls if name == "text")


@dataclass
class ScriptedDriver:
    """Driver test double that replays a fixed list of events.

    When ``gate`` is set, the stream pauses after ``pause_after`` events until
    the gate opens (racing the request's cancellation token). ``error`` is
    raised after all events have been yielded.
    """

    events: list[Any] = field(default_factory=list)
    error: BaseException | None = None
    gate: asyncio.Event | None = None
    pause_after: int = 0
    family: ProtocolFamily = ProtocolFamily.OPENAI
    requests: list[Any] = field(default_factory=list)
    closed: bool = False
    stream_closed: bool = False

    async def stream(self, request: Any):
        self.requests.append(request)
        token = request.cancellation
        try:
            for i, event in enumerate(self.events):
                if self.gate is not None and i == self.pause_after:
                    await token.race(self.gate.wait())
                token.raise_if_cancelled()
                yield event
            if self.error is not None:
                raise self.error
        finally:
            self.stream_closed = True

    async def aclose(self) -> None:
        self.closed = True


def make_config(provider: str = "openai", **kwargs: Any) -> LLMConfig:
    """Build an ``LLMConfig`` with a dummy key unless one is given."""
    kwargs.setdefault("model", "test-model")
    kwargs.setdefault("api_key", "sk-test")
    return LLMConfig(provider=provider, **kwargs)


# =============================================================================
# Environment Isolation (Autouse)
# =============================================================================


@pytest.fixture(autouse=True)
def block_dotenv(request, monkeypatch):
    """Prevent python-dotenv from loading project .env files during tests.

    Opt-out: @pytest.mark.allow_dotenv
    """
    if request.node.get_closest_marker("allow_dotenv"):
        return
    with suppress(Exception):
        monkeypatch.setattr(
            "dotenv.load_dotenv", lambda *_args, **_kwargs: False, raising=False
        )


_PROVIDER_ENV_PREFIXES = (
    "OPENAI_",
    "ANTHROPIC_",
    "GEMINI_",
    "GOOGLE_",
    "DEEPSEEK_",
    "ZHIPU_",
    "DASHSCOPE_",
)


@pytest.fixture(autouse=True)
def isolate_provider_env(request, monkeypatch):
    """Ensure a clean provider environment for each test.

    Clears provider API key env vars to prevent test pollution.
    Opt-out: @pytest.mark.allow_env_pollution or @pytest.mark.api
    """
    if request.node.get_closest_marker("allow_env_pollution") or (
        "api" in request.node.keywords
    ):
        return

    for key in list(os.environ.keys()):
        if key.startswith(_PROVIDER_ENV_PREFIXES) or key.endswith("_API_KEY"):
            monkeypatch.delenv(key, raising=False)


# =============================================================================
# Logging
# =============================================================================


@pytest.fixture(scope="session", autouse=True)
def quiet_noisy_libraries():
    """Suppress noisy third-party loggers."""
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


# =============================================================================
# Pytest Hooks
# =============================================================================

API_TESTS_REASON = "API tests require ENABLE_API_TESTS=1"


def _api_tests_enabled() -> bool:
    return bool(os.getenv("ENABLE_API_TESTS"))


def pytest_collection_modifyitems(items):
    """Automatically skip API tests when not explicitly enabled."""
    if _api_tests_enabled():
        return
    skip_api = pytest.mark.skip(reason=API_TESTS_REASON)
    for item in items:
        if "api" in item.keywords:
            item.add_marker(skip_api)


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def listener() -> RecordingListener:
    """A fresh recording listener."""
    return RecordingListener()


@pytest.fixture
def openai_api_key():
    """Return OPENAI_API_KEY or skip the test if unavailable."""
    key = os.getenv("OPENAI_API_KEY")
    if not key:
        pytest.skip("OPENAI_API_KEY not set")
    return key

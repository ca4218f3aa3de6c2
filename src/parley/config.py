"""Configuration: frozen per-call ``LLMConfig`` with env-resolved credentials."""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import json
import os

from dotenv import load_dotenv

from parley.adapters.config import AdapterConfig, ProtocolFamily, get_builtin_adapter
from parley.errors import ConfigurationError

load_dotenv()

DEFAULT_MAX_TOKENS = 8192
DEFAULT_TIMEOUT_S = 120.0

# Provider-specific API key environment variable names
_API_KEY_ENV_VARS: dict[str, tuple[str, ...]] = {
    "openai": ("OPENAI_API_KEY",),
    "anthropic": ("ANTHROPIC_API_KEY",),
    "gemini": ("GEMINI_API_KEY", "GOOGLE_API_KEY"),
    "deepseek": ("DEEPSEEK_API_KEY",),
    "zhipu": ("ZHIPU_API_KEY",),
    "dashscope": ("DASHSCOPE_API_KEY",),
}


def api_key_env_vars(provider: str) -> tuple[str, ...]:
    """Environment variables consulted for *provider*'s API key, in order."""
    normalized = provider.strip().lower()
    default = (f"{normalized.upper().replace('-', '_')}_API_KEY",)
    return _API_KEY_ENV_VARS.get(normalized, default)


@dataclass(frozen=True)
class LLMConfig:
    """Immutable configuration for one chat call.

    Built-in providers (``openai``, ``anthropic``, ``gemini`` and the vendor
    presets) need only a model; anything else needs an ``adapter_config``
    describing its wire dialect. API keys are auto-resolved from standard
    environment variables.

    Example:
        config = LLMConfig(provider="anthropic", model="claude-sonnet-4-5")
        # API key is automatically resolved from ANTHROPIC_API_KEY
    """

    provider: str
    model: str
    #: Auto-resolved from ``<PROVIDER>_API_KEY`` when *None*.
    api_key: str | None = None
    base_url: str | None = None
    max_tokens: int | None = None
    temperature: float | None = None
    top_p: float | None = None
    #: Seconds; defaults to 120.
    timeout: float | None = None
    adapter_config: AdapterConfig | None = None

    def __post_init__(self) -> None:
        """Resolve the adapter and API key, then validate."""
        if not self.provider or not self.provider.strip():
            raise ConfigurationError("provider must be non-empty")
        if not self.model or not self.model.strip():
            raise ConfigurationError(
                "model must be non-empty",
                hint="Parley does not choose a model; pass model=...",
            )
        if self.adapter_config is None and get_builtin_adapter(self.provider) is None:
            raise ConfigurationError(
                f"Unknown provider: {self.provider!r}",
                hint="Pass adapter_config=AdapterConfig(...) describing its protocol.",
            )
        if self.base_url is not None:
            base_url = self.base_url.strip().rstrip("/") or None
            object.__setattr__(self, "base_url", base_url)

        if self.max_tokens is not None and self.max_tokens < 1:
            raise ConfigurationError(f"max_tokens must be ≥ 1, got {self.max_tokens}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(
                f"timeout must be > 0, got {self.timeout}",
                hint="timeout is in seconds.",
            )
        if self.temperature is not None and not 0 <= self.temperature <= 2:
            raise ConfigurationError(
                f"temperature must be within [0, 2], got {self.temperature}"
            )
        if self.top_p is not None and not 0 <= self.top_p <= 1:
            raise ConfigurationError(f"top_p must be within [0, 1], got {self.top_p}")

        adapter = self.adapter
        if adapter.protocol is ProtocolFamily.CUSTOM and not self.endpoint_base:
            raise ConfigurationError(
                f"base_url required for custom provider {self.provider!r}",
                hint="Set base_url=... or adapter_config.default_base_url.",
            )

        # Auto-resolve API key from environment if not provided
        if self.api_key is None:
            for env_var in api_key_env_vars(self.provider):
                resolved_key = os.environ.get(env_var)
                if resolved_key:
                    object.__setattr__(self, "api_key", resolved_key)
                    break

        if adapter.auth.requires_key and not self.api_key:
            env_var = api_key_env_vars(self.provider)[0]
            raise ConfigurationError(
                f"API key required for {self.provider}",
                hint=f"Set {env_var} environment variable or pass api_key=...",
            )

    @property
    def adapter(self) -> AdapterConfig:
        """The explicit adapter config, else the provider's built-in preset."""
        if self.adapter_config is not None:
            return self.adapter_config
        preset = get_builtin_adapter(self.provider)
        assert preset is not None  # checked in __post_init__
        return preset

    @property
    def protocol(self) -> ProtocolFamily:
        """Wire dialect used for this provider."""
        return self.adapter.protocol

    @property
    def endpoint_base(self) -> str | None:
        """Explicit base URL, else the adapter's default."""
        return self.base_url or self.adapter.default_base_url

    @property
    def effective_max_tokens(self) -> int:
        """``max_tokens`` with the library default applied."""
        return self.max_tokens if self.max_tokens is not None else DEFAULT_MAX_TOKENS

    @property
    def effective_timeout(self) -> float:
        """``timeout`` in seconds with the library default applied."""
        return self.timeout if self.timeout is not None else DEFAULT_TIMEOUT_S

    @property
    def cache_key(self) -> str:
        """Driver cache key: ``provider:protocol:base_url``."""
        return f"{self.provider}:{self.protocol.value}:{self.base_url or 'default'}"

    @property
    def fingerprint(self) -> str:
        """Digest over the fields that require rebuilding a cached driver.

        Drivers hold their adapter config, so the whole adapter is hashed.
        """
        adapter = self.adapter
        payload = {
            "provider": self.provider,
            "api_key": self.api_key,
            "base_url": self.base_url,
            "timeout": self.effective_timeout,
            "protocol": self.protocol.value,
            "adapter": adapter.model_dump(mode="json"),
        }
        raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:32]

    def __str__(self) -> str:
        """Return a redacted, developer-friendly representation."""
        return (
            f"LLMConfig(provider={self.provider!r}, model={self.model!r}, "
            f"api_key={'[REDACTED]' if self.api_key else None}, "
            f"base_url={self.base_url!r}, protocol={self.protocol.value!r})"
        )

    __repr__ = __str__

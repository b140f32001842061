"""Model provider registry and ``provider:model`` parsing."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Any, Optional

from errors import ConfigError

try:
    import openai
except Exception:  # pragma: no cover
    openai = None  # type: ignore

DASHSCOPE = "dashscope"


@dataclass(frozen=True)
class ProviderInfo:
    env_var: str
    base_url: Optional[str] = None
    native_sdk: bool = False


# OpenAI-compatible endpoints are driven through the openai SDK
PROVIDERS: dict[str, ProviderInfo] = {
    "groq": ProviderInfo("GROQ_API_KEY", "https://api.groq.com/openai/v1"),
    "openai": ProviderInfo("OPENAI_API_KEY"),
    "anthropic": ProviderInfo("ANTHROPIC_API_KEY", "https://api.anthropic.com/v1/"),
    DASHSCOPE: ProviderInfo("DASHSCOPE_API_KEY", native_sdk=True),
}


@dataclass(frozen=True)
class ModelSpec:
    provider: str
    name: str

    def __str__(self) -> str:
        return f"{self.provider}:{self.name}"


def parse_model_spec(value: str) -> ModelSpec:
    """Split ``provider:model``; the model part may itself contain colons or slashes."""
    provider, sep, name = value.strip().partition(":")
    provider = provider.strip().lower()
    name = name.strip()
    if not sep or not provider or not name:
        raise ConfigError(f"Model must look like provider:model, got {value!r}")
    if provider not in PROVIDERS:
        known = ", ".join(sorted(PROVIDERS))
        raise ConfigError(f"Unknown provider {provider!r} (expected one of: {known})")
    return ModelSpec(provider=provider, name=name)


def get_api_key(provider: str) -> str:
    return os.getenv(PROVIDERS[provider].env_var, "")


def require_api_key(provider: str) -> str:
    key = get_api_key(provider)
    if not key:
        raise ConfigError(f"{PROVIDERS[provider].env_var} is not set")
    return key


def create_openai_client(provider: str, api_key: Optional[str] = None) -> Any:
    """Build an OpenAI SDK client pointed at the provider's endpoint."""
    key = api_key or require_api_key(provider)
    if openai is None:
        raise ConfigError("openai is not installed")
    return openai.OpenAI(api_key=key, base_url=PROVIDERS[provider].base_url)

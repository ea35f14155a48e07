"""
Static LLM provider table.

Each provider names its endpoint, its wire style and whether it needs an
API key. Free-tier models (OpenRouter ``:free`` suffix) are the only
billable ones: they draw on the shared daily quota.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from first_record.shared.exceptions import ConfigurationError, InvalidParameterError

ApiStyle = Literal["ollama", "openai", "anthropic"]


@dataclass(frozen=True)
class ProviderSpec:
    name: str
    base_url: str
    api_style: ApiStyle
    requires_key: bool = True
    free_tier_suffix: str | None = None
    default_model: str = ""

    def is_free_tier(self, model: str) -> bool:
        return bool(self.free_tier_suffix) and model.endswith(self.free_tier_suffix)


PROVIDERS: dict[str, ProviderSpec] = {
    "ollama": ProviderSpec(
        name="ollama",
        base_url="http://localhost:11434",
        api_style="ollama",
        requires_key=False,
        default_model="qwen2.5:14b",
    ),
    "openrouter": ProviderSpec(
        name="openrouter",
        base_url="https://openrouter.ai/api/v1",
        api_style="openai",
        free_tier_suffix=":free",
        default_model="meta-llama/llama-3.3-70b-instruct:free",
    ),
    "grok": ProviderSpec(
        name="grok",
        base_url="https://api.x.ai/v1",
        api_style="openai",
        default_model="grok-2-latest",
    ),
    "openai": ProviderSpec(
        name="openai",
        base_url="https://api.openai.com/v1",
        api_style="openai",
        default_model="gpt-4o-mini",
    ),
    "anthropic": ProviderSpec(
        name="anthropic",
        base_url="https://api.anthropic.com/v1",
        api_style="anthropic",
        default_model="claude-3-5-haiku-latest",
    ),
}


def get_provider(name: str) -> ProviderSpec:
    try:
        return PROVIDERS[name]
    except KeyError:
        raise InvalidParameterError("provider", name, f"one of {', '.join(sorted(PROVIDERS))}") from None


def validate_provider_table(table: dict[str, ProviderSpec] = PROVIDERS) -> None:
    """Fail fast on a malformed table. Called when the container is built."""
    for key, spec in table.items():
        if key != spec.name:
            raise ConfigurationError(f"Provider entry '{key}' is registered under name '{spec.name}'")
        if not spec.base_url.startswith(("http://", "https://")):
            raise ConfigurationError(f"Provider '{key}' has an invalid base URL: {spec.base_url!r}")
        if spec.free_tier_suffix is not None and not spec.free_tier_suffix:
            raise ConfigurationError(f"Provider '{key}' declares an empty free-tier suffix")

"""LLM provider access for the Korea-record classifier."""

from .client import LLMClient, parse_judgment
from .prompts import build_analysis_prompt
from .providers import PROVIDERS, ProviderSpec, get_provider, validate_provider_table

__all__ = [
    "PROVIDERS",
    "LLMClient",
    "ProviderSpec",
    "build_analysis_prompt",
    "get_provider",
    "parse_judgment",
    "validate_provider_table",
]

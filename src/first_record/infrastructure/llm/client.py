"""
LLM client for the Korea-record classifier.

Talks to the providers in ``providers.PROVIDERS`` over plain HTTP (httpx via
``BaseAPIClient``) and turns the model's answer into a ``Judgment``.
Quota accounting is not done here: the orchestrator reserves and records
usage around ``judge``.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Sequence
from typing import Any

from first_record.domain.entities import Judgment
from first_record.domain.ports import JudgeRequest
from first_record.infrastructure.llm.prompts import build_analysis_prompt
from first_record.infrastructure.llm.providers import PROVIDERS, ProviderSpec, get_provider
from first_record.infrastructure.sources.base_client import BaseAPIClient
from first_record.shared.async_utils import CircuitBreaker, async_retry
from first_record.shared.exceptions import ConfigurationError, ParseError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_TEMPERATURE = 0.1
DEFAULT_MAX_TOKENS = 4096
DEFAULT_TIMEOUT = 60.0
ANTHROPIC_VERSION = "2023-06-01"

# Field limits applied to parsed answers
MAX_LOCALITY = 500
MAX_COLLECTION_DATE = 100
MAX_SPECIMEN_INFO = 500
MAX_COLLECTOR = 200
MAX_QUOTES = 10
MAX_QUOTE_LENGTH = 1000
MAX_REASONING = 2000

DEFAULT_CONFIDENCE = 0.5
PARSE_FAILURE_CONFIDENCE = 0.3

_JSON_FENCE_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_ANY_FENCE_RE = re.compile(r"```\s*([\s\S]*?)\s*```")
_JSON_OBJECT_RE = re.compile(r"\{[\s\S]*\}")


class LLMClient(BaseAPIClient):
    """
    Multi-provider LLM client.

    Usage:
        client = LLMClient(api_key="sk-...")
        judgment = await client.judge(
            JudgeRequest(provider="openai", model="gpt-4o-mini"),
            text, "Fistularia petimba",
        )
    """

    _service_name = "LLM"
    _MAX_RETRIES = 1

    def __init__(
        self,
        api_key: str | None = None,
        base_urls: dict[str, str] | None = None,
        temperature: float = DEFAULT_TEMPERATURE,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = DEFAULT_TIMEOUT,
        **kwargs: Any,
    ):
        """
        Args:
            api_key: Default key for providers that need one (per-request keys win)
            base_urls: Per-provider endpoint overrides, e.g. {"ollama": OLLAMA_HOST}
            temperature: Sampling temperature
            max_tokens: Completion token cap
            timeout: Request timeout in seconds
        """
        self._api_key = api_key
        self._base_urls = {name: spec.base_url for name, spec in PROVIDERS.items()}
        self._base_urls.update({k: v.rstrip("/") for k, v in (base_urls or {}).items() if v})
        self._temperature = temperature
        self._max_tokens = max_tokens
        super().__init__(timeout=timeout, min_interval=0.0, **kwargs)
        # Breakers are per provider
        self._breakers = {name: CircuitBreaker(failure_threshold=10, recovery_timeout=60.0) for name in PROVIDERS}

    def is_billable(self, request: JudgeRequest) -> bool:
        """Only free-tier models count against the daily quota."""
        return get_provider(request.provider).is_free_tier(request.model)

    async def judge(
        self,
        request: JudgeRequest,
        text: str,
        species_name: str,
        synonyms: Sequence[str] = (),
    ) -> Judgment:
        prompt = build_analysis_prompt(text, species_name, synonyms)
        answer = await self.generate(request, prompt)
        return parse_judgment(answer, model_used=f"{request.provider}/{request.model}")

    @async_retry(max_attempts=3, base_delay=1.0)
    async def generate(self, request: JudgeRequest, prompt: str) -> str:
        """Single completion, retried with exponential backoff on transient failures."""
        spec = get_provider(request.provider)
        api_key = request.api_key or self._api_key
        if spec.requires_key and not api_key:
            raise ConfigurationError(f"{spec.name} API key is required")

        base_url = self._base_urls[spec.name]
        match spec.api_style:
            case "ollama":
                url, body, headers = self._ollama_call(base_url, request.model, prompt)
            case "anthropic":
                url, body, headers = self._anthropic_call(base_url, request.model, prompt, api_key or "")
            case _:
                url, body, headers = self._openai_call(spec, base_url, request.model, prompt, api_key or "")

        data = await self._make_request(
            url, method="POST", data=body, headers=headers, circuit_breaker=self._breakers[spec.name]
        )
        if data is None:
            raise UpstreamUnavailableError(spec.name, "no response from provider")
        if not isinstance(data, dict):
            raise ParseError("expected a JSON object", source=spec.name)
        return self._extract_text(spec, data)

    def _ollama_call(self, base_url: str, model: str, prompt: str) -> tuple[str, dict[str, Any], dict[str, str]]:
        body = {
            "model": model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self._temperature, "num_predict": self._max_tokens},
        }
        return f"{base_url}/api/generate", body, {}

    def _openai_call(
        self, spec: ProviderSpec, base_url: str, model: str, prompt: str, api_key: str
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        headers = {"Authorization": f"Bearer {api_key}"}
        if spec.name == "openrouter":
            headers["HTTP-Referer"] = "https://first-record-finder.local"
            headers["X-Title"] = "First Record Finder"
        body = {
            "model": model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self._temperature,
            "max_tokens": self._max_tokens,
        }
        return f"{base_url}/chat/completions", body, headers

    def _anthropic_call(
        self, base_url: str, model: str, prompt: str, api_key: str
    ) -> tuple[str, dict[str, Any], dict[str, str]]:
        headers = {"x-api-key": api_key, "anthropic-version": ANTHROPIC_VERSION}
        body = {
            "model": model,
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }
        return f"{base_url}/messages", body, headers

    @staticmethod
    def _extract_text(spec: ProviderSpec, data: dict[str, Any]) -> str:
        if spec.api_style == "ollama":
            return data.get("response") or ""
        if spec.api_style == "anthropic":
            content = data.get("content") or [{}]
            return content[0].get("text") or ""
        choices = data.get("choices") or [{}]
        return (choices[0].get("message") or {}).get("content") or ""


# =============================================================================
# Response parsing
# =============================================================================

def parse_judgment(answer: str, *, model_used: str) -> Judgment:
    """
    Parse a model answer into a Judgment.

    Looks for a ```json fence, then any fence, then a bare ``{...}``
    object. Unparseable answers become an undecided judgment with low
    confidence instead of an error.
    """
    candidate = answer
    for pattern in (_JSON_FENCE_RE, _ANY_FENCE_RE):
        match = pattern.search(answer)
        if match:
            candidate = match.group(1)
            break
    else:
        match = _JSON_OBJECT_RE.search(answer)
        if match:
            candidate = match.group(0)

    try:
        parsed = json.loads(candidate.strip())
        if not isinstance(parsed, dict):
            raise ValueError("answer is not a JSON object")
    except ValueError as e:
        logger.warning(f"Failed to parse LLM answer as JSON: {e}")
        return Judgment(
            has_korea_record=None,
            confidence=PARSE_FAILURE_CONFIDENCE,
            model_used=model_used,
            reasoning=f"Unparseable model answer: {answer[:300]}",
        )

    missing = [k for k in ("hasKoreaRecord", "confidence", "reasoning") if k not in parsed]
    if missing:
        logger.warning(f"LLM answer is missing fields: {', '.join(missing)}")

    confidence = _parse_number(parsed.get("confidence"), 0.0, 1.0)
    return Judgment(
        has_korea_record=_parse_bool(parsed.get("hasKoreaRecord")),
        confidence=DEFAULT_CONFIDENCE if confidence is None else confidence,
        model_used=model_used,
        locality=_parse_str(parsed.get("locality"), MAX_LOCALITY),
        collection_date=_parse_str(parsed.get("collectionDate"), MAX_COLLECTION_DATE),
        specimen_info=_parse_str(parsed.get("specimenInfo"), MAX_SPECIMEN_INFO),
        collector=_parse_str(parsed.get("collector"), MAX_COLLECTOR),
        relevant_quotes=_parse_quotes(parsed.get("relevantQuotes")),
        reasoning=_parse_str(parsed.get("reasoning"), MAX_REASONING) or "No reasoning given",
    )


def _parse_bool(value: Any) -> bool | None:
    if value is True or value == "true":
        return True
    if value is False or value == "false":
        return False
    return None


def _parse_number(value: Any, low: float, high: float) -> float | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if number != number:  # NaN
        return None
    return max(low, min(high, number))


def _parse_str(value: Any, max_length: int) -> str | None:
    if value is None or value == "":
        return None
    return str(value)[:max_length]


def _parse_quotes(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [
        item[:MAX_QUOTE_LENGTH]
        for item in value[:MAX_QUOTES]
        if isinstance(item, str) and item.strip()
    ]

"""
Environment-driven settings.

Environment Variables:
    FIRST_RECORD_ENV: "development" (default) or "production"
    FIRST_RECORD_DATA_DIR: Root for pdfs/ and results/ (default: ./data)
    BHL_API_KEY, SEMANTIC_SCHOLAR_API_KEY, KCI_API_KEY, RISS_API_KEY: Source credentials
    SCIENCEON_CLIENT_ID, SCIENCEON_API_KEY: ScienceON credentials
    OPENALEX_EMAIL: Email for the OpenAlex polite pool
    DOCLING_API_URL: Extraction service (default: http://localhost:5000)
    LLM_PROVIDER, LLM_MODEL, LLM_API_KEY: Default judge
    OLLAMA_HOST: Ollama endpoint override
    QUOTA_DAILY_LIMIT, QUOTA_WARNING_RATIO: Free-tier quota
    FIRST_RECORD_POLICY_FILE: YAML ranking policy
    FIRST_RECORD_ENABLED_SOURCES: Comma-separated source ids (default: all)
    FIRST_RECORD_API_HOST, FIRST_RECORD_API_PORT: HTTP server bind address
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from first_record.application.quota.tracker import DEFAULT_DAILY_LIMIT, DEFAULT_WARNING_RATIO
from first_record.domain.entities import SourceId
from first_record.infrastructure.extraction.docling import DEFAULT_DOCLING_URL
from first_record.infrastructure.llm.providers import get_provider
from first_record.shared.exceptions import ConfigurationError

DEFAULT_DATA_DIR = "./data"
DEFAULT_API_HOST = "127.0.0.1"
DEFAULT_API_PORT = 8765
DEFAULT_LLM_PROVIDER = "ollama"


def _optional(env: Mapping[str, str], key: str) -> str | None:
    value = env.get(key, "").strip()
    return value or None


def _parse_sources(raw: str | None) -> tuple[SourceId, ...]:
    if not raw:
        return tuple(SourceId)
    try:
        return tuple(dict.fromkeys(SourceId(s.strip().lower()) for s in raw.split(",") if s.strip()))
    except ValueError as e:
        raise ConfigurationError(f"FIRST_RECORD_ENABLED_SOURCES: {e}") from e


@dataclass(frozen=True)
class Settings:
    """Runtime settings. Build with ``Settings.from_env()``."""

    environment: str = "development"
    data_dir: str = DEFAULT_DATA_DIR
    bhl_api_key: str | None = field(default=None, repr=False)
    semantic_scholar_api_key: str | None = field(default=None, repr=False)
    kci_api_key: str | None = field(default=None, repr=False)
    riss_api_key: str | None = field(default=None, repr=False)
    scienceon_client_id: str | None = field(default=None, repr=False)
    scienceon_api_key: str | None = field(default=None, repr=False)
    openalex_email: str | None = None
    docling_api_url: str = DEFAULT_DOCLING_URL
    llm_provider: str = DEFAULT_LLM_PROVIDER
    llm_model: str | None = None
    llm_api_key: str | None = field(default=None, repr=False)
    ollama_host: str | None = None
    quota_daily_limit: int = DEFAULT_DAILY_LIMIT
    quota_warning_ratio: float = DEFAULT_WARNING_RATIO
    policy_file: str | None = None
    enabled_sources: tuple[SourceId, ...] = tuple(SourceId)
    api_host: str = DEFAULT_API_HOST
    api_port: int = DEFAULT_API_PORT

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def pdf_dir(self) -> Path:
        return Path(self.data_dir).expanduser() / "pdfs"

    @property
    def results_dir(self) -> Path:
        return Path(self.data_dir).expanduser() / "results"

    @property
    def default_llm_model(self) -> str:
        return self.llm_model or get_provider(self.llm_provider).default_model

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """
        Read settings from the environment.

        Raises:
            ConfigurationError: A numeric or enumerated variable is malformed
        """
        env = os.environ if environ is None else environ
        try:
            quota_limit = int(env.get("QUOTA_DAILY_LIMIT", DEFAULT_DAILY_LIMIT))
            warning_ratio = float(env.get("QUOTA_WARNING_RATIO", DEFAULT_WARNING_RATIO))
            api_port = int(env.get("FIRST_RECORD_API_PORT", DEFAULT_API_PORT))
        except ValueError as e:
            raise ConfigurationError(f"Invalid numeric setting: {e}") from e

        environment = env.get("FIRST_RECORD_ENV", "development").strip().lower() or "development"
        if environment not in ("development", "production", "test"):
            raise ConfigurationError(f"FIRST_RECORD_ENV must be development, production or test, got {environment!r}")

        return cls(
            environment=environment,
            data_dir=_optional(env, "FIRST_RECORD_DATA_DIR") or DEFAULT_DATA_DIR,
            bhl_api_key=_optional(env, "BHL_API_KEY"),
            semantic_scholar_api_key=_optional(env, "SEMANTIC_SCHOLAR_API_KEY"),
            kci_api_key=_optional(env, "KCI_API_KEY"),
            riss_api_key=_optional(env, "RISS_API_KEY"),
            scienceon_client_id=_optional(env, "SCIENCEON_CLIENT_ID"),
            scienceon_api_key=_optional(env, "SCIENCEON_API_KEY"),
            openalex_email=_optional(env, "OPENALEX_EMAIL"),
            docling_api_url=_optional(env, "DOCLING_API_URL") or DEFAULT_DOCLING_URL,
            llm_provider=(_optional(env, "LLM_PROVIDER") or DEFAULT_LLM_PROVIDER).lower(),
            llm_model=_optional(env, "LLM_MODEL"),
            llm_api_key=_optional(env, "LLM_API_KEY"),
            ollama_host=_optional(env, "OLLAMA_HOST"),
            quota_daily_limit=quota_limit,
            quota_warning_ratio=warning_ratio,
            policy_file=_optional(env, "FIRST_RECORD_POLICY_FILE"),
            enabled_sources=_parse_sources(_optional(env, "FIRST_RECORD_ENABLED_SOURCES")),
            api_host=_optional(env, "FIRST_RECORD_API_HOST") or DEFAULT_API_HOST,
            api_port=api_port,
        )

    def to_dict(self) -> dict[str, Any]:
        """Plain dict for ``ApplicationContainer.config.from_dict``."""
        return {
            "environment": self.environment,
            "allow_quota_reset": not self.is_production,
            "data_dir": self.data_dir,
            "pdf_dir": str(self.pdf_dir),
            "results_dir": str(self.results_dir),
            "bhl_api_key": self.bhl_api_key,
            "semantic_scholar_api_key": self.semantic_scholar_api_key,
            "kci_api_key": self.kci_api_key,
            "riss_api_key": self.riss_api_key,
            "scienceon_client_id": self.scienceon_client_id,
            "scienceon_api_key": self.scienceon_api_key,
            "openalex_email": self.openalex_email,
            "docling_api_url": self.docling_api_url,
            "llm_provider": self.llm_provider,
            "llm_model": self.default_llm_model,
            "llm_api_key": self.llm_api_key,
            "ollama_host": self.ollama_host,
            "quota_daily_limit": self.quota_daily_limit,
            "quota_warning_ratio": self.quota_warning_ratio,
            "policy_file": self.policy_file,
            "enabled_sources": [s.value for s in self.enabled_sources],
            "api_host": self.api_host,
            "api_port": self.api_port,
        }

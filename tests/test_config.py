"""Tests for Settings.from_env."""

from __future__ import annotations

from pathlib import Path

import pytest

from first_record.config import Settings
from first_record.domain.entities import SourceId
from first_record.shared.exceptions import ConfigurationError


class TestDefaults:
    def test_empty_environment(self):
        settings = Settings.from_env({})

        assert settings.environment == "development"
        assert settings.data_dir == "./data"
        assert settings.api_host == "127.0.0.1"
        assert settings.api_port == 8765
        assert settings.llm_provider == "ollama"
        assert settings.default_llm_model == "qwen2.5:14b"
        assert settings.quota_daily_limit == 1000
        assert settings.quota_warning_ratio == 0.9
        assert settings.enabled_sources == tuple(SourceId)
        assert settings.bhl_api_key is None

    def test_storage_paths(self):
        settings = Settings(data_dir="/srv/first-record")
        assert settings.pdf_dir == Path("/srv/first-record/pdfs")
        assert settings.results_dir == Path("/srv/first-record/results")


class TestFromEnv:
    def test_reads_values(self):
        settings = Settings.from_env(
            {
                "FIRST_RECORD_ENV": "Production",
                "FIRST_RECORD_DATA_DIR": "/srv/data",
                "BHL_API_KEY": "bhl-key",
                "SCIENCEON_CLIENT_ID": "sci-id",
                "LLM_PROVIDER": "OpenRouter",
                "LLM_MODEL": "google/gemma-2-9b-it:free",
                "QUOTA_DAILY_LIMIT": "50",
                "QUOTA_WARNING_RATIO": "0.8",
                "FIRST_RECORD_API_PORT": "9000",
            }
        )

        assert settings.is_production is True
        assert settings.data_dir == "/srv/data"
        assert settings.bhl_api_key == "bhl-key"
        assert settings.scienceon_client_id == "sci-id"
        assert settings.llm_provider == "openrouter"
        assert settings.default_llm_model == "google/gemma-2-9b-it:free"
        assert settings.quota_daily_limit == 50
        assert settings.quota_warning_ratio == 0.8
        assert settings.api_port == 9000

    def test_blank_values_ignored(self):
        settings = Settings.from_env({"BHL_API_KEY": "   ", "DOCLING_API_URL": ""})

        assert settings.bhl_api_key is None
        assert settings.docling_api_url == "http://localhost:5000"

    def test_enabled_sources(self):
        settings = Settings.from_env({"FIRST_RECORD_ENABLED_SOURCES": "OpenAlex, bhl,openalex"})
        assert settings.enabled_sources == (SourceId.OPENALEX, SourceId.BHL)

    @pytest.mark.parametrize(
        "env",
        [
            {"QUOTA_DAILY_LIMIT": "lots"},
            {"QUOTA_WARNING_RATIO": "high"},
            {"FIRST_RECORD_API_PORT": "http"},
            {"FIRST_RECORD_ENV": "staging"},
            {"FIRST_RECORD_ENABLED_SOURCES": "bhl,pubmed"},
        ],
    )
    def test_invalid_values(self, env):
        with pytest.raises(ConfigurationError):
            Settings.from_env(env)

    def test_secrets_not_in_repr(self):
        settings = Settings(llm_api_key="sk-secret", bhl_api_key="bhl-secret")
        assert "secret" not in repr(settings)


class TestToDict:
    def test_container_config(self):
        config = Settings(environment="production", data_dir="/srv/data").to_dict()

        assert config["allow_quota_reset"] is False
        assert config["pdf_dir"] == str(Path("/srv/data/pdfs"))
        assert config["llm_model"] == "qwen2.5:14b"
        assert config["enabled_sources"] == [s.value for s in SourceId]

    def test_reset_allowed_outside_production(self):
        assert Settings().to_dict()["allow_quota_reset"] is True

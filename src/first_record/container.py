"""
Application DI Container (dependency-injector).

Owns every long-lived service: quota tracker, source adapters, aggregator,
PDF intake, extraction client, analysis store, orchestrator, first-record
evaluator and synonym resolver.

Usage::

    from first_record.container import build_container

    container = build_container()          # Settings.from_env()
    aggregator = container.aggregator()

    # In tests, override any provider:
    container.extractor.override(providers.Object(fake_extractor))
"""

from __future__ import annotations

import logging

from dependency_injector import containers, providers

from first_record.application.analysis import AnalysisOrchestrator, AnalysisStore, FirstRecordEvaluator
from first_record.application.intake import PdfIntake
from first_record.config import Settings
from first_record.domain.ports import JudgeRequest
from first_record.infrastructure.extraction import DoclingClient
from first_record.infrastructure.llm.providers import validate_provider_table
from first_record.infrastructure.sources import (
    BHLClient,
    KCIClient,
    OpenAlexClient,
    PdfDownloader,
    RISSClient,
    ScienceONClient,
    SemanticScholarClient,
)
from first_record.infrastructure.taxonomy import WoRMSClient

logger = logging.getLogger(__name__)


def _create_quota_tracker(limit: int, warning_ratio: float, allow_reset: bool) -> object:
    """Process-wide tracker (quota is shared by every request in the process)."""
    from first_record.application.quota import get_quota_tracker

    return get_quota_tracker(limit=limit, warning_ratio=warning_ratio, allow_reset=allow_reset)


def _create_policy(policy_file: str | None) -> object:
    from first_record.application.collection import load_policy

    return load_policy(policy_file)


def _create_aggregator(adapters: list[object], policy: object) -> object:
    from first_record.application.collection import LiteratureAggregator

    return LiteratureAggregator(adapters, policy=policy)  # type: ignore[arg-type]


def _create_llm_client(api_key: str | None, ollama_host: str | None) -> object:
    from first_record.infrastructure.llm import LLMClient

    return LLMClient(api_key=api_key, base_urls={"ollama": ollama_host} if ollama_host else None)


class ApplicationContainer(containers.DeclarativeContainer):
    """Central DI container for First Record Finder.

    - ``quota_tracker``: daily free-tier LLM quota
    - ``aggregator``: literature fan-out over the source adapters
    - ``intake`` / ``store`` / ``orchestrator``: PDF analysis pipeline
    - ``first_record_evaluator``: first Korea record over completed analyses
    - ``synonym_resolver``: WoRMS client
    """

    config = providers.Configuration()

    quota_tracker = providers.Singleton(
        _create_quota_tracker,
        limit=config.quota_daily_limit,
        warning_ratio=config.quota_warning_ratio,
        allow_reset=config.allow_quota_reset,
    )

    policy = providers.Singleton(_create_policy, policy_file=config.policy_file)

    # Source adapters
    bhl = providers.Singleton(
        BHLClient,
        api_key=config.bhl_api_key,
    )
    openalex = providers.Singleton(
        OpenAlexClient,
        email=config.openalex_email,
    )
    semantic_scholar = providers.Singleton(
        SemanticScholarClient,
        api_key=config.semantic_scholar_api_key,
    )
    kci = providers.Singleton(
        KCIClient,
        api_key=config.kci_api_key,
    )
    riss = providers.Singleton(
        RISSClient,
        api_key=config.riss_api_key,
    )
    scienceon = providers.Singleton(
        ScienceONClient,
        client_id=config.scienceon_client_id,
        api_key=config.scienceon_api_key,
    )

    aggregator = providers.Singleton(
        _create_aggregator,
        adapters=providers.List(bhl, openalex, semantic_scholar, kci, riss, scienceon),
        policy=policy,
    )

    # PDF pipeline
    downloader = providers.Singleton(PdfDownloader)
    intake = providers.Singleton(
        PdfIntake,
        storage_root=config.pdf_dir,
        downloader=downloader,
    )
    extractor = providers.Singleton(
        DoclingClient,
        api_url=config.docling_api_url,
    )
    llm_client = providers.Singleton(
        _create_llm_client,
        api_key=config.llm_api_key,
        ollama_host=config.ollama_host,
    )
    store = providers.Singleton(
        AnalysisStore,
        results_dir=config.results_dir,
    )
    orchestrator = providers.Singleton(
        AnalysisOrchestrator,
        store=store,
        extractor=extractor,
        judge=llm_client,
        quota=quota_tracker,
    )
    first_record_evaluator = providers.Singleton(FirstRecordEvaluator, store=store)

    default_judge_request = providers.Factory(
        JudgeRequest,
        provider=config.llm_provider,
        model=config.llm_model,
        api_key=config.llm_api_key,
    )

    synonym_resolver = providers.Singleton(WoRMSClient)


def build_container(settings: Settings | None = None) -> ApplicationContainer:
    """
    Create and configure the container.

    Raises:
        ConfigurationError: Malformed settings or LLM provider table
    """
    validate_provider_table()
    settings = settings or Settings.from_env()
    container = ApplicationContainer()
    container.config.from_dict(settings.to_dict())
    logger.info(
        f"Container configured: env={settings.environment}, data_dir={settings.data_dir}, "
        f"llm={settings.llm_provider}/{settings.default_llm_model}"
    )
    return container


__all__ = ["ApplicationContainer", "build_container"]

"""
HTTP API Server for First Record Finder.

Thin FastAPI layer over the application services held by the container:
literature collection, synonym lookup, PDF upload/fetch, extraction,
analysis, first-record determination and the free-tier LLM quota.

Errors from the service layer are mapped to status codes in one place
(``_http_status``); unexpected exceptions become a generic 500 and are
logged with their details server-side only.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import APIRouter, FastAPI, File, Form, Query, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from first_record.application.collection import NameNormalizer
from first_record.application.intake import RawUpload
from first_record.config import Settings
from first_record.container import ApplicationContainer, build_container
from first_record.domain.entities import (
    ItemKind,
    LiteratureItem,
    LiteratureQuery,
    PdfAsset,
    SearchStrategy,
    SourceId,
)
from first_record.domain.ports import JudgeRequest
from first_record.infrastructure.llm.providers import get_provider
from first_record.shared.exceptions import (
    AnalysisInProgressError,
    APIError,
    FirstRecordError,
    InternalError,
    NotFoundError,
    OperationNotAllowedError,
    QuotaExceededError,
    SecurityRejection,
    ValidationError,
)

logger = logging.getLogger(__name__)

# =============================================================================
# Request / response models
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    environment: str
    docling_available: bool
    quota: dict[str, Any]


class CollectRequest(BaseModel):
    scientific_name: str
    synonyms: list[str] = Field(default_factory=list)
    year_from: int | None = None
    year_to: int | None = None
    strategy: SearchStrategy = SearchStrategy.BOTH
    max_results: int = 20
    sources: list[SourceId] | None = None
    resolve_synonyms: bool = False


class FetchRequest(BaseModel):
    source: SourceId
    title: str
    pdf_url: str
    id: str | None = None
    year: int | None = None
    url: str = ""
    extract: bool = True


class JudgeOptions(BaseModel):
    species_name: str
    synonyms: list[str] = Field(default_factory=list)
    provider: str | None = None
    model: str | None = None
    api_key: str | None = Field(default=None, repr=False)


class AnalyzeAllRequest(JudgeOptions):
    pdf_ids: list[str] | None = None
    fallback_provider: str | None = None
    fallback_model: str | None = None
    fallback_api_key: str | None = Field(default=None, repr=False)


# =============================================================================
# Helpers
# =============================================================================

def _container(request: Request) -> ApplicationContainer:
    return request.app.state.container


def _judge_request(
    container: ApplicationContainer,
    provider: str | None,
    model: str | None,
    api_key: str | None,
) -> JudgeRequest:
    """Fill unspecified fields from the configured default judge."""
    default: JudgeRequest = container.default_judge_request()
    if not provider or provider == default.provider:
        return JudgeRequest(
            provider=default.provider,
            model=model or default.model,
            api_key=api_key or default.api_key,
        )
    spec = get_provider(provider)
    return JudgeRequest(provider=spec.name, model=model or spec.default_model, api_key=api_key)


def _http_status(error: FirstRecordError) -> int:
    if isinstance(error, SecurityRejection):
        return error.http_status
    if isinstance(error, ValidationError):
        return 400
    if isinstance(error, NotFoundError):
        return 404
    if isinstance(error, AnalysisInProgressError):
        return 409
    if isinstance(error, QuotaExceededError):
        return 429
    if isinstance(error, OperationNotAllowedError):
        return 403
    if isinstance(error, APIError):
        return 502
    return 500


async def _handle_domain_error(request: Request, exc: FirstRecordError) -> JSONResponse:
    status = _http_status(exc)
    if status == 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc!r}")
        return JSONResponse(status_code=500, content=InternalError().to_dict())
    return JSONResponse(status_code=status, content=exc.to_dict())


async def _handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content=InternalError().to_dict())


# =============================================================================
# Routes
# =============================================================================

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
async def health_check(request: Request) -> HealthResponse:
    """Liveness, extraction service reachability and a quota summary."""
    container = _container(request)
    status = container.quota_tracker().get_status()
    return HealthResponse(
        status="healthy",
        environment=container.config.environment(),
        docling_available=await container.extractor().is_available(),
        quota=status.to_dict(),
    )


@router.post("/api/literature/collect")
async def collect_literature(body: CollectRequest, request: Request) -> dict[str, Any]:
    """
    Collect literature for a species across every enabled source.

    The name and synonyms are normalized first; synonyms that cannot be
    used are dropped and reported in ``name_warnings``. With
    ``resolve_synonyms`` the synonym registry supplies the accepted name
    and its synonyms.
    """
    container = _container(request)
    normalized = NameNormalizer.normalize(body.scientific_name)
    primary = normalized.name
    synonym_names, synonym_errors = NameNormalizer.normalize_many(body.synonyms)
    synonyms = [s.name for s in synonym_names]
    resolution = None

    if body.resolve_synonyms:
        resolution = await container.synonym_resolver().resolve(primary)
        if resolution.success:
            primary, *registry_synonyms = resolution.all_names()
            synonyms.extend(registry_synonyms)

    configured_sources = {SourceId(s) for s in container.config.enabled_sources()}
    requested = set(body.sources) if body.sources is not None else configured_sources

    query = LiteratureQuery(
        primary_name=primary,
        synonym_names=synonyms,
        year_from=body.year_from,
        year_to=body.year_to,
        strategy=body.strategy,
        max_results=body.max_results,
        enabled_sources=requested & configured_sources,
    )
    result = await container.aggregator().collect(query)

    response = result.to_dict()
    response["name_warnings"] = normalized.warnings + synonym_errors
    if resolution is not None:
        response["synonym_resolution"] = resolution.to_dict()
    return response


@router.get("/api/literature/sources")
async def list_sources(request: Request) -> dict[str, Any]:
    container = _container(request)
    enabled = set(container.config.enabled_sources())
    sources = container.aggregator().describe_sources()
    for source in sources:
        source["enabled"] = source["source"] in enabled
    return {"sources": sources, "policy": container.policy().to_dict()}


@router.get("/api/species/{name}/synonyms")
async def get_synonyms(name: str, request: Request) -> dict[str, Any]:
    normalized = NameNormalizer.normalize(name)
    resolution = await _container(request).synonym_resolver().resolve(normalized.name)
    if not resolution.success:
        raise NotFoundError("Species", normalized.name)
    return {**resolution.to_dict(), "name_warnings": normalized.warnings}


@router.get("/api/species/{name}/first-record")
async def get_first_record(
    name: str,
    request: Request,
    synonyms: list[str] = Query(default=[]),
    resolve_synonyms: bool = False,
) -> dict[str, Any]:
    """
    Earliest Korea record among the documents analyzed for this species.

    Documents analyzed under any of ``synonyms`` count too; with
    ``resolve_synonyms`` the synonym registry adds the accepted name and
    its synonyms.
    """
    container = _container(request)
    normalized = NameNormalizer.normalize(name)
    species = normalized.name
    synonym_names, synonym_errors = NameNormalizer.normalize_many(synonyms)
    names = [s.name for s in synonym_names]

    if resolve_synonyms:
        resolution = await container.synonym_resolver().resolve(species)
        if resolution.success:
            accepted, *registry_synonyms = resolution.all_names()
            if accepted != species:
                names.append(species)
                species = accepted
            names.extend(n for n in registry_synonyms if n not in names)

    result = container.first_record_evaluator().evaluate(species, names)
    return {**result.to_dict(), "name_warnings": normalized.warnings + synonym_errors}


async def _register_and_extract(
    container: ApplicationContainer,
    asset: PdfAsset,
    extract: bool,
    *,
    citation: str | None = None,
    year: int | None = None,
) -> dict[str, Any]:
    orchestrator = container.orchestrator()
    record = orchestrator.register(asset, citation=citation, publication_year=year)
    response: dict[str, Any] = {"success": True, "pdf_id": record.pdf_id, "asset": asset.to_dict()}
    if not extract:
        response["extraction"] = None
        return response

    summary = await orchestrator.extract(record.pdf_id)
    if summary is None:
        response["extraction"] = None
        response["message"] = "PDF saved but text extraction failed. You can retry extraction or analysis."
        return response

    response["extraction"] = {
        "text_length": summary.text_length,
        "text_preview": summary.text[:500],
        "table_count": summary.table_count,
        "figure_count": summary.figure_count,
        "ocr_used": summary.ocr_used,
    }
    return response


@router.post("/api/pdf/upload")
async def upload_pdf(
    request: Request,
    file: UploadFile = File(...),
    extract: bool = Form(True),
    citation: str | None = Form(None),
    year: int | None = Form(None),
) -> dict[str, Any]:
    """Validate and store an uploaded PDF, then try to extract its text.

    ``citation`` and ``year`` describe the document for first-record
    determination.
    """
    container = _container(request)
    intake = container.intake()
    # Read one byte past the ceiling so oversized uploads are detected without buffering them whole
    content = await file.read(intake.max_size + 1)
    upload = RawUpload(file_name=file.filename or "", content=content, declared_size=file.size)
    asset = intake.accept(upload)
    return await _register_and_extract(container, asset, extract, citation=citation, year=year)


@router.post("/api/pdf/fetch")
async def fetch_pdf(body: FetchRequest, request: Request) -> dict[str, Any]:
    """Download a collected item's PDF and treat it as an upload."""
    container = _container(request)
    item = LiteratureItem(
        id=body.id or f"{body.source.value}_fetch",
        source=body.source,
        title=body.title,
        matched_name="",
        url=body.url,
        year=body.year,
        pdf_url=body.pdf_url,
        kind=ItemKind.ARTICLE,
    )
    asset = await container.intake().fetch(item)
    return await _register_and_extract(container, asset, body.extract, citation=body.title, year=body.year)


@router.get("/api/pdf")
async def list_pdfs(request: Request) -> dict[str, Any]:
    """Stored PDFs, newest first. A file without an analysis record is registered as pending."""
    container = _container(request)
    orchestrator = container.orchestrator()
    known = {r.pdf_id: r for r in orchestrator.list_records()}
    records = [known.get(asset.id) or orchestrator.register(asset) for asset in container.intake().list_assets()]
    return {"success": True, "files": [r.to_public_dict() for r in records], "count": len(records)}


@router.post("/api/pdf/analyze-all")
async def analyze_all(body: AnalyzeAllRequest, request: Request) -> dict[str, Any]:
    container = _container(request)
    judge_request = _judge_request(container, body.provider, body.model, body.api_key)
    fallback = None
    if body.fallback_provider:
        fallback = _judge_request(container, body.fallback_provider, body.fallback_model, body.fallback_api_key)

    report = await container.orchestrator().analyze_all(
        judge_request,
        species_name=body.species_name,
        synonyms=body.synonyms,
        pdf_ids=body.pdf_ids,
        fallback=fallback,
    )
    return {**report.to_dict(), "quota": container.quota_tracker().get_status().to_dict()}


@router.post("/api/pdf/{pdf_id}/extract")
async def extract_pdf(pdf_id: str, request: Request) -> dict[str, Any]:
    """Manual (re-)extraction."""
    summary = await _container(request).orchestrator().extract(pdf_id)
    if summary is None:
        return {"success": False, "pdf_id": pdf_id, "error": "Text extraction failed"}
    public = summary.to_dict()
    public.pop("text")
    return {"success": True, "pdf_id": pdf_id, "extraction": public}


@router.post("/api/pdf/{pdf_id}/analyze", response_model=None)
async def analyze_pdf(pdf_id: str, body: JudgeOptions, request: Request) -> dict[str, Any] | JSONResponse:
    container = _container(request)
    judge_request = _judge_request(container, body.provider, body.model, body.api_key)
    record = await container.orchestrator().trigger_analysis(
        pdf_id,
        judge_request,
        species_name=body.species_name,
        synonyms=body.synonyms,
    )
    if record.error_code == "quota_exceeded":
        status = container.quota_tracker().get_status()
        return JSONResponse(
            status_code=429,
            content={"record": record.to_public_dict(), **QuotaExceededError(status).to_dict()},
        )
    return {"success": record.error_code is None, "record": record.to_public_dict()}


@router.get("/api/llm/usage")
async def get_llm_usage(request: Request) -> dict[str, Any]:
    return _container(request).orchestrator().get_quota_status().to_dict()


@router.post("/api/llm/usage/reset")
async def reset_llm_usage(request: Request) -> dict[str, Any]:
    status = _container(request).orchestrator().reset_quota()
    return {"success": True, "message": "Quota reset", **status.to_dict()}


# =============================================================================
# App factory
# =============================================================================

async def _close_clients(container: ApplicationContainer) -> None:
    providers_to_close = (
        container.bhl,
        container.openalex,
        container.semantic_scholar,
        container.kci,
        container.riss,
        container.scienceon,
        container.downloader,
        container.extractor,
        container.llm_client,
        container.synonym_resolver,
    )
    for provider in providers_to_close:
        await provider().close()


def create_api_server(container: ApplicationContainer | None = None) -> FastAPI:
    """
    Create the FastAPI app.

    Args:
        container: Pre-built container (tests override providers on it).
                   Defaults to ``build_container()`` from the environment.
    """
    container = container or build_container()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("HTTP API server started")
        yield
        logger.info("HTTP API server shutting down")
        await _close_clients(container)

    app = FastAPI(
        title="First Record Finder API",
        description="Literature collection and Korea first-record analysis for marine species.",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(FirstRecordError, _handle_domain_error)
    app.add_exception_handler(Exception, _handle_unexpected_error)
    app.include_router(router)
    return app


def run_api_server(host: str | None = None, port: int | None = None, settings: Settings | None = None) -> None:
    """
    Run the HTTP API server under uvicorn.

    Args:
        host: Host to bind to (default: FIRST_RECORD_API_HOST or 127.0.0.1)
        port: Port to bind to (default: FIRST_RECORD_API_PORT or 8765)
        settings: Explicit settings (default: from the environment)
    """
    import uvicorn

    settings = settings or Settings.from_env()
    app = create_api_server(build_container(settings))
    bind_host = host or settings.api_host
    bind_port = port or settings.api_port

    logger.info(f"Starting HTTP API server on {bind_host}:{bind_port}")
    uvicorn.run(app, host=bind_host, port=bind_port, log_level="info")

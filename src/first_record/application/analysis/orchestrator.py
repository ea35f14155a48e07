"""
AnalysisOrchestrator - drive a stored PDF through extraction and judgment.

Record lifecycle:
    pending -> analyzing -> completed | error
    completed / error -> analyzing   (explicit re-trigger only)

Billable (free-tier) models are gated by the QuotaTracker: the capacity
check and the in-flight reservation happen without an ``await`` between
them, and usage is recorded only after the provider answered.

Batch analysis goes through one queue and one worker per orchestrator, so
overlapping batches share the worker and batch work never has more than
one LLM call outstanding.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Literal

from first_record.application.analysis.store import AnalysisStore
from first_record.application.quota.tracker import QuotaStatus, QuotaTracker
from first_record.domain.entities import (
    AnalysisRecord,
    AnalysisStatus,
    ExtractionResult,
    ExtractionSummary,
    PdfAsset,
)
from first_record.domain.entities.analysis import ErrorCode
from first_record.domain.ports import Extractor, JudgeClient, JudgeRequest
from first_record.shared.exceptions import (
    AnalysisInProgressError,
    FirstRecordError,
    NotFoundError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

DEFAULT_OCR_LANGUAGES = ("eng", "kor")

Outcome = Literal["completed", "failed", "skipped"]


@dataclass
class BatchItemOutcome:
    pdf_id: str
    outcome: Outcome
    model_used: str | None = None
    error_code: str | None = None
    error_message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "pdf_id": self.pdf_id,
            "outcome": self.outcome,
            "model_used": self.model_used,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


@dataclass
class BatchReport:
    """Summary of an ``analyze_all`` run."""

    total: int = 0
    items: list[BatchItemOutcome] = field(default_factory=list)

    @property
    def completed(self) -> int:
        return sum(1 for i in self.items if i.outcome == "completed")

    @property
    def failed(self) -> int:
        return sum(1 for i in self.items if i.outcome == "failed")

    @property
    def skipped(self) -> int:
        return sum(1 for i in self.items if i.outcome == "skipped")

    def to_dict(self) -> dict[str, Any]:
        return {
            "total": self.total,
            "completed": self.completed,
            "failed": self.failed,
            "skipped": self.skipped,
            "items": [item.to_dict() for item in self.items],
        }


ProgressCallback = Callable[[BatchItemOutcome, int, int], None]


@dataclass
class _BatchJob:
    pdf_id: str
    request: JudgeRequest
    fallback: JudgeRequest | None
    species_name: str
    synonyms: tuple[str, ...]
    explicit: bool
    done: asyncio.Future[BatchItemOutcome]


class AnalysisOrchestrator:
    """
    Coordinates the store, the extraction service, the LLM judge and the quota.

    Usage:
        orchestrator = AnalysisOrchestrator(store, docling, llm, quota)
        orchestrator.register(asset)
        record = await orchestrator.trigger_analysis(
            asset.id, JudgeRequest("openrouter", "meta-llama/llama-3.3-70b-instruct:free"),
            species_name="Fistularia petimba",
        )
    """

    def __init__(
        self,
        store: AnalysisStore,
        extractor: Extractor,
        judge: JudgeClient,
        quota: QuotaTracker,
        *,
        enable_ocr: bool = True,
        ocr_languages: tuple[str, ...] = DEFAULT_OCR_LANGUAGES,
    ) -> None:
        self._store = store
        self._extractor = extractor
        self._judge = judge
        self._quota = quota
        self._enable_ocr = enable_ocr
        self._ocr_languages = ocr_languages
        # pdf ids with an analysis running in this process
        self._in_progress: set[str] = set()
        self._batch_queue: asyncio.Queue[_BatchJob] = asyncio.Queue()
        self._batch_worker: asyncio.Task[None] | None = None

    # =========================================================================
    # Records
    # =========================================================================

    def register(
        self,
        asset: PdfAsset,
        *,
        citation: str | None = None,
        publication_year: int | None = None,
    ) -> AnalysisRecord:
        """Create the pending record for a freshly stored PDF.

        ``citation`` and ``publication_year`` describe the document and are
        what first-record determination reports and sorts by.
        """
        record = AnalysisRecord(
            pdf_id=asset.id,
            asset=asset,
            citation=citation,
            publication_year=publication_year,
            updated_at=_now(),
        )
        self._store.save(record)
        logger.info(f"Registered {asset.id} for analysis")
        return record

    def get_record(self, pdf_id: str) -> AnalysisRecord:
        record = self._store.load(pdf_id)
        if record is None:
            raise NotFoundError("Analysis record", pdf_id)
        return record

    def list_records(self) -> list[AnalysisRecord]:
        return self._store.list_records()

    # =========================================================================
    # Extraction
    # =========================================================================

    async def _run_extraction(self, record: AnalysisRecord) -> ExtractionResult:
        extraction = await self._extractor.extract(
            record.asset.storage_path,
            enable_ocr=self._enable_ocr,
            ocr_languages=self._ocr_languages,
            extract_tables=True,
            extract_figures=True,
        )
        self._store.save_extraction(record.pdf_id, extraction)
        return extraction

    async def extract(self, pdf_id: str) -> ExtractionSummary | None:
        """
        Run (or re-run) extraction for a stored PDF.

        Failures are logged and leave the record untouched so extraction can
        be re-triggered; the return value is then None.
        """
        record = self.get_record(pdf_id)
        try:
            extraction = await self._run_extraction(record)
        except FirstRecordError as e:
            logger.warning(f"Extraction failed for {pdf_id}: {e}")
            return None

        # Reload: an analysis may have changed the record while we awaited
        record = self._store.load(pdf_id) or record
        record.extraction = extraction.summary()
        record.updated_at = _now()
        self._store.save(record)
        logger.info(f"Extracted {pdf_id}: {record.extraction.text_length} chars")
        return record.extraction

    # =========================================================================
    # Analysis
    # =========================================================================

    async def trigger_analysis(
        self,
        pdf_id: str,
        request: JudgeRequest,
        *,
        species_name: str,
        synonyms: Sequence[str] = (),
    ) -> AnalysisRecord:
        """
        Analyze one document and return its final record.

        Document-level failures end in ``status=error`` with an
        ``error_code``; they are not raised.

        Raises:
            NotFoundError: Unknown pdf id
            AnalysisInProgressError: The document is already analyzing
            InvalidParameterError: Unknown LLM provider
        """
        record = self.get_record(pdf_id)
        if pdf_id in self._in_progress:
            raise AnalysisInProgressError(pdf_id)
        billable = self._judge.is_billable(request)

        self._in_progress.add(pdf_id)
        record.status = AnalysisStatus.ANALYZING
        record.species_name = species_name
        record.error_message = None
        record.error_code = None
        record.updated_at = _now()
        self._store.save(record)

        try:
            if billable and not self._quota.can_start():
                raise QuotaExceededError(self._quota.get_status())

            extraction = self._store.load_extraction(pdf_id)
            if extraction is None:
                try:
                    extraction = await self._run_extraction(record)
                except FirstRecordError as e:
                    return self._fail(record, "extraction_failed", f"Text extraction failed: {e}")
            record.extraction = extraction.summary()

            try:
                if billable:
                    with self._quota.reserve() as reservation:
                        judgment = await self._judge.judge(request, extraction.text, species_name, synonyms)
                        reservation.commit()
                else:
                    judgment = await self._judge.judge(request, extraction.text, species_name, synonyms)
            except QuotaExceededError:
                raise
            except FirstRecordError as e:
                return self._fail(record, "llm_failed", f"LLM analysis failed: {e}")

        except QuotaExceededError as e:
            return self._fail(record, "quota_exceeded", str(e))
        except Exception:
            logger.exception(f"Unexpected error while analyzing {pdf_id}")
            return self._fail(record, "internal", "Internal error during analysis")
        finally:
            self._in_progress.discard(pdf_id)

        record.judgment = judgment
        record.status = AnalysisStatus.COMPLETED
        record.updated_at = _now()
        self._store.save(record)
        logger.info(
            f"Analysis of {pdf_id} completed: has_korea_record={judgment.has_korea_record} "
            f"(confidence {judgment.confidence:.2f}, {judgment.model_used})"
        )
        return record

    def _fail(self, record: AnalysisRecord, code: ErrorCode, message: str) -> AnalysisRecord:
        record.status = AnalysisStatus.ERROR
        record.error_code = code
        record.error_message = message
        record.updated_at = _now()
        self._store.save(record)
        logger.warning(f"Analysis of {record.pdf_id} failed ({code}): {message}")
        return record

    # =========================================================================
    # Batch
    # =========================================================================

    async def analyze_all(
        self,
        request: JudgeRequest,
        *,
        species_name: str,
        synonyms: Sequence[str] = (),
        pdf_ids: Sequence[str] | None = None,
        fallback: JudgeRequest | None = None,
        on_progress: ProgressCallback | None = None,
    ) -> BatchReport:
        """
        Analyze documents one after another.

        Without ``pdf_ids`` every pending record is processed, oldest first,
        and a record that is no longer pending when its turn comes (another
        batch got to it) is skipped. Explicit ``pdf_ids`` are analyzed
        whatever their status.

        Once the quota is exhausted, documents that would need a billable
        model use ``fallback`` when it is non-billable, otherwise they are
        skipped and stay pending.

        Concurrent calls queue behind each other on the orchestrator's single
        batch worker.
        """
        explicit = pdf_ids is not None
        if pdf_ids is None:
            pending = [r for r in self._store.list_records() if r.status == AnalysisStatus.PENDING]
            pdf_ids = [r.pdf_id for r in reversed(pending)]

        if fallback is not None and self._judge.is_billable(fallback):
            logger.warning("Fallback model is billable; it will not be used once the quota is exhausted")
            fallback = None

        loop = asyncio.get_running_loop()
        jobs = [
            _BatchJob(
                pdf_id=pdf_id,
                request=request,
                fallback=fallback,
                species_name=species_name,
                synonyms=tuple(synonyms),
                explicit=explicit,
                done=loop.create_future(),
            )
            for pdf_id in pdf_ids
        ]
        for job in jobs:
            self._batch_queue.put_nowait(job)
        self._ensure_batch_worker()

        report = BatchReport(total=len(jobs))
        logger.info(f"Batch analysis of {report.total} documents queued")
        for job in jobs:
            outcome = await job.done
            report.items.append(outcome)
            if on_progress is not None:
                on_progress(outcome, len(report.items), report.total)

        logger.info(
            f"Batch analysis finished: {report.completed} completed, "
            f"{report.failed} failed, {report.skipped} skipped"
        )
        return report

    def _ensure_batch_worker(self) -> None:
        if self._batch_worker is None or self._batch_worker.done():
            self._batch_worker = asyncio.create_task(self._run_batch_worker())

    async def _run_batch_worker(self) -> None:
        # No await between the last empty() check and returning
        while not self._batch_queue.empty():
            job = self._batch_queue.get_nowait()
            try:
                outcome = await self._analyze_batch_item(job)
            except Exception as e:
                if not job.done.done():
                    job.done.set_exception(e)
            else:
                if not job.done.done():
                    job.done.set_result(outcome)
            finally:
                self._batch_queue.task_done()

    async def _analyze_batch_item(self, job: _BatchJob) -> BatchItemOutcome:
        pdf_id = job.pdf_id
        if not job.explicit:
            current = self._store.load(pdf_id)
            if current is not None and current.status != AnalysisStatus.PENDING:
                return BatchItemOutcome(
                    pdf_id=pdf_id,
                    outcome="skipped",
                    error_code="not_pending",
                    error_message=f"Record is already {current.status.value}",
                )

        chosen = job.request
        try:
            if self._judge.is_billable(job.request) and not self._quota.can_start():
                if job.fallback is None:
                    return BatchItemOutcome(
                        pdf_id=pdf_id,
                        outcome="skipped",
                        error_code="quota_exceeded",
                        error_message="Daily free-tier quota exhausted",
                    )
                chosen = job.fallback

            record = await self.trigger_analysis(
                pdf_id, chosen, species_name=job.species_name, synonyms=job.synonyms
            )
        except FirstRecordError as e:
            return BatchItemOutcome(pdf_id=pdf_id, outcome="failed", error_code=e.code, error_message=str(e))

        if record.status == AnalysisStatus.COMPLETED and record.judgment is not None:
            return BatchItemOutcome(pdf_id=pdf_id, outcome="completed", model_used=record.judgment.model_used)
        return BatchItemOutcome(
            pdf_id=pdf_id,
            outcome="failed",
            model_used=f"{chosen.provider}/{chosen.model}",
            error_code=record.error_code,
            error_message=record.error_message,
        )

    # =========================================================================
    # Quota
    # =========================================================================

    def get_quota_status(self) -> QuotaStatus:
        return self._quota.get_status()

    def reset_quota(self) -> QuotaStatus:
        return self._quota.reset()


def _now() -> datetime:
    return datetime.now(UTC)

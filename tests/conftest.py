"""
Pytest configuration and shared fixtures.
"""

from __future__ import annotations

import tempfile
from collections.abc import Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

from first_record.application.quota import reset_quota_tracker
from first_record.domain.entities import (
    ExtractionResult,
    Judgment,
    LiteratureItem,
    SearchOptions,
    SourceId,
)
from first_record.domain.ports import JudgeRequest
from first_record.shared.exceptions import UpstreamUnavailableError

PDF_BYTES = b"%PDF-1.4\n1 0 obj\n<< /Type /Catalog >>\nendobj\ntrailer\n%%EOF\n"

FREE_REQUEST = JudgeRequest(provider="openrouter", model="meta-llama/llama-3.3-70b-instruct:free", api_key="k")
LOCAL_REQUEST = JudgeRequest(provider="ollama", model="qwen2.5:14b")


# ============================================================
# Environment Fixtures
# ============================================================


@pytest.fixture
def temp_dir():
    """Provide a temporary directory for tests."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture(autouse=True)
def _fresh_quota_tracker():
    """The process-wide quota tracker must not leak between tests."""
    reset_quota_tracker()
    yield
    reset_quota_tracker()


# ============================================================
# Fakes
# ============================================================


class FakeClock:
    """Settable UTC clock for quota tests."""

    def __init__(self, now: datetime | None = None) -> None:
        self.now = now or datetime(2024, 5, 1, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now = self.now + timedelta(**kwargs)


class FakeAdapter:
    """In-memory source adapter returning canned items or raising."""

    def __init__(
        self,
        source_id: SourceId,
        items: Sequence[LiteratureItem] | None = None,
        *,
        error: Exception | None = None,
        configured: bool = True,
    ) -> None:
        self.source_id = source_id
        self._items = list(items or [])
        self._error = error
        self._configured = configured
        self.calls: list[tuple[str, SearchOptions]] = []

    @property
    def is_configured(self) -> bool:
        return self._configured

    async def search(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        self.calls.append((name, options))
        if self._error is not None:
            raise self._error
        return [item for item in self._items if item.matched_name in ("", name)]


class FakeExtractor:
    def __init__(self, text: str = "Fistularia petimba was collected at Busan, Korea in 1965.", error: Exception | None = None):
        self.text = text
        self.error = error
        self.calls: list[str] = []
        self.available = True

    async def extract(self, pdf_path: str, **kwargs) -> ExtractionResult:
        self.calls.append(pdf_path)
        if self.error is not None:
            raise self.error
        return ExtractionResult(text=self.text, page_count=1, ocr_used=kwargs.get("enable_ocr", True))

    async def is_available(self) -> bool:
        return self.available


class FakeJudge:
    """Judge client: only ``:free`` OpenRouter models are billable."""

    def __init__(self, error: Exception | None = None, has_korea_record: bool | None = True):
        self.error = error
        self.has_korea_record = has_korea_record
        self.calls: list[JudgeRequest] = []

    def is_billable(self, request: JudgeRequest) -> bool:
        return request.provider == "openrouter" and request.model.endswith(":free")

    async def judge(self, request: JudgeRequest, text: str, species_name: str, synonyms=()) -> Judgment:
        self.calls.append(request)
        if self.error is not None:
            raise self.error
        return Judgment(
            has_korea_record=self.has_korea_record,
            confidence=0.9,
            model_used=f"{request.provider}/{request.model}",
            locality="Busan",
            reasoning="Specimen collected at Busan",
        )


def make_item(
    title: str,
    year: int | None,
    source: SourceId = SourceId.OPENALEX,
    *,
    matched_name: str = "",
    item_id: str | None = None,
    **kwargs,
) -> LiteratureItem:
    return LiteratureItem(
        id=item_id or f"{source.value}_{title[:20]}_{year}",
        source=source,
        title=title,
        year=year,
        matched_name=matched_name,
        **kwargs,
    )


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def fake_extractor() -> FakeExtractor:
    return FakeExtractor()


@pytest.fixture
def fake_judge() -> FakeJudge:
    return FakeJudge()


@pytest.fixture
def failing_judge() -> FakeJudge:
    return FakeJudge(error=UpstreamUnavailableError("openrouter", "no response from provider"))

"""
Narrow interfaces the application layer depends on.

Concrete implementations live in ``first_record.infrastructure``; tests
substitute in-memory fakes.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from first_record.domain.entities import (
    ExtractionResult,
    Judgment,
    LiteratureItem,
    SearchOptions,
    SourceId,
)


@runtime_checkable
class SourceAdapter(Protocol):
    source_id: SourceId

    @property
    def is_configured(self) -> bool: ...

    async def search(self, name: str, options: SearchOptions) -> list[LiteratureItem]: ...


@runtime_checkable
class Extractor(Protocol):
    async def extract(
        self,
        pdf_path: str,
        *,
        enable_ocr: bool = True,
        ocr_languages: tuple[str, ...] = ("eng", "kor"),
        extract_tables: bool = True,
        extract_figures: bool = True,
    ) -> ExtractionResult: ...

    async def is_available(self) -> bool: ...


@dataclass(frozen=True)
class JudgeRequest:
    """Which provider/model should judge a document."""

    provider: str
    model: str
    api_key: str | None = field(default=None, repr=False)


@runtime_checkable
class JudgeClient(Protocol):
    def is_billable(self, request: JudgeRequest) -> bool: ...

    async def judge(
        self, request: JudgeRequest, text: str, species_name: str, synonyms: Sequence[str] = ()
    ) -> Judgment: ...


@dataclass
class SynonymResolution:
    """Accepted name and synonyms returned by the synonym registry."""

    query: str
    success: bool = False
    accepted_name: str | None = None
    aphia_id: int | None = None
    authority: str | None = None
    synonyms: list[str] = field(default_factory=list)
    error: str | None = None

    def all_names(self) -> list[str]:
        """Accepted name first, then synonyms, for feeding a LiteratureQuery."""
        names = [self.accepted_name or self.query]
        names.extend(s for s in self.synonyms if s not in names)
        return names

    def to_dict(self) -> dict[str, object]:
        return {
            "query": self.query,
            "success": self.success,
            "accepted_name": self.accepted_name,
            "aphia_id": self.aphia_id,
            "authority": self.authority,
            "synonyms": list(self.synonyms),
            "error": self.error,
        }


@runtime_checkable
class SynonymResolver(Protocol):
    async def resolve(self, name: str) -> SynonymResolution: ...

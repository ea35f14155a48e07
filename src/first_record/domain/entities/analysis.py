"""
Analysis domain entities: stored PDFs and their per-document analysis state.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Literal

ErrorCode = Literal["quota_exceeded", "extraction_failed", "llm_failed", "internal"]


class AnalysisStatus(str, Enum):
    """Lifecycle of a document analysis.

    pending -> analyzing -> completed | error; completed and error may be
    re-triggered back to analyzing.
    """

    PENDING = "pending"
    ANALYZING = "analyzing"
    COMPLETED = "completed"
    ERROR = "error"


@dataclass(frozen=True)
class PdfAsset:
    """A validated PDF stored under the storage root."""

    id: str
    original_file_name: str
    sanitized_file_name: str
    storage_path: str
    size_bytes: int
    uploaded_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "original_file_name": self.original_file_name,
            "sanitized_file_name": self.sanitized_file_name,
            "storage_path": self.storage_path,
            "size_bytes": self.size_bytes,
            "uploaded_at": self.uploaded_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PdfAsset:
        return cls(
            id=data["id"],
            original_file_name=data.get("original_file_name", ""),
            sanitized_file_name=data.get("sanitized_file_name", ""),
            storage_path=data["storage_path"],
            size_bytes=data.get("size_bytes", 0),
            uploaded_at=datetime.fromisoformat(data["uploaded_at"]),
        )


@dataclass
class ExtractedTable:
    page: int | None = None
    caption: str | None = None
    data: list[list[str]] = field(default_factory=list)


@dataclass
class ExtractedFigure:
    page: int | None = None
    caption: str | None = None


@dataclass
class ExtractionResult:
    """Full text and structure returned by the extraction service."""

    text: str
    tables: list[ExtractedTable] = field(default_factory=list)
    figures: list[ExtractedFigure] = field(default_factory=list)
    page_count: int | None = None
    ocr_used: bool = False
    processing_time: float | None = None

    def summary(self) -> ExtractionSummary:
        return ExtractionSummary(
            text=self.text,
            text_length=len(self.text),
            table_count=len(self.tables),
            figure_count=len(self.figures),
            ocr_used=self.ocr_used,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "tables": [{"page": t.page, "caption": t.caption, "data": t.data} for t in self.tables],
            "figures": [{"page": f.page, "caption": f.caption} for f in self.figures],
            "page_count": self.page_count,
            "ocr_used": self.ocr_used,
            "processing_time": self.processing_time,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractionResult:
        return cls(
            text=data.get("text", ""),
            tables=[ExtractedTable(**t) for t in data.get("tables", [])],
            figures=[ExtractedFigure(**f) for f in data.get("figures", [])],
            page_count=data.get("page_count"),
            ocr_used=data.get("ocr_used", False),
            processing_time=data.get("processing_time"),
        )


@dataclass
class ExtractionSummary:
    text: str
    text_length: int
    table_count: int = 0
    figure_count: int = 0
    ocr_used: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "text": self.text,
            "text_length": self.text_length,
            "table_count": self.table_count,
            "figure_count": self.figure_count,
            "ocr_used": self.ocr_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ExtractionSummary:
        text = data.get("text", "")
        return cls(
            text=text,
            text_length=data.get("text_length", len(text)),
            table_count=data.get("table_count", 0),
            figure_count=data.get("figure_count", 0),
            ocr_used=data.get("ocr_used", False),
        )


@dataclass
class Judgment:
    """LLM verdict on whether a document records the species in Korea."""

    has_korea_record: bool | None
    confidence: float
    model_used: str
    locality: str | None = None
    collection_date: str | None = None
    specimen_info: str | None = None
    collector: str | None = None
    relevant_quotes: list[str] = field(default_factory=list)
    reasoning: str | None = None

    def __post_init__(self) -> None:
        self.confidence = min(1.0, max(0.0, float(self.confidence)))

    def to_dict(self) -> dict[str, Any]:
        return {
            "has_korea_record": self.has_korea_record,
            "confidence": self.confidence,
            "locality": self.locality,
            "collection_date": self.collection_date,
            "specimen_info": self.specimen_info,
            "collector": self.collector,
            "relevant_quotes": list(self.relevant_quotes),
            "reasoning": self.reasoning,
            "model_used": self.model_used,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Judgment:
        return cls(
            has_korea_record=data.get("has_korea_record"),
            confidence=data.get("confidence", 0.0),
            model_used=data.get("model_used", ""),
            locality=data.get("locality"),
            collection_date=data.get("collection_date"),
            specimen_info=data.get("specimen_info"),
            collector=data.get("collector"),
            relevant_quotes=data.get("relevant_quotes", []),
            reasoning=data.get("reasoning"),
        )


@dataclass
class AnalysisRecord:
    """Per-document analysis state, persisted as a JSON sidecar."""

    pdf_id: str
    asset: PdfAsset
    status: AnalysisStatus = AnalysisStatus.PENDING
    species_name: str | None = None
    citation: str | None = None
    publication_year: int | None = None
    extraction: ExtractionSummary | None = None
    judgment: Judgment | None = None
    error_message: str | None = None
    error_code: ErrorCode | None = None
    updated_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        """Serialize for JSON storage."""
        return {
            "pdf_id": self.pdf_id,
            "asset": self.asset.to_dict(),
            "status": self.status.value,
            "species_name": self.species_name,
            "citation": self.citation,
            "publication_year": self.publication_year,
            "extraction": self.extraction.to_dict() if self.extraction else None,
            "judgment": self.judgment.to_dict() if self.judgment else None,
            "error_message": self.error_message,
            "error_code": self.error_code,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def to_public_dict(self) -> dict[str, Any]:
        """Same as to_dict, without the full extracted text."""
        data = self.to_dict()
        if data["extraction"]:
            data["extraction"] = {k: v for k, v in data["extraction"].items() if k != "text"}
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> AnalysisRecord:
        """Deserialize from JSON storage."""
        return cls(
            pdf_id=data["pdf_id"],
            asset=PdfAsset.from_dict(data["asset"]),
            status=AnalysisStatus(data.get("status", "pending")),
            species_name=data.get("species_name"),
            citation=data.get("citation"),
            publication_year=data.get("publication_year"),
            extraction=ExtractionSummary.from_dict(data["extraction"]) if data.get("extraction") else None,
            judgment=Judgment.from_dict(data["judgment"]) if data.get("judgment") else None,
            error_message=data.get("error_message"),
            error_code=data.get("error_code"),
            updated_at=datetime.fromisoformat(data["updated_at"]) if data.get("updated_at") else None,
        )

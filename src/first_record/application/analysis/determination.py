"""
First-record determination over completed analyses.

Each analyzed document becomes a candidate with a confidence level:

    1 confirmed     Korea record with a locality and a date or specimen
    2 probable      Korea record with a locality or a supporting quote
    3 needs_review  undecided verdict, or a quote without a Korea record
    4 excluded      everything else

The first record is the earliest level 1 or 2 candidate (review needed
unless it is level 1), falling back to the earliest level 3 candidate.
Candidates without a publication year sort last.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

from first_record.application.analysis.store import AnalysisStore
from first_record.domain.entities import AnalysisRecord, AnalysisStatus, Judgment

logger = logging.getLogger(__name__)


class ConfidenceLevel(IntEnum):
    CONFIRMED = 1
    PROBABLE = 2
    NEEDS_REVIEW = 3
    EXCLUDED = 4

    @property
    def status(self) -> str:
        return level_to_status(self)


_STATUS_BY_LEVEL = {
    ConfidenceLevel.CONFIRMED: "confirmed",
    ConfidenceLevel.PROBABLE: "probable",
    ConfidenceLevel.NEEDS_REVIEW: "needs_review",
    ConfidenceLevel.EXCLUDED: "excluded",
}


def level_to_status(level: int) -> str:
    """Verification status for a level; ``not_checked`` for anything else."""
    try:
        return _STATUS_BY_LEVEL[ConfidenceLevel(level)]
    except ValueError:
        return "not_checked"


def determine_confidence_level(judgment: Judgment) -> ConfidenceLevel:
    has_quote = bool(judgment.relevant_quotes)
    if judgment.has_korea_record is True:
        if judgment.locality and (judgment.collection_date or judgment.specimen_info):
            return ConfidenceLevel.CONFIRMED
        if judgment.locality or has_quote:
            return ConfidenceLevel.PROBABLE
    if judgment.has_korea_record is None or has_quote:
        return ConfidenceLevel.NEEDS_REVIEW
    return ConfidenceLevel.EXCLUDED


@dataclass
class CandidateRecord:
    """One analyzed document as a first-record candidate."""

    pdf_id: str
    citation: str
    year: int | None
    has_korea_record: bool | None
    confidence_level: ConfidenceLevel
    locality: str | None = None
    quote: str | None = None
    model_used: str | None = None

    @classmethod
    def from_record(cls, record: AnalysisRecord) -> CandidateRecord:
        """Build from a completed record; raises ValueError without a judgment."""
        if record.judgment is None:
            raise ValueError(f"Record {record.pdf_id} has no judgment")
        judgment = record.judgment
        return cls(
            pdf_id=record.pdf_id,
            citation=record.citation or record.asset.original_file_name,
            year=record.publication_year,
            has_korea_record=judgment.has_korea_record,
            confidence_level=determine_confidence_level(judgment),
            locality=judgment.locality,
            quote=judgment.relevant_quotes[0] if judgment.relevant_quotes else None,
            model_used=judgment.model_used,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "pdf_id": self.pdf_id,
            "citation": self.citation,
            "year": self.year,
            "has_korea_record": self.has_korea_record,
            "confidence_level": int(self.confidence_level),
            "verification_status": self.confidence_level.status,
            "locality": self.locality,
            "quote": self.quote,
            "model_used": self.model_used,
        }


def sort_by_year(candidates: Iterable[CandidateRecord]) -> list[CandidateRecord]:
    """Oldest first; stable, with undated candidates last."""
    return sorted(candidates, key=lambda c: (c.year is None, c.year or 0))


@dataclass
class FirstRecord:
    pdf_id: str
    citation: str
    year: int | None
    confidence_level: ConfidenceLevel
    needs_manual_review: bool

    def to_dict(self) -> dict[str, Any]:
        return {
            "pdf_id": self.pdf_id,
            "citation": self.citation,
            "year": self.year,
            "confidence_level": int(self.confidence_level),
            "verification_status": self.confidence_level.status,
            "needs_manual_review": self.needs_manual_review,
        }


def determine_first_record(candidates: Iterable[CandidateRecord]) -> FirstRecord | None:
    ordered = sort_by_year(candidates)

    valid = [c for c in ordered if c.confidence_level <= ConfidenceLevel.PROBABLE]
    if valid:
        oldest = valid[0]
        needs_review = oldest.confidence_level != ConfidenceLevel.CONFIRMED
    else:
        review = [c for c in ordered if c.confidence_level == ConfidenceLevel.NEEDS_REVIEW]
        if not review:
            return None
        oldest = review[0]
        needs_review = True

    return FirstRecord(
        pdf_id=oldest.pdf_id,
        citation=oldest.citation,
        year=oldest.year,
        confidence_level=oldest.confidence_level,
        needs_manual_review=needs_review,
    )


@dataclass
class AnalysisSummary:
    """Verdict counts over a species' documents."""

    total: int = 0
    analyzed: int = 0
    with_korea_record: int = 0
    without_korea_record: int = 0
    uncertain: int = 0
    earliest_korea_record: CandidateRecord | None = None

    def to_dict(self) -> dict[str, Any]:
        earliest = self.earliest_korea_record
        return {
            "total": self.total,
            "analyzed": self.analyzed,
            "with_korea_record": self.with_korea_record,
            "without_korea_record": self.without_korea_record,
            "uncertain": self.uncertain,
            "earliest_korea_record": earliest.to_dict() if earliest else None,
        }


def summarize(records: Sequence[AnalysisRecord]) -> AnalysisSummary:
    """
    Count verdicts over ``records``.

    Only completed records with a judgment count as analyzed. The earliest
    Korea record is the oldest dated one whose verdict is a plain yes,
    whatever its confidence level.
    """
    summary = AnalysisSummary(total=len(records))
    for record in records:
        if record.status != AnalysisStatus.COMPLETED or record.judgment is None:
            continue
        summary.analyzed += 1
        verdict = record.judgment.has_korea_record
        if verdict is None:
            summary.uncertain += 1
        elif not verdict:
            summary.without_korea_record += 1
        else:
            summary.with_korea_record += 1
            if record.publication_year is None:
                continue
            earliest = summary.earliest_korea_record
            if earliest is None or record.publication_year < (earliest.year or 0):
                summary.earliest_korea_record = CandidateRecord.from_record(record)
    return summary


@dataclass
class FirstRecordResult:
    species_name: str
    synonyms: list[str]
    candidates: list[CandidateRecord] = field(default_factory=list)
    first_record: FirstRecord | None = None
    summary: AnalysisSummary = field(default_factory=AnalysisSummary)

    def to_dict(self) -> dict[str, Any]:
        return {
            "species_name": self.species_name,
            "synonyms": list(self.synonyms),
            "candidates": [c.to_dict() for c in self.candidates],
            "first_record": self.first_record.to_dict() if self.first_record else None,
            "summary": self.summary.to_dict(),
        }


class FirstRecordEvaluator:
    """
    Determines a species' first Korea record from the analysis store.

    A record belongs to the species when it was last analyzed under the
    accepted name or one of ``synonyms`` (case-insensitive).

    Usage:
        evaluator = FirstRecordEvaluator(store)
        result = evaluator.evaluate("Fistularia petimba", ["Fistularia serrata"])
        if result.first_record and result.first_record.needs_manual_review:
            ...
    """

    def __init__(self, store: AnalysisStore) -> None:
        self._store = store

    def records_for(self, species_name: str, synonyms: Sequence[str] = ()) -> list[AnalysisRecord]:
        names = {n.strip().casefold() for n in (species_name, *synonyms) if n.strip()}
        return [
            record
            for record in self._store.list_records()
            if record.species_name and record.species_name.strip().casefold() in names
        ]

    def evaluate(self, species_name: str, synonyms: Sequence[str] = ()) -> FirstRecordResult:
        records = self.records_for(species_name, synonyms)
        candidates = sort_by_year(
            CandidateRecord.from_record(r)
            for r in records
            if r.status == AnalysisStatus.COMPLETED and r.judgment is not None
        )
        first = determine_first_record(candidates)
        logger.info(
            f"First record for {species_name}: {len(candidates)} candidates, "
            + (f"{first.year} (level {int(first.confidence_level)})" if first else "none")
        )
        return FirstRecordResult(
            species_name=species_name,
            synonyms=list(synonyms),
            candidates=candidates,
            first_record=first,
            summary=summarize(records),
        )

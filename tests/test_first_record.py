"""
Tests for first-record determination.

Coverage:
1. Confidence levels from a judgment and their verification status
2. Year ordering with undated candidates last
3. First record: earliest level 1/2, level 3 fallback, nothing otherwise
4. Verdict summary counts and the earliest Korea record
5. FirstRecordEvaluator over the analysis store (species and synonym matching)
"""

from __future__ import annotations

from datetime import UTC, datetime

import pytest

from first_record.application.analysis import (
    AnalysisStore,
    CandidateRecord,
    ConfidenceLevel,
    FirstRecordEvaluator,
)
from first_record.application.analysis.determination import (
    determine_confidence_level,
    determine_first_record,
    level_to_status,
    sort_by_year,
    summarize,
)
from first_record.domain.entities import AnalysisRecord, AnalysisStatus, Judgment, PdfAsset


def make_judgment(has_korea_record=True, **kwargs) -> Judgment:
    return Judgment(has_korea_record=has_korea_record, confidence=0.8, model_used="ollama/qwen2.5:14b", **kwargs)


def make_candidate(pdf_id: str, year: int | None, level: ConfidenceLevel) -> CandidateRecord:
    return CandidateRecord(
        pdf_id=pdf_id,
        citation=f"Citation {pdf_id}",
        year=year,
        has_korea_record=level <= ConfidenceLevel.PROBABLE,
        confidence_level=level,
    )


def make_record(
    pdf_id: str,
    year: int | None,
    judgment: Judgment | None,
    *,
    species: str | None = "Fistularia petimba",
    status: AnalysisStatus = AnalysisStatus.COMPLETED,
) -> AnalysisRecord:
    asset = PdfAsset(
        id=pdf_id,
        original_file_name=f"{pdf_id}.pdf",
        sanitized_file_name=pdf_id,
        storage_path=f"/data/pdfs/{pdf_id}.pdf",
        size_bytes=2048,
        uploaded_at=datetime(2024, 5, 1, tzinfo=UTC),
    )
    return AnalysisRecord(
        pdf_id=pdf_id,
        asset=asset,
        status=status,
        species_name=species,
        citation=f"Author ({year}) {pdf_id}" if year else None,
        publication_year=year,
        judgment=judgment,
    )


# =============================================================================
# Confidence levels
# =============================================================================


class TestConfidenceLevel:
    @pytest.mark.parametrize(
        ("judgment", "expected"),
        [
            (make_judgment(locality="Busan", collection_date="1965-05-02"), ConfidenceLevel.CONFIRMED),
            (make_judgment(locality="Busan", specimen_info="NIBR 1234"), ConfidenceLevel.CONFIRMED),
            (make_judgment(locality="Busan"), ConfidenceLevel.PROBABLE),
            (make_judgment(relevant_quotes=["found off Corea"]), ConfidenceLevel.PROBABLE),
            (make_judgment(collection_date="1965"), ConfidenceLevel.EXCLUDED),
            (make_judgment(None), ConfidenceLevel.NEEDS_REVIEW),
            (make_judgment(False, relevant_quotes=["Japan only"]), ConfidenceLevel.NEEDS_REVIEW),
            (make_judgment(False, locality="Nagasaki"), ConfidenceLevel.EXCLUDED),
        ],
    )
    def test_determine(self, judgment, expected):
        assert determine_confidence_level(judgment) == expected

    @pytest.mark.parametrize(
        ("level", "status"),
        [(1, "confirmed"), (2, "probable"), (3, "needs_review"), (4, "excluded"), (0, "not_checked")],
    )
    def test_status(self, level, status):
        assert level_to_status(level) == status

    def test_status_property(self):
        assert ConfidenceLevel.PROBABLE.status == "probable"


# =============================================================================
# First record
# =============================================================================


class TestDetermineFirstRecord:
    def test_sort_undated_last(self):
        ordered = sort_by_year(
            [
                make_candidate("c", None, ConfidenceLevel.CONFIRMED),
                make_candidate("b", 1950, ConfidenceLevel.CONFIRMED),
                make_candidate("a", 1880, ConfidenceLevel.CONFIRMED),
            ]
        )
        assert [c.pdf_id for c in ordered] == ["a", "b", "c"]

    def test_empty(self):
        assert determine_first_record([]) is None

    def test_earliest_confirmed(self):
        first = determine_first_record(
            [
                make_candidate("late", 1960, ConfidenceLevel.CONFIRMED),
                make_candidate("early", 1905, ConfidenceLevel.CONFIRMED),
            ]
        )
        assert first.pdf_id == "early"
        assert first.year == 1905
        assert first.needs_manual_review is False

    def test_probable_before_confirmed_needs_review(self):
        first = determine_first_record(
            [
                make_candidate("confirmed", 1960, ConfidenceLevel.CONFIRMED),
                make_candidate("probable", 1930, ConfidenceLevel.PROBABLE),
            ]
        )
        assert first.pdf_id == "probable"
        assert first.confidence_level == ConfidenceLevel.PROBABLE
        assert first.needs_manual_review is True

    def test_older_needs_review_candidate_ignored_when_valid_exists(self):
        first = determine_first_record(
            [
                make_candidate("review", 1850, ConfidenceLevel.NEEDS_REVIEW),
                make_candidate("probable", 1930, ConfidenceLevel.PROBABLE),
            ]
        )
        assert first.pdf_id == "probable"

    def test_needs_review_fallback(self):
        first = determine_first_record(
            [
                make_candidate("excluded", 1800, ConfidenceLevel.EXCLUDED),
                make_candidate("review-late", 1950, ConfidenceLevel.NEEDS_REVIEW),
                make_candidate("review-early", 1900, ConfidenceLevel.NEEDS_REVIEW),
            ]
        )
        assert first.pdf_id == "review-early"
        assert first.confidence_level == ConfidenceLevel.NEEDS_REVIEW
        assert first.needs_manual_review is True

    def test_only_excluded(self):
        assert determine_first_record([make_candidate("x", 1900, ConfidenceLevel.EXCLUDED)]) is None

    def test_to_dict(self):
        data = determine_first_record([make_candidate("a", 1900, ConfidenceLevel.CONFIRMED)]).to_dict()
        assert data["confidence_level"] == 1
        assert data["verification_status"] == "confirmed"
        assert data["citation"] == "Citation a"


# =============================================================================
# Summary
# =============================================================================


class TestSummarize:
    def test_counts(self):
        records = [
            make_record("yes-late", 1960, make_judgment(locality="Busan")),
            make_record("yes-early", 1910, make_judgment()),
            make_record("yes-undated", None, make_judgment()),
            make_record("no", 1900, make_judgment(False)),
            make_record("unsure", 1890, make_judgment(None)),
            make_record("pending", 1800, None, status=AnalysisStatus.PENDING),
            make_record("failed", 1800, None, status=AnalysisStatus.ERROR),
        ]

        summary = summarize(records)

        assert summary.total == 7
        assert summary.analyzed == 5
        assert summary.with_korea_record == 3
        assert summary.without_korea_record == 1
        assert summary.uncertain == 1
        assert summary.earliest_korea_record.pdf_id == "yes-early"

    def test_no_dated_korea_record(self):
        summary = summarize([make_record("a", None, make_judgment())])

        assert summary.with_korea_record == 1
        assert summary.earliest_korea_record is None
        assert summary.to_dict()["earliest_korea_record"] is None


# =============================================================================
# Evaluator
# =============================================================================


@pytest.fixture
def store(temp_dir):
    return AnalysisStore(temp_dir / "results")


class TestEvaluator:
    def test_evaluate(self, store):
        store.save(make_record("a", 1935, make_judgment(locality="Busan", collection_date="1934")))
        store.save(make_record("b", 1912, make_judgment(relevant_quotes=["near Fusan"]), species="Fistularia serrata"))
        store.save(make_record("c", 1890, make_judgment(False)))
        store.save(make_record("other", 1800, make_judgment(locality="Jeju"), species="Sebastes schlegelii"))
        store.save(make_record("never-analyzed", 1700, None, species=None, status=AnalysisStatus.PENDING))

        result = FirstRecordEvaluator(store).evaluate("Fistularia petimba", ["fistularia SERRATA"])

        assert [c.pdf_id for c in result.candidates] == ["c", "b", "a"]
        assert result.first_record.pdf_id == "b"
        assert result.first_record.year == 1912
        assert result.first_record.needs_manual_review is True
        assert result.summary.total == 3
        assert result.summary.earliest_korea_record.pdf_id == "b"

    def test_no_records(self, store):
        result = FirstRecordEvaluator(store).evaluate("Fistularia petimba")

        assert result.candidates == []
        assert result.first_record is None
        assert result.to_dict()["summary"]["total"] == 0

    def test_citation_falls_back_to_file_name(self, store):
        record = make_record("a", None, make_judgment(locality="Busan"))
        store.save(record)

        [candidate] = FirstRecordEvaluator(store).evaluate("Fistularia petimba").candidates

        assert candidate.citation == "a.pdf"
        assert candidate.to_dict()["verification_status"] == "probable"

    def test_candidate_requires_judgment(self):
        with pytest.raises(ValueError):
            CandidateRecord.from_record(make_record("a", 1900, None))

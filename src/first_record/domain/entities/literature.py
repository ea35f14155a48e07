"""
Literature domain entities for first-record collection.

A collection run fans one LiteratureQuery out to every enabled source
adapter, once per name and per search pass, and merges the answers into
a single ranked CollectionResult.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from first_record.shared.exceptions import InvalidParameterError, InvalidQueryError

MAX_RESULTS_LIMIT = 100
MAX_SEARCH_NAMES = 50

_WHITESPACE_RE = re.compile(r"\s+")


class SourceId(str, Enum):
    """Bibliographic sources the collector can query."""

    BHL = "bhl"
    OPENALEX = "openalex"
    SEMANTIC_SCHOLAR = "semantic_scholar"
    KCI = "kci"
    RISS = "riss"
    SCIENCEON = "scienceon"


class SearchStrategy(str, Enum):
    """Which search passes a collection performs."""

    HISTORICAL = "historical"  # no Korea keyword, old literature first
    KOREA = "korea"  # Korea keyword appended
    BOTH = "both"


class ItemKind(str, Enum):
    ARTICLE = "article"
    PATENT = "patent"
    REPORT = "report"


@dataclass(frozen=True)
class SearchOptions:
    """Per-call options handed to a source adapter."""

    max_results: int = 20
    year_from: int | None = None
    year_to: int | None = None
    include_korea_keyword: bool = False


@dataclass
class LiteratureQuery:
    """A request to collect literature for one species."""

    primary_name: str
    synonym_names: list[str] = field(default_factory=list)
    year_from: int | None = None
    year_to: int | None = None
    strategy: SearchStrategy = SearchStrategy.BOTH
    max_results: int = 20
    enabled_sources: set[SourceId] = field(default_factory=lambda: set(SourceId))

    def __post_init__(self) -> None:
        self.strategy = SearchStrategy(self.strategy)
        self.enabled_sources = {SourceId(s) for s in self.enabled_sources}
        self.validate()

    def validate(self) -> None:
        """Raise a ValidationError subclass when the query is unusable."""
        if not self.primary_name or not self.primary_name.strip():
            raise InvalidQueryError(self.primary_name, "primary name cannot be blank")
        if not 1 <= self.max_results <= MAX_RESULTS_LIMIT:
            raise InvalidParameterError("max_results", self.max_results, f"1-{MAX_RESULTS_LIMIT}")
        if self.year_from is not None and self.year_to is not None and self.year_from > self.year_to:
            raise InvalidParameterError(
                "year_from", self.year_from, f"a year not after year_to ({self.year_to})"
            )

    def search_names(self) -> list[str]:
        """Primary name then synonyms, blanks and case-insensitive repeats removed."""
        names: list[str] = []
        seen: set[str] = set()
        for raw in [self.primary_name, *self.synonym_names]:
            name = _WHITESPACE_RE.sub(" ", raw or "").strip()
            key = name.lower()
            if not name or key in seen:
                continue
            seen.add(key)
            names.append(name)
            if len(names) >= MAX_SEARCH_NAMES:
                break
        return names

    def to_dict(self) -> dict[str, Any]:
        return {
            "primary_name": self.primary_name,
            "synonym_names": list(self.synonym_names),
            "year_from": self.year_from,
            "year_to": self.year_to,
            "strategy": self.strategy.value,
            "max_results": self.max_results,
            "enabled_sources": sorted(s.value for s in self.enabled_sources),
        }


@dataclass
class LiteratureItem:
    """A single search hit, normalized across sources."""

    id: str
    source: SourceId
    title: str
    matched_name: str
    url: str = ""
    authors: list[str] = field(default_factory=list)
    year: int | None = None
    venue: str | None = None
    pdf_url: str | None = None
    snippet: str | None = None
    doi: str | None = None
    relevance_score: float | None = None
    kind: ItemKind = ItemKind.ARTICLE

    @property
    def dedup_key(self) -> str:
        """Lower-cased, whitespace-collapsed title plus year."""
        title = _WHITESPACE_RE.sub(" ", self.title.lower()).strip()
        if self.year is None:
            return title
        return f"{title}|{self.year}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "source": self.source.value,
            "title": self.title,
            "authors": list(self.authors),
            "year": self.year,
            "venue": self.venue,
            "url": self.url,
            "pdf_url": self.pdf_url,
            "snippet": self.snippet,
            "doi": self.doi,
            "matched_name": self.matched_name,
            "relevance_score": self.relevance_score,
            "kind": self.kind.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LiteratureItem:
        return cls(
            id=data["id"],
            source=SourceId(data["source"]),
            title=data.get("title", ""),
            matched_name=data.get("matched_name", ""),
            url=data.get("url", ""),
            authors=data.get("authors", []),
            year=data.get("year"),
            venue=data.get("venue"),
            pdf_url=data.get("pdf_url"),
            snippet=data.get("snippet"),
            doi=data.get("doi"),
            relevance_score=data.get("relevance_score"),
            kind=ItemKind(data.get("kind", "article")),
        )


@dataclass
class CollectionResult:
    """Merged, deduplicated and ranked output of one collection run."""

    query: LiteratureQuery
    items: list[LiteratureItem] = field(default_factory=list)
    per_source_errors: dict[SourceId, str] = field(default_factory=dict)
    total_found: int = 0
    skipped_sources: list[SourceId] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "query": self.query.to_dict(),
            "items": [item.to_dict() for item in self.items],
            "per_source_errors": {s.value: msg for s, msg in self.per_source_errors.items()},
            "total_found": self.total_found,
            "skipped_sources": [s.value for s in self.skipped_sources],
        }


def parse_year(value: Any) -> int | None:
    """Pull a four-digit year out of whatever a source returns."""
    if value is None:
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    match = re.search(r"\b(1[5-9]\d{2}|20\d{2})\b", str(value))
    return int(match.group(1)) if match else None

"""
OpenAlex Integration

Primary index for modern scholarly literature.

API Documentation: https://docs.openalex.org/

Features:
- Completely free and open (no API key required)
- Publication year filter applied server-side
- Open access PDF links (best_oa_location)
- Abstracts shipped as inverted indices
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from first_record.domain.entities import LiteratureItem, SearchOptions, SourceId
from first_record.domain.entities.literature import parse_year
from first_record.infrastructure.sources.base_client import LiteratureSourceClient

logger = logging.getLogger(__name__)

# OpenAlex API endpoints
OA_API_BASE = "https://api.openalex.org"
OA_WORKS_URL = f"{OA_API_BASE}/works"

# Polite pool email (higher rate limits); override with OPENALEX_EMAIL
DEFAULT_EMAIL = "first-record-finder@example.com"


class OpenAlexClient(LiteratureSourceClient):
    """
    OpenAlex API client.

    Usage:
        client = OpenAlexClient(email="your@email.com")
        items = await client.search("Fistularia petimba", SearchOptions(max_results=10))
    """

    _service_name = "OpenAlex"
    source_id = SourceId.OPENALEX

    def __init__(self, email: str | None = None, timeout: float = 30.0, **kwargs: Any):
        """
        Initialize client.

        Args:
            email: Email for polite pool (higher rate limits)
            timeout: Request timeout in seconds
        """
        self._email = email or DEFAULT_EMAIL
        super().__init__(
            timeout=timeout,
            min_interval=0.1,
            headers={
                "User-Agent": f"first-record-finder/1.0 (mailto:{self._email})",
                "Accept": "application/json",
            },
            **kwargs,
        )

    async def search(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        """
        Search OpenAlex works.

        Args:
            name: Scientific name to search for
            options: Per-call budget, year window and Korea keyword flag

        Returns:
            Items sorted by the OpenAlex-derived relevance score
        """
        params = {
            "search": self._search_term(name, options),
            "per_page": str(min(options.max_results, 100)),
            "mailto": self._email,
        }

        year_filter = self._year_filter(options)
        if year_filter:
            params["filter"] = year_filter

        url = f"{OA_WORKS_URL}?{urllib.parse.urlencode(params)}"
        data = await self._make_request(url)

        if not isinstance(data, dict):
            return []

        items = [
            self._normalize_work(w, name)
            for w in data.get("results", []) or []
            if self._within_years(w.get("publication_year"), options)
        ]
        items.sort(key=lambda item: item.relevance_score or 0.0, reverse=True)
        return items[: options.max_results]

    @staticmethod
    def _year_filter(options: SearchOptions) -> str | None:
        if options.year_from and options.year_to:
            return f"publication_year:{options.year_from}-{options.year_to}"
        if options.year_from:
            return f"publication_year:>{options.year_from - 1}"
        if options.year_to:
            return f"publication_year:<{options.year_to + 1}"
        return None

    def _normalize_work(self, work: dict[str, Any], matched_name: str) -> LiteratureItem:
        """
        Normalize an OpenAlex work to a LiteratureItem.

        Note: OpenAlex returns very large objects. We extract only essential fields.
        """
        openalex_id = (work.get("id") or "").replace("https://openalex.org/", "")

        doi = work.get("doi") or ""
        if doi.startswith("https://doi.org/"):
            doi = doi.replace("https://doi.org/", "")

        authors = []
        for authorship in (work.get("authorships") or [])[:10]:
            author = authorship.get("author") or {}
            display = author.get("display_name") or authorship.get("raw_author_name")
            if display:
                authors.append(display)

        primary_location = work.get("primary_location") or {}
        source = primary_location.get("source") or {}
        best_oa = work.get("best_oa_location") or {}
        oa = work.get("open_access") or {}

        pdf_url = best_oa.get("pdf_url") or primary_location.get("pdf_url") or oa.get("oa_url")
        url = (
            primary_location.get("landing_page_url")
            or (f"https://doi.org/{doi}" if doi else "")
            or f"https://openalex.org/{openalex_id}"
        )

        return LiteratureItem(
            id=f"openalex_{openalex_id}",
            source=self.source_id,
            title=work.get("display_name") or work.get("title") or "Untitled",
            authors=authors,
            year=parse_year(work.get("publication_year")),
            venue=source.get("display_name") or None,
            url=url,
            pdf_url=pdf_url,
            snippet=self._snippet(self._get_abstract(work)),
            doi=doi or None,
            matched_name=matched_name,
            relevance_score=self._relevance(work),
        )

    @staticmethod
    def _relevance(work: dict[str, Any]) -> float:
        """Open access, citations and a DOI each raise the base score of 0.5."""
        score = 0.5
        oa = work.get("open_access") or {}
        if work.get("is_oa") or oa.get("is_oa"):
            score += 0.2
        cited = work.get("cited_by_count") or 0
        if cited:
            score += min(cited / 100, 0.2)
        if work.get("doi"):
            score += 0.1
        return min(score, 1.0)

    def _get_abstract(self, work: dict[str, Any]) -> str:
        """
        Extract abstract from OpenAlex inverted index format.

        OpenAlex stores abstracts as inverted indices to save space.
        Format: {"word": [positions], ...}
        """
        abstract_index = work.get("abstract_inverted_index")
        if not abstract_index:
            return ""

        word_positions = [(pos, word) for word, positions in abstract_index.items() for pos in positions]
        word_positions.sort(key=lambda x: x[0])
        return " ".join(word for _, word in word_positions)

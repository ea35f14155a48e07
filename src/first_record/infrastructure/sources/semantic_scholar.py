"""
Semantic Scholar Integration

Backup scholarly index, queried alongside OpenAlex.

API Documentation: https://api.semanticscholar.org/api-docs/

Features:
- Cross-domain search (not limited to biomedicine)
- Open access PDF links
- Optional API key (raises the rate limit)
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from first_record.domain.entities import LiteratureItem, SearchOptions, SourceId
from first_record.domain.entities.literature import parse_year
from first_record.infrastructure.sources.base_client import LiteratureSourceClient

logger = logging.getLogger(__name__)

# Semantic Scholar API endpoints
S2_API_BASE = "https://api.semanticscholar.org/graph/v1"
S2_SEARCH_URL = f"{S2_API_BASE}/paper/search"

# Fields to request
DEFAULT_FIELDS = [
    "paperId",
    "externalIds",
    "url",
    "title",
    "abstract",
    "venue",
    "year",
    "isOpenAccess",
    "openAccessPdf",
    "journal",
    "authors",
    "citationCount",
    "fieldsOfStudy",
]

_BIOLOGY_FIELDS = ("biology", "marine", "fish")


class SemanticScholarClient(LiteratureSourceClient):
    """
    Semantic Scholar API client.

    Usage:
        client = SemanticScholarClient()
        items = await client.search("Fistularia petimba", SearchOptions(max_results=10))
    """

    _service_name = "Semantic Scholar"
    source_id = SourceId.SEMANTIC_SCHOLAR

    def __init__(self, api_key: str | None = None, timeout: float = 30.0, **kwargs: Any):
        """
        Initialize client.

        Args:
            api_key: Optional S2 API key (increases rate limit)
            timeout: Request timeout in seconds
        """
        self._api_key = api_key
        headers = {"Accept": "application/json"}
        if api_key:
            headers["x-api-key"] = api_key
        super().__init__(
            timeout=timeout,
            min_interval=0.5 if not api_key else 0.1,  # Conservative without a key
            headers=headers,
            **kwargs,
        )

    async def search(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        params = {
            "query": self._search_term(name, options),
            "limit": str(min(options.max_results, 100)),
            "fields": ",".join(DEFAULT_FIELDS),
        }

        if options.year_from or options.year_to:
            params["year"] = f"{options.year_from or ''}-{options.year_to or ''}"

        url = f"{S2_SEARCH_URL}?{urllib.parse.urlencode(params)}"
        data = await self._make_request(url)

        if not isinstance(data, dict):
            return []

        items = [
            self._normalize_paper(p, name)
            for p in data.get("data", []) or []
            if p.get("title") and self._within_years(p.get("year"), options)
        ]
        items.sort(key=lambda item: item.relevance_score or 0.0, reverse=True)
        return items[: options.max_results]

    def _normalize_paper(self, paper: dict[str, Any], matched_name: str) -> LiteratureItem:
        """Normalize a Semantic Scholar paper to a LiteratureItem."""
        paper_id = paper.get("paperId", "")
        external_ids = paper.get("externalIds") or {}
        journal = paper.get("journal") or {}
        oa_pdf = paper.get("openAccessPdf") or {}

        return LiteratureItem(
            id=f"semantic_scholar_{paper_id}",
            source=self.source_id,
            title=paper["title"],
            authors=[a.get("name", "") for a in paper.get("authors") or [] if a.get("name")],
            year=parse_year(paper.get("year")),
            venue=journal.get("name") or paper.get("venue") or None,
            url=paper.get("url") or f"https://www.semanticscholar.org/paper/{paper_id}",
            pdf_url=oa_pdf.get("url") or None,
            snippet=self._snippet(paper.get("abstract")),
            doi=external_ids.get("DOI"),
            matched_name=matched_name,
            relevance_score=self._relevance(paper),
        )

    @staticmethod
    def _relevance(paper: dict[str, Any]) -> float:
        score = 0.5
        if paper.get("isOpenAccess") and (paper.get("openAccessPdf") or {}).get("url"):
            score += 0.2
        citations = paper.get("citationCount") or 0
        if citations:
            score += min(citations / 100, 0.2)
        fields = [f.lower() for f in paper.get("fieldsOfStudy") or []]
        if any(marker in f for f in fields for marker in _BIOLOGY_FIELDS):
            score += 0.1
        return min(score, 1.0)

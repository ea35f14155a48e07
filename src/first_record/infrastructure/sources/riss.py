"""
RISS (Research Information Sharing Service) Integration

Korean theses and journal articles. JSON total search; requires RISS_API_KEY.
"""

from __future__ import annotations

import hashlib
import logging
import urllib.parse
from typing import Any

from first_record.domain.entities import LiteratureItem, SearchOptions, SourceId
from first_record.domain.entities.literature import parse_year
from first_record.infrastructure.sources.base_client import LiteratureSourceClient
from first_record.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

RISS_API_BASE = "http://openapi.riss.kr/openapi/search"
RISS_SUCCESS_CODE = "00"


class RISSClient(LiteratureSourceClient):
    """RISS total search client. Domestic index: the Korea keyword flag is ignored."""

    _service_name = "RISS"
    source_id = SourceId.RISS

    def __init__(self, api_key: str | None = None, timeout: float = 30.0, **kwargs: Any):
        self._api_key = api_key
        super().__init__(
            base_url=RISS_API_BASE,
            timeout=timeout,
            min_interval=0.5,
            headers={"Accept": "application/json"},
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._api_key)

    async def search(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        if not self.is_configured:
            raise ConfigurationError("RISS_API_KEY is not configured")

        params = {
            "serviceKey": self._api_key or "",
            "query": name,
            "searchType": "all",
            "numOfRows": str(min(options.max_results, 100)),
            "pageNo": "1",
        }
        if options.year_from:
            params["startYear"] = str(options.year_from)
        if options.year_to:
            params["endYear"] = str(options.year_to)

        data = await self._make_request(f"/totalSearch?{urllib.parse.urlencode(params)}")
        if not isinstance(data, dict):
            return []

        result = data.get("result") or {}
        if result.get("resultCode") != RISS_SUCCESS_CODE:
            logger.warning(f"RISS search failed: {result.get('resultMessage', 'unknown error')}")
            return []

        articles = (data.get("body") or {}).get("items") or []
        items = [
            self._normalize_article(a, name)
            for a in articles
            if a.get("title") and self._within_years(parse_year(a.get("publicationYear")), options)
        ]
        items.sort(key=lambda item: item.relevance_score or 0.0, reverse=True)
        return items[: options.max_results]

    def _normalize_article(self, article: dict[str, Any], matched_name: str) -> LiteratureItem:
        native_id = article.get("articleId") or article.get("controlNo")
        if not native_id:
            # Stable fallback so the same record keeps the same id across calls
            native_id = hashlib.sha1(article["title"].encode("utf-8")).hexdigest()[:12]
        authors = [a.strip() for a in (article.get("creator") or "").split(";") if a.strip()]
        return LiteratureItem(
            id=f"riss_{native_id}",
            source=self.source_id,
            title=article["title"],
            authors=authors,
            year=parse_year(article.get("publicationYear")),
            venue=article.get("journalName") or article.get("publisher") or None,
            url=article.get("detailLink") or article.get("url") or f"https://www.riss.kr/link?id={native_id}",
            pdf_url=article.get("pdfLink") or None,
            snippet=self._snippet(article.get("abstract")),
            doi=article.get("doi") or None,
            matched_name=matched_name,
            relevance_score=self._relevance(article, matched_name),
        )

    @staticmethod
    def _relevance(article: dict[str, Any], name: str) -> float:
        score = 0.5
        needle = name.lower()
        if needle in (article.get("title") or "").lower():
            score += 0.3
        if needle in (article.get("abstract") or "").lower():
            score += 0.1
        if article.get("pdfLink"):
            score += 0.1
        return min(score, 1.0)

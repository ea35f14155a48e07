"""
KCI (Korea Citation Index) Integration

Domestic journal articles, used to find recent Korean-waters records.

API: KCI article search OpenAPI (JSON); requires KCI_API_KEY.
KCI does not serve PDFs directly, so items never carry ``pdf_url``.
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

from first_record.domain.entities import LiteratureItem, SearchOptions, SourceId
from first_record.domain.entities.literature import parse_year
from first_record.infrastructure.sources.base_client import LiteratureSourceClient
from first_record.shared.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

KCI_API_BASE = "http://open.kci.go.kr/openapi/search"
KCI_ARTICLE_URL = (
    "https://www.kci.go.kr/kciportal/ci/sereArticleSearch/ciSereArtiView.kci"
    "?sereArticleSearchBean.artiId="
)


class KCIClient(LiteratureSourceClient):
    """
    KCI article search client.

    The index is domestic, so the Korea keyword flag is ignored: every
    hit is already Korean literature.
    """

    _service_name = "KCI"
    source_id = SourceId.KCI

    def __init__(self, api_key: str | None = None, timeout: float = 30.0, **kwargs: Any):
        self._api_key = api_key
        super().__init__(
            base_url=KCI_API_BASE,
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
            raise ConfigurationError("KCI_API_KEY is not configured")

        params = {
            "apiCode": "articleSearch",
            "key": self._api_key or "",
            "title": name,
            "displayCount": str(min(options.max_results, 100)),
            "page": "1",
        }
        if options.year_from:
            params["startYear"] = str(options.year_from)
        if options.year_to:
            params["endYear"] = str(options.year_to)

        data = await self._make_request(f"/articleSearch?{urllib.parse.urlencode(params)}")
        if not isinstance(data, dict):
            return []

        output = data.get("outputData") or {}
        if output.get("resultCode") != "S":
            logger.warning(f"KCI search failed: {output.get('resultMessage', 'unknown error')}")
            return []

        items = [
            self._normalize_article(a, name)
            for a in output.get("result") or []
            if self._within_years(parse_year(a.get("pubYear")), options)
        ]
        items.sort(key=lambda item: item.relevance_score or 0.0, reverse=True)
        return items[: options.max_results]

    def _normalize_article(self, article: dict[str, Any], matched_name: str) -> LiteratureItem:
        article_id = article.get("articleId", "")
        authors = [a.strip() for a in (article.get("author") or "").split(",") if a.strip()]
        return LiteratureItem(
            id=f"kci_{article_id}",
            source=self.source_id,
            title=article.get("title") or article.get("titleEn") or "Untitled",
            authors=authors,
            year=parse_year(article.get("pubYear")),
            venue=article.get("journalName") or None,
            url=article.get("url") or f"{KCI_ARTICLE_URL}{article_id}",
            snippet=self._snippet(article.get("abstract") or article.get("abstractEn")),
            doi=article.get("doi") or None,
            matched_name=matched_name,
            relevance_score=self._relevance(article, matched_name),
        )

    @staticmethod
    def _relevance(article: dict[str, Any], name: str) -> float:
        score = 0.5
        needle = name.lower()
        title = f"{article.get('title') or ''} {article.get('titleEn') or ''}".lower()
        if needle in title:
            score += 0.3
        abstract = f"{article.get('abstract') or ''} {article.get('abstractEn') or ''}".lower()
        if needle in abstract:
            score += 0.1
        citations = article.get("citation") or 0
        if citations:
            score += min(citations / 50, 0.1)
        return min(score, 1.0)

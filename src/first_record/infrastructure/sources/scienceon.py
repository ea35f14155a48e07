"""
ScienceON (KISTI) Integration

National science and technology portal: articles, patents and reports.

API: https://apigateway.kisti.re.kr/openapicall.do (XML responses)

Requires:
- SCIENCEON_CLIENT_ID: client id
- SCIENCEON_API_KEY: access token
"""

from __future__ import annotations

import json
import logging
import re
import urllib.parse
from datetime import UTC, datetime
from typing import Any
from xml.etree.ElementTree import Element

import defusedxml.ElementTree as ET  # Security: prevent XML attacks
from defusedxml import DefusedXmlException

from first_record.domain.entities import ItemKind, LiteratureItem, SearchOptions, SourceId
from first_record.domain.entities.literature import parse_year
from first_record.infrastructure.sources.base_client import LiteratureSourceClient
from first_record.shared.exceptions import ConfigurationError, ParseError

logger = logging.getLogger(__name__)

SCIENCEON_API_BASE = "https://apigateway.kisti.re.kr/openapicall.do"
SCIENCEON_ARTICLE_URL = "https://scienceon.kisti.re.kr/srch/selectPORSrchArticle.do?cn="

# Content targets per item kind
TARGETS: dict[ItemKind, str] = {
    ItemKind.ARTICLE: "ARTI",
    ItemKind.PATENT: "PATENT",
    ItemKind.REPORT: "REPORT",
}

DEFAULT_YEAR_FROM = 1900

_AUTHOR_SPLIT_RE = re.compile(r"[,;]")


class ScienceONClient(LiteratureSourceClient):
    """
    ScienceON API client.

    ``search`` covers journal articles; ``search_patents`` and
    ``search_reports`` query the other two content targets.
    """

    _service_name = "ScienceON"
    source_id = SourceId.SCIENCEON

    def __init__(
        self,
        client_id: str | None = None,
        api_key: str | None = None,
        timeout: float = 30.0,
        **kwargs: Any,
    ):
        self._client_id = client_id
        self._api_key = api_key
        super().__init__(
            timeout=timeout,
            min_interval=0.5,
            headers={"Accept": "application/xml"},
            **kwargs,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._client_id and self._api_key)

    async def search(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        return await self._search(name, options, ItemKind.ARTICLE)

    async def search_patents(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        return await self._search(name, options, ItemKind.PATENT)

    async def search_reports(self, name: str, options: SearchOptions) -> list[LiteratureItem]:
        return await self._search(name, options, ItemKind.REPORT)

    async def _search(self, name: str, options: SearchOptions, kind: ItemKind) -> list[LiteratureItem]:
        if not self.is_configured:
            raise ConfigurationError("SCIENCEON_CLIENT_ID and SCIENCEON_API_KEY must both be configured")

        search_query: dict[str, str] = {"title": self._search_term(name, options)}
        if options.year_from or options.year_to:
            year_from = options.year_from or DEFAULT_YEAR_FROM
            year_to = options.year_to or datetime.now(UTC).year
            search_query["pubyear"] = f"{year_from}-{year_to}"

        params = {
            "client_id": self._client_id or "",
            "token": self._api_key or "",
            "action": "search",
            "target": TARGETS[kind],
            "searchQuery": json.dumps(search_query, ensure_ascii=False),
            "sortField": "pubyear",
            "curPage": "1",
            "rowCount": str(min(options.max_results, 100)),
        }

        xml_text = await self._make_request(
            f"{SCIENCEON_API_BASE}?{urllib.parse.urlencode(params)}",
            expect_json=False,
        )
        if not isinstance(xml_text, str) or not xml_text.strip():
            return []

        items = [
            item
            for item in self._parse_records(xml_text, name, kind)
            if self._within_years(item.year, options)
        ]
        items.sort(key=lambda item: item.relevance_score or 0.0, reverse=True)
        return items[: options.max_results]

    def _parse_records(self, xml_text: str, matched_name: str, kind: ItemKind) -> list[LiteratureItem]:
        """Parse the XML envelope; an error code yields no items, malformed XML raises."""
        try:
            root = ET.fromstring(xml_text)
        except (ET.ParseError, DefusedXmlException) as e:
            raise ParseError(str(e), source=self._service_name) from e

        error_code = _field(root, "errorCode")
        if error_code and error_code != "0":
            logger.warning(f"ScienceON API error {error_code}: {_field(root, 'errorMsg')}")
            return []

        items = []
        for record in root.iter("record"):
            cn = _field(record, "cn")
            title = _field(record, "title") or _field(record, "titleEn")
            if not cn or not title:
                continue
            abstract = _field(record, "abstract")
            doi = _field(record, "doi")
            author = _field(record, "author")
            items.append(
                LiteratureItem(
                    id=f"scienceon_{cn}",
                    source=self.source_id,
                    title=title,
                    authors=[a.strip() for a in _AUTHOR_SPLIT_RE.split(author) if a.strip()],
                    year=parse_year(_field(record, "pubyear")),
                    venue=_field(record, "jtitle") or None,
                    url=_field(record, "url") or _field(record, "linkUrl") or f"{SCIENCEON_ARTICLE_URL}{cn}",
                    snippet=self._snippet(abstract),
                    doi=doi or None,
                    matched_name=matched_name,
                    relevance_score=self._relevance(title, abstract, doi, matched_name),
                    kind=kind,
                )
            )
        return items

    @staticmethod
    def _relevance(title: str, abstract: str, doi: str, name: str) -> float:
        score = 0.5
        needle = name.lower()
        if needle in title.lower():
            score += 0.3
        if needle in abstract.lower():
            score += 0.1
        if doi:
            score += 0.05
        return min(score, 1.0)


def _field(element: Element, name: str) -> str:
    """
    Text of a named field inside ``element``.

    ScienceON ships fields either as plain child tags (``<cn>``) or as
    ``<item metaCode="CN">`` entries; both are matched case-insensitively.
    """
    wanted = name.lower()
    for child in element.iter():
        if child is element:
            continue
        tag = child.tag.lower() if isinstance(child.tag, str) else ""
        meta = (child.get("metaCode") or "").lower()
        if tag == wanted or meta == wanted:
            return (child.text or "").strip()
    return ""

"""
Biodiversity Heritage Library (BHL) Integration

Historical biological literature (1800s onwards) with scanned full text.

API Documentation: https://www.biodiversitylibrary.org/api3

Notes:
- Requires an API key (BHL_API_KEY)
- PartSearch (articles/chapters) frequently returns an empty body;
  PublicationSearch is used as the fallback
- The API has no OR syntax, so Korea variants are searched one by one
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

BHL_API_BASE = "https://www.biodiversitylibrary.org/api3"

# Historical spellings first: "Corea" dominates pre-1900 literature
KOREA_VARIANTS = ("Corea", "Korea", "Korean")

# Enough hits from one variant; the remaining variants are skipped
_VARIANT_STOP_COUNT = 5


class BHLClient(LiteratureSourceClient):
    """
    BHL API v3 client.

    Usage:
        client = BHLClient(api_key="...")
        items = await client.search("Fistularia petimba", SearchOptions(max_results=10))
    """

    _service_name = "BHL"
    source_id = SourceId.BHL

    def __init__(self, api_key: str | None = None, timeout: float = 30.0, **kwargs: Any):
        self._api_key = api_key
        super().__init__(
            base_url=BHL_API_BASE,
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
            raise ConfigurationError("BHL_API_KEY is not configured")

        items: list[LiteratureItem] = []
        seen: set[str] = set()

        def add(found: list[LiteratureItem]) -> None:
            for item in found:
                if item.id not in seen:
                    seen.add(item.id)
                    items.append(item)

        if not options.include_korea_keyword:
            add(await self._search_parts(name, name, options))
            return items[: options.max_results]

        for variant in KOREA_VARIANTS:
            if len(items) >= options.max_results:
                break
            add(await self._search_parts(f"{name} {variant}", name, options))
            if len(items) >= _VARIANT_STOP_COUNT:
                logger.debug(f"BHL: {len(items)} items after '{variant}', stopping variant search")
                break

        return items[: options.max_results]

    async def _search_parts(self, term: str, matched_name: str, options: SearchOptions) -> list[LiteratureItem]:
        """PartSearch, falling back to PublicationSearch when it yields nothing."""
        data = await self._query("PartSearch", term)
        parts = self._results(data)
        if not parts:
            logger.debug(f"BHL: PartSearch empty for '{term}', trying PublicationSearch")
            return await self._search_publications(term, matched_name, options)

        return [
            item
            for item in (self._normalize_part(p, matched_name) for p in parts)
            if self._within_years(item.year, options)
        ]

    async def _search_publications(
        self, term: str, matched_name: str, options: SearchOptions
    ) -> list[LiteratureItem]:
        data = await self._query("PublicationSearch", term)
        return [
            item
            for item in (self._normalize_publication(r, matched_name) for r in self._results(data))
            if item is not None and self._within_years(item.year, options)
        ]

    async def _query(self, op: str, term: str) -> Any:
        params = {
            "op": op,
            "searchterm": term,
            "searchtype": "C",
            "format": "json",
            "apikey": self._api_key or "",
        }
        return await self._make_request(f"?{urllib.parse.urlencode(params)}")

    @staticmethod
    def _results(data: Any) -> list[dict[str, Any]]:
        if not isinstance(data, dict) or data.get("Status") != "ok":
            return []
        return data.get("Result") or []

    def _normalize_part(self, part: dict[str, Any], matched_name: str) -> LiteratureItem:
        return LiteratureItem(
            id=f"bhl_part_{part.get('PartID')}",
            source=self.source_id,
            title=part.get("Title") or part.get("ContainerTitle") or "Untitled",
            authors=[a.get("Name", "") for a in part.get("Authors") or [] if a.get("Name")],
            year=parse_year(part.get("Date")),
            venue=part.get("ContainerTitle") or None,
            url=part.get("PartUrl") or part.get("ExternalUrl") or "",
            pdf_url=part.get("DownloadUrl") or None,
            doi=part.get("Doi") or None,
            matched_name=matched_name,
        )

    def _normalize_publication(self, record: dict[str, Any], matched_name: str) -> LiteratureItem | None:
        """PublicationSearch mixes parts, items and titles; keep what has a title."""
        title = record.get("Title")
        if not title:
            return None
        if record.get("PartID"):
            native_id = f"part_{record['PartID']}"
        elif record.get("ItemID"):
            native_id = f"item_{record['ItemID']}"
        else:
            native_id = f"title_{record.get('TitleID')}"
        return LiteratureItem(
            id=f"bhl_{native_id}",
            source=self.source_id,
            title=title,
            authors=[a.get("Name", "") for a in record.get("Authors") or [] if a.get("Name")],
            year=parse_year(record.get("Year") or record.get("Date") or record.get("PublicationDate")),
            venue=record.get("ContainerTitle") or record.get("PublicationDetails") or None,
            url=record.get("PartUrl") or record.get("ItemUrl") or record.get("TitleUrl") or record.get("Url") or "",
            pdf_url=record.get("ItemPDFUrl") or record.get("DownloadUrl") or None,
            doi=record.get("Doi") or None,
            matched_name=matched_name,
        )

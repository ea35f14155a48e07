"""
WoRMS (World Register of Marine Species) synonym resolver.

API Documentation: https://www.marinespecies.org/rest/

Resolves a scientific name to its accepted name and AphiaID, then lists
every synonym registered for the accepted taxon. Name matching happens on
the registry side.
"""

from __future__ import annotations

import logging
import urllib.parse
from typing import Any

import httpx

from first_record.domain.ports import SynonymResolution
from first_record.infrastructure.sources.base_client import CONTINUE, BaseAPIClient

logger = logging.getLogger(__name__)

WORMS_API_BASE = "https://www.marinespecies.org/rest"


class WoRMSClient(BaseAPIClient):
    """
    WoRMS REST client.

    Usage:
        client = WoRMSClient()
        resolution = await client.resolve("Fistularia petimba")
        resolution.all_names()
    """

    _service_name = "WoRMS"

    def __init__(self, timeout: float = 30.0, **kwargs: Any):
        super().__init__(
            base_url=WORMS_API_BASE,
            timeout=timeout,
            min_interval=0.2,
            headers={"Accept": "application/json"},
            **kwargs,
        )

    def _handle_expected_status(self, response: httpx.Response, url: str) -> Any:
        """204 No Content means no match."""
        if response.status_code == 204 or (response.status_code == 200 and not response.content.strip()):
            return None
        return CONTINUE

    async def resolve(self, name: str) -> SynonymResolution:
        result = SynonymResolution(query=name)

        record = await self._match_name(name)
        if record is None:
            result.error = "Species not found in WoRMS"
            return result

        accepted = record
        aphia_id = record.get("AphiaID")
        if record.get("status") != "accepted" and record.get("valid_AphiaID"):
            aphia_id = record["valid_AphiaID"]
            fetched = await self._make_request(f"/AphiaRecordByAphiaID/{aphia_id}")
            if isinstance(fetched, dict):
                accepted = fetched

        result.success = True
        result.aphia_id = aphia_id
        result.accepted_name = accepted.get("scientificname") or record.get("valid_name")
        result.authority = accepted.get("authority")

        synonyms = await self._make_request(f"/AphiaSynonymsByAphiaID/{aphia_id}")
        if isinstance(synonyms, list):
            names = []
            for syn in synonyms:
                syn_name = (syn or {}).get("scientificname")
                if syn_name and syn_name != result.accepted_name and syn_name not in names:
                    names.append(syn_name)
            result.synonyms = names

        logger.info(
            f"WoRMS: {name} -> {result.accepted_name} (AphiaID {aphia_id}, {len(result.synonyms)} synonyms)"
        )
        return result

    async def _match_name(self, name: str) -> dict[str, Any] | None:
        """Exact (case-insensitive) match first, otherwise the registry's best match."""
        params = urllib.parse.urlencode({"scientificnames[]": name, "marine_only": "false"})
        data = await self._make_request(f"/AphiaRecordsByMatchNames?{params}")
        if not isinstance(data, list) or not data or not isinstance(data[0], list):
            return None

        records = [r for r in data[0] if isinstance(r, dict) and r.get("scientificname")]
        wanted = name.strip().lower()
        for record in records:
            if record["scientificname"].strip().lower() == wanted:
                return record
        return records[0] if records else None

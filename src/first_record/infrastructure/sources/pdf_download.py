"""
PDF downloader for collected literature items.

Uses the shared BaseAPIClient plumbing (retry, circuit breaker) and
returns raw bytes; validation of the payload is the intake's job.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from first_record.infrastructure.sources.base_client import CONTINUE, BaseAPIClient, Payload

logger = logging.getLogger(__name__)

MAX_PDF_SIZE = 50 * 1024 * 1024


class PdfDownloader(BaseAPIClient):
    """
    Fetch PDF bytes from a URL.

    Usage:
        downloader = PdfDownloader()
        content = await downloader.download(item.pdf_url)
    """

    _service_name = "PDF download"
    _MAX_RETRIES = 2

    def __init__(self, max_size: int = MAX_PDF_SIZE, timeout: float = 60.0, **kwargs: Any):
        self._max_size = max_size
        super().__init__(
            timeout=timeout,
            min_interval=0.0,
            headers={"Accept": "application/pdf,*/*;q=0.8"},
            **kwargs,
        )

    def _handle_expected_status(self, response: httpx.Response, url: str) -> Payload | None:
        content_length = response.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > self._max_size:
            logger.warning(f"PDF too large ({int(content_length) / 1024 / 1024:.1f}MB): {url}")
            return None
        return CONTINUE  # type: ignore[return-value]

    def _parse_response(self, response: httpx.Response, expect_json: bool) -> Payload:
        content = response.content
        if content[:4] != b"%PDF" and b"<html" in content[:1000].lower():
            logger.info(f"Received HTML instead of PDF (landing page): {response.url}")
        return content

    async def download(self, url: str) -> bytes | None:
        """Raw response body, or None when the download failed."""
        content = await self._make_request(url, expect_json=False)
        if not isinstance(content, bytes) or not content:
            return None
        logger.info(f"Downloaded {len(content)} bytes from {url}")
        return content

"""
Docling extraction service client.

Posts a stored PDF to the Docling API server (``POST {url}/convert``,
multipart) and returns the extracted text, tables and figures. OCR and
inference happen on the service side only.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from first_record.domain.entities import ExtractedFigure, ExtractedTable, ExtractionResult
from first_record.infrastructure.sources.base_client import BaseAPIClient
from first_record.shared.exceptions import NotFoundError, ParseError, UpstreamUnavailableError

logger = logging.getLogger(__name__)

DEFAULT_DOCLING_URL = "http://localhost:5000"
DEFAULT_OCR_LANGUAGES = ("eng", "kor")


class DoclingClient(BaseAPIClient):
    """
    Docling API client.

    Usage:
        client = DoclingClient("http://localhost:5000")
        result = await client.extract("data/pdfs/1700000000000_paper.pdf")
    """

    _service_name = "Docling"
    _MAX_RETRIES = 1

    def __init__(self, api_url: str | None = None, timeout: float = 120.0, **kwargs: Any):
        super().__init__(
            base_url=api_url or DEFAULT_DOCLING_URL,
            timeout=timeout,
            min_interval=0.0,
            headers={"Accept": "application/json"},
            **kwargs,
        )

    async def extract(
        self,
        pdf_path: str,
        *,
        enable_ocr: bool = True,
        ocr_languages: tuple[str, ...] = DEFAULT_OCR_LANGUAGES,
        extract_tables: bool = True,
        extract_figures: bool = True,
    ) -> ExtractionResult:
        """
        Extract text and structure from a stored PDF.

        Raises:
            NotFoundError: The PDF is not on disk
            UpstreamUnavailableError: The service is unreachable or failed
            ParseError: The service answered with an unexpected payload
        """
        path = Path(pdf_path)
        if not path.is_file():
            raise NotFoundError("PDF file", path.name)

        form = {
            "ocr": str(enable_ocr).lower(),
            "ocr_languages": ",".join(ocr_languages),
            "extract_tables": str(extract_tables).lower(),
            "extract_figures": str(extract_figures).lower(),
        }
        content = await asyncio.to_thread(path.read_bytes)
        files = {"file": (path.name, content, "application/pdf")}

        logger.info(f"Docling: extracting {path.name}")
        data = await self._make_request("/convert", method="POST", data=form, files=files)
        if data is None:
            raise UpstreamUnavailableError(self._service_name, "extraction service did not respond")
        if not isinstance(data, dict):
            raise ParseError("expected a JSON object", source=self._service_name)

        if data.get("status") == "error":
            raise UpstreamUnavailableError(
                self._service_name, data.get("error") or "Unknown API error", retryable=False
            )

        return self._parse_document(data, ocr_used=enable_ocr)

    def _parse_document(self, data: dict[str, Any], *, ocr_used: bool) -> ExtractionResult:
        document = data.get("document")
        if not isinstance(document, dict):
            raise ParseError("no document in API response", source=self._service_name)

        content = document.get("content") or {}
        metadata = document.get("metadata") or {}
        tables = [
            ExtractedTable(page=t.get("page"), caption=t.get("caption"), data=t.get("data") or [])
            for t in content.get("tables") or []
        ]
        figures = [
            ExtractedFigure(page=f.get("page"), caption=f.get("caption"))
            for f in content.get("figures") or []
        ]
        pages = metadata.get("pages")

        return ExtractionResult(
            text=content.get("text") or "",
            tables=tables,
            figures=figures,
            page_count=pages if isinstance(pages, int) else None,
            ocr_used=ocr_used,
            processing_time=data.get("processing_time"),
        )

    async def is_available(self) -> bool:
        """Check the service health endpoint."""
        data = await self._make_request("/health", expect_json=False)
        return data is not None

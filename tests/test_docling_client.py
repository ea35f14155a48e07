"""Tests for DoclingClient - PDF extraction through the Docling API server."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from conftest import PDF_BYTES
from first_record.infrastructure.extraction import DoclingClient
from first_record.shared.exceptions import NotFoundError, ParseError, UpstreamUnavailableError

DOCLING_RESPONSE = {
    "status": "success",
    "processing_time": 12.5,
    "document": {
        "content": {
            "text": "Fistularia petimba Lacepede, 1803. Busan, 12 May 1965.",
            "tables": [{"page": 2, "caption": "Measurements", "data": [["TL", "512"]]}],
            "figures": [{"page": 3, "caption": "Lateral view"}],
        },
        "metadata": {"pages": 4},
    },
}


@pytest.fixture
def pdf_path(temp_dir):
    path = temp_dir / "1700000000000_paper.pdf"
    path.write_bytes(PDF_BYTES)
    return path


@pytest.fixture
def client():
    return DoclingClient("http://docling.test:5000/")


class TestExtract:
    async def test_parses_document(self, client, pdf_path):
        client._make_request = AsyncMock(return_value=DOCLING_RESPONSE)

        result = await client.extract(str(pdf_path))

        assert result.text.startswith("Fistularia petimba")
        assert result.tables[0].data == [["TL", "512"]]
        assert result.tables[0].page == 2
        assert result.figures[0].caption == "Lateral view"
        assert result.page_count == 4
        assert result.ocr_used is True
        assert result.processing_time == 12.5

    async def test_multipart_request(self, client, pdf_path):
        client._make_request = AsyncMock(return_value=DOCLING_RESPONSE)

        await client.extract(str(pdf_path), enable_ocr=False, extract_figures=False)

        args, kwargs = client._make_request.call_args
        assert args[0] == "/convert"
        assert kwargs["method"] == "POST"
        assert kwargs["data"] == {
            "ocr": "false",
            "ocr_languages": "eng,kor",
            "extract_tables": "true",
            "extract_figures": "false",
        }
        name, content, content_type = kwargs["files"]["file"]
        assert name == pdf_path.name
        assert content == PDF_BYTES
        assert content_type == "application/pdf"

    async def test_file_read_off_event_loop(self, client, pdf_path):
        client._make_request = AsyncMock(return_value=DOCLING_RESPONSE)

        with patch(
            "first_record.infrastructure.extraction.docling.asyncio.to_thread", wraps=asyncio.to_thread
        ) as to_thread:
            await client.extract(str(pdf_path))

        to_thread.assert_called_once()
        assert to_thread.call_args.args[0] == pdf_path.read_bytes

    def test_base_url_trailing_slash(self, client):
        assert client._build_url("/convert") == "http://docling.test:5000/convert"

    async def test_missing_file(self, client, temp_dir):
        client._make_request = AsyncMock()

        with pytest.raises(NotFoundError):
            await client.extract(str(temp_dir / "gone.pdf"))
        client._make_request.assert_not_called()

    async def test_service_unreachable(self, client, pdf_path):
        client._make_request = AsyncMock(return_value=None)

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.extract(str(pdf_path))
        assert exc_info.value.retryable is True

    async def test_service_reports_error(self, client, pdf_path):
        client._make_request = AsyncMock(return_value={"status": "error", "error": "corrupt PDF"})

        with pytest.raises(UpstreamUnavailableError) as exc_info:
            await client.extract(str(pdf_path))
        assert "corrupt PDF" in str(exc_info.value)
        assert exc_info.value.retryable is False

    async def test_missing_document(self, client, pdf_path):
        client._make_request = AsyncMock(return_value={"status": "success"})

        with pytest.raises(ParseError):
            await client.extract(str(pdf_path))

    async def test_non_object_payload(self, client, pdf_path):
        client._make_request = AsyncMock(return_value=["not", "a", "dict"])

        with pytest.raises(ParseError):
            await client.extract(str(pdf_path))

    async def test_sparse_document(self, client, pdf_path):
        client._make_request = AsyncMock(return_value={"document": {"metadata": {"pages": "four"}}})

        result = await client.extract(str(pdf_path))

        assert result.text == ""
        assert result.tables == []
        assert result.page_count is None


class TestAvailability:
    async def test_available(self, client):
        client._make_request = AsyncMock(return_value="ok")
        assert await client.is_available() is True
        client._make_request.assert_awaited_once_with("/health", expect_json=False)

    async def test_unavailable(self, client):
        client._make_request = AsyncMock(return_value=None)
        assert await client.is_available() is False

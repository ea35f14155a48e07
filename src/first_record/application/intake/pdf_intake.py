"""
PdfIntake - validate, sanitize and persist inbound PDFs.

Checks run fail-fast in this order, before any byte is written:
1. File extension is ``.pdf``
2. Size is within the ceiling (50 MiB by default)
3. Content starts with the ``%PDF`` signature
4. The sanitized name, prefixed with a millisecond timestamp, resolves
   to a path inside the storage root

Stored files are named ``{timestamp_ms}_{sanitized}.pdf``; the stem is
the pdf id used everywhere else.
"""

from __future__ import annotations

import logging
import re
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path

from first_record.domain.entities import LiteratureItem, PdfAsset
from first_record.infrastructure.sources.pdf_download import PdfDownloader
from first_record.shared.exceptions import (
    ErrorContext,
    InvalidParameterError,
    InvalidSignatureError,
    PathEscapeError,
    TooLargeError,
    UnsupportedTypeError,
    UpstreamUnavailableError,
)

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = 50 * 1024 * 1024
PDF_SIGNATURE = b"%PDF"
MAX_SAFE_NAME_LENGTH = 100
PLACEHOLDER_NAME = "unnamed"

_SEPARATOR_RE = re.compile(r"[\\/]")
_PARENT_RE = re.compile(r"\.\.")
_DISALLOWED_RE = re.compile(r"[^A-Za-z0-9._-]")
_PDF_SUFFIX_RE = re.compile(r"\.pdf$", re.IGNORECASE)


def sanitize_file_name(name: str) -> str:
    """
    Make an uploaded file name safe to embed in a storage path.

    Separators and ``..`` become ``_``, anything outside
    ``[A-Za-z0-9._-]`` becomes ``_``, the result is cut to 100 characters
    and trailing ``.pdf`` suffixes are removed. An empty result becomes
    ``unnamed``. Applying it twice gives the same result as once.
    """
    safe = _SEPARATOR_RE.sub("_", name or "")
    safe = _PARENT_RE.sub("_", safe)
    safe = _DISALLOWED_RE.sub("_", safe)
    safe = safe[:MAX_SAFE_NAME_LENGTH]
    while _PDF_SUFFIX_RE.search(safe):
        safe = _PDF_SUFFIX_RE.sub("", safe)
    return safe or PLACEHOLDER_NAME


@dataclass(frozen=True)
class RawUpload:
    """An inbound file before validation."""

    file_name: str
    content: bytes
    declared_size: int | None = None

    @property
    def size(self) -> int:
        # The larger of the two, so an understated declared size cannot slip past
        return max(self.declared_size or 0, len(self.content))


class PdfIntake:
    """
    Validates and stores PDFs under a fixed storage root.

    Usage:
        intake = PdfIntake("data/pdfs")
        asset = intake.accept(RawUpload("paper.pdf", content))
    """

    def __init__(
        self,
        storage_root: str | Path,
        max_size: int = MAX_FILE_SIZE,
        downloader: PdfDownloader | None = None,
        clock_ms: Callable[[], int] | None = None,
    ) -> None:
        self._root = Path(storage_root).expanduser().resolve()
        self._root.mkdir(parents=True, exist_ok=True)
        self._max_size = max_size
        self._downloader = downloader
        self._clock_ms = clock_ms or (lambda: time.time_ns() // 1_000_000)
        self._last_ms = 0

    @property
    def storage_root(self) -> Path:
        return self._root

    @property
    def max_size(self) -> int:
        return self._max_size

    # =========================================================================
    # Validation
    # =========================================================================

    def _check_type(self, upload: RawUpload) -> None:
        if not upload.file_name.lower().endswith(".pdf"):
            raise UnsupportedTypeError(
                "Only PDF files are allowed",
                context=ErrorContext(input_value=upload.file_name),
            )

    def _check_size(self, upload: RawUpload) -> None:
        if upload.size > self._max_size:
            raise TooLargeError(
                f"File too large ({upload.size} bytes). Maximum size is {self._max_size // (1024 * 1024)}MB",
                context=ErrorContext(input_value=upload.size),
            )

    def _check_signature(self, upload: RawUpload) -> None:
        if upload.content[:4] != PDF_SIGNATURE:
            raise InvalidSignatureError("Invalid PDF file. File signature does not match PDF format.")

    def _next_timestamp(self) -> int:
        """Milliseconds since epoch, bumped when two uploads land in the same ms."""
        now = max(self._clock_ms(), self._last_ms + 1)
        self._last_ms = now
        return now

    def _resolve_target(self, safe_name: str) -> tuple[str, Path]:
        while True:
            pdf_id = f"{self._next_timestamp()}_{safe_name}"
            target = (self._root / f"{pdf_id}.pdf").resolve()
            if not target.is_relative_to(self._root) or target.parent != self._root:
                raise PathEscapeError("Invalid file path", context=ErrorContext(input_value=safe_name))
            if not target.exists():
                return pdf_id, target

    # =========================================================================
    # Public operations
    # =========================================================================

    def accept(self, upload: RawUpload) -> PdfAsset:
        """
        Validate and store an upload.

        Raises:
            UnsupportedTypeError: Not a .pdf file name
            TooLargeError: Over the size ceiling
            InvalidSignatureError: Content is not a PDF
            PathEscapeError: Target path would leave the storage root
        """
        self._check_type(upload)
        self._check_size(upload)
        self._check_signature(upload)

        safe_name = sanitize_file_name(upload.file_name)
        pdf_id, target = self._resolve_target(safe_name)

        target.write_bytes(upload.content)
        asset = PdfAsset(
            id=pdf_id,
            original_file_name=upload.file_name,
            sanitized_file_name=safe_name,
            storage_path=str(target),
            size_bytes=len(upload.content),
            uploaded_at=datetime.now(UTC),
        )
        logger.info(f"Stored PDF {pdf_id} ({asset.size_bytes} bytes)")
        return asset

    async def fetch(self, item: LiteratureItem) -> PdfAsset:
        """
        Download ``item.pdf_url`` and run it through ``accept``.

        Raises:
            InvalidParameterError: The item has no PDF URL
            UpstreamUnavailableError: The download failed
            SecurityRejection: The downloaded bytes fail validation
        """
        if not item.pdf_url:
            raise InvalidParameterError("pdf_url", None, "an item with a PDF URL")
        if self._downloader is None:
            self._downloader = PdfDownloader(max_size=self._max_size)

        content = await self._downloader.download(item.pdf_url)
        if content is None:
            raise UpstreamUnavailableError(item.source.value, f"could not download {item.pdf_url}")

        year = item.year or "unknown"
        file_name = f"{item.source.value}_{year}_{item.title[:60]}.pdf"
        return self.accept(RawUpload(file_name=file_name, content=content))

    def list_assets(self) -> list[PdfAsset]:
        """Stored PDFs, newest first."""
        assets = [self._asset_from_path(p) for p in self._root.glob("*.pdf") if p.is_file()]
        return sorted(assets, key=lambda a: a.uploaded_at, reverse=True)

    @staticmethod
    def _asset_from_path(path: Path) -> PdfAsset:
        stat = path.stat()
        pdf_id = path.stem
        _, _, safe_name = pdf_id.partition("_")
        return PdfAsset(
            id=pdf_id,
            original_file_name=path.name,
            sanitized_file_name=safe_name or pdf_id,
            storage_path=str(path),
            size_bytes=stat.st_size,
            uploaded_at=datetime.fromtimestamp(stat.st_mtime, tz=UTC),
        )

"""Tests for PdfIntake - upload validation, sanitization and storage.

Coverage targets:
- Fail-fast validation order (type, size, signature, path)
- Nothing written on rejection
- File name sanitization (idempotent, traversal-safe)
- Timestamped ids, collision handling
- Fetching item PDFs through the downloader
- Listing / lookup of stored assets
"""

from __future__ import annotations

import os
from unittest.mock import AsyncMock, MagicMock

import pytest
from conftest import PDF_BYTES, make_item

from first_record.application.intake import MAX_FILE_SIZE, PdfIntake, RawUpload, sanitize_file_name
from first_record.domain.entities import SourceId
from first_record.shared.exceptions import (
    InvalidParameterError,
    InvalidSignatureError,
    PathEscapeError,
    SecurityRejection,
    TooLargeError,
    UnsupportedTypeError,
    UpstreamUnavailableError,
)

FIXED_MS = 1_700_000_000_000


@pytest.fixture
def storage(temp_dir):
    return temp_dir / "pdfs"


@pytest.fixture
def intake(storage):
    return PdfIntake(storage, clock_ms=lambda: FIXED_MS)


def stored_files(intake: PdfIntake) -> list[str]:
    return sorted(p.name for p in intake.storage_root.iterdir())


# =========================================================================
# Validation
# =========================================================================


class TestValidation:
    def test_default_ceiling_is_50mb(self):
        assert MAX_FILE_SIZE == 50 * 1024 * 1024

    def test_accepts_valid_pdf(self, intake):
        asset = intake.accept(RawUpload("paper.pdf", PDF_BYTES))

        assert asset.id == f"{FIXED_MS}_paper"
        assert asset.sanitized_file_name == "paper"
        assert asset.original_file_name == "paper.pdf"
        assert asset.size_bytes == len(PDF_BYTES)
        assert stored_files(intake) == [f"{FIXED_MS}_paper.pdf"]
        assert (intake.storage_root / f"{FIXED_MS}_paper.pdf").read_bytes() == PDF_BYTES

    def test_uppercase_extension(self, intake):
        asset = intake.accept(RawUpload("PAPER.PDF", PDF_BYTES))
        assert asset.sanitized_file_name == "PAPER"

    def test_unsupported_type(self, intake):
        with pytest.raises(UnsupportedTypeError):
            intake.accept(RawUpload("paper.docx", PDF_BYTES))
        assert stored_files(intake) == []

    def test_51mb_upload_rejected_before_write(self, intake):
        content = PDF_BYTES + b"0" * (51 * 1024 * 1024)

        with pytest.raises(TooLargeError) as exc_info:
            intake.accept(RawUpload("big.pdf", content))

        assert exc_info.value.http_status == 413
        assert stored_files(intake) == []

    def test_declared_size_counts(self, intake):
        with pytest.raises(TooLargeError):
            intake.accept(RawUpload("big.pdf", PDF_BYTES, declared_size=MAX_FILE_SIZE + 1))

    def test_exactly_at_ceiling_passes_size_check(self, storage):
        intake = PdfIntake(storage, max_size=len(PDF_BYTES), clock_ms=lambda: FIXED_MS)
        assert intake.accept(RawUpload("edge.pdf", PDF_BYTES)).size_bytes == len(PDF_BYTES)

    def test_invalid_signature(self, intake):
        with pytest.raises(InvalidSignatureError):
            intake.accept(RawUpload("fake.pdf", b"<html><body>Not a PDF</body></html>"))
        assert stored_files(intake) == []

    def test_type_checked_before_size(self, storage):
        intake = PdfIntake(storage, max_size=10)
        with pytest.raises(UnsupportedTypeError):
            intake.accept(RawUpload("huge.exe", b"MZ" * 100))

    def test_size_checked_before_signature(self, storage):
        intake = PdfIntake(storage, max_size=10)
        with pytest.raises(TooLargeError):
            intake.accept(RawUpload("huge.pdf", b"<html>" * 100))

    def test_rejections_share_base(self, intake):
        with pytest.raises(SecurityRejection):
            intake.accept(RawUpload("fake.pdf", b"nope"))


class TestPathContainment:
    def test_traversal_in_name_stays_inside_root(self, intake):
        asset = intake.accept(RawUpload("../../etc/passwd.pdf", PDF_BYTES))

        assert os.path.dirname(asset.storage_path) == str(intake.storage_root)
        assert stored_files(intake) == [f"{FIXED_MS}_____etc_passwd.pdf"]

    def test_resolve_target_rejects_escape(self, intake):
        with pytest.raises(PathEscapeError):
            intake._resolve_target("x/../../evil")

    def test_resolve_target_rejects_subdirectory(self, intake):
        with pytest.raises(PathEscapeError):
            intake._resolve_target("sub/evil")


class TestTimestamps:
    def test_same_millisecond_gets_distinct_ids(self, intake):
        first = intake.accept(RawUpload("paper.pdf", PDF_BYTES))
        second = intake.accept(RawUpload("paper.pdf", PDF_BYTES))

        assert first.id == f"{FIXED_MS}_paper"
        assert second.id == f"{FIXED_MS + 1}_paper"
        assert len(stored_files(intake)) == 2

    def test_existing_file_is_not_overwritten(self, storage):
        storage.mkdir(parents=True)
        (storage / f"{FIXED_MS}_paper.pdf").write_bytes(b"%PDF-old")
        intake = PdfIntake(storage, clock_ms=lambda: FIXED_MS)

        asset = intake.accept(RawUpload("paper.pdf", PDF_BYTES))

        assert asset.id == f"{FIXED_MS + 1}_paper"
        assert (storage / f"{FIXED_MS}_paper.pdf").read_bytes() == b"%PDF-old"


# =========================================================================
# Sanitization
# =========================================================================


class TestSanitizeFileName:
    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("paper.pdf", "paper"),
            ("report.pdf.pdf", "report"),
            ("Report.PDF", "Report"),
            ("../../etc/passwd.pdf", "____etc_passwd"),
            ("..\\windows\\system.pdf", "__windows_system"),
            ("한국 논문.pdf", "_____"),
            ("my paper (1).pdf", "my_paper__1_"),
            (".pdf", "unnamed"),
            ("", "unnamed"),
        ],
    )
    def test_examples(self, raw, expected):
        assert sanitize_file_name(raw) == expected

    def test_truncated_to_100(self):
        assert len(sanitize_file_name("a" * 300 + ".pdf")) == 100

    def test_suffix_exposed_by_truncation_is_removed(self):
        name = "a" * 96 + ".pdf" + "b" * 10
        assert sanitize_file_name(name) == "a" * 96

    @pytest.mark.parametrize(
        "raw",
        ["paper.pdf", "../../x.pdf", "a" * 300, "...pdf", "x.pd.pdf", "한국.PDF.pdf", "", "a/b\\c..d"],
    )
    def test_idempotent(self, raw):
        once = sanitize_file_name(raw)
        assert sanitize_file_name(once) == once

    @pytest.mark.parametrize("raw", ["../../etc/passwd", "..\\..\\boot.ini", "a/../b"])
    def test_no_traversal_left(self, raw):
        safe = sanitize_file_name(raw)
        assert "/" not in safe
        assert "\\" not in safe
        assert ".." not in safe


# =========================================================================
# Fetch
# =========================================================================


class TestFetch:
    async def test_fetch_stores_download(self, storage):
        downloader = MagicMock()
        downloader.download = AsyncMock(return_value=PDF_BYTES)
        intake = PdfIntake(storage, downloader=downloader, clock_ms=lambda: FIXED_MS)
        item = make_item(
            "Fistularia petimba: a new record",
            1803,
            SourceId.OPENALEX,
            pdf_url="https://example.org/paper.pdf",
        )

        asset = await intake.fetch(item)

        downloader.download.assert_awaited_once_with("https://example.org/paper.pdf")
        assert asset.sanitized_file_name == "openalex_1803_Fistularia_petimba__a_new_record"

    async def test_unknown_year(self, storage):
        downloader = MagicMock()
        downloader.download = AsyncMock(return_value=PDF_BYTES)
        intake = PdfIntake(storage, downloader=downloader, clock_ms=lambda: FIXED_MS)

        asset = await intake.fetch(make_item("Note", None, SourceId.BHL, pdf_url="https://example.org/x"))

        assert asset.sanitized_file_name == "bhl_unknown_Note"

    async def test_item_without_pdf_url(self, intake):
        with pytest.raises(InvalidParameterError):
            await intake.fetch(make_item("No PDF", 1900))

    async def test_download_failure(self, storage):
        downloader = MagicMock()
        downloader.download = AsyncMock(return_value=None)
        intake = PdfIntake(storage, downloader=downloader)

        with pytest.raises(UpstreamUnavailableError):
            await intake.fetch(make_item("Paper", 1900, pdf_url="https://example.org/x.pdf"))
        assert stored_files(intake) == []

    async def test_landing_page_rejected(self, storage):
        downloader = MagicMock()
        downloader.download = AsyncMock(return_value=b"<!DOCTYPE html><html></html>")
        intake = PdfIntake(storage, downloader=downloader)

        with pytest.raises(InvalidSignatureError):
            await intake.fetch(make_item("Paper", 1900, pdf_url="https://example.org/x.pdf"))


# =========================================================================
# Lookup
# =========================================================================


class TestLookup:
    def test_listed_asset_rebuilt_from_file(self, intake):
        stored = intake.accept(RawUpload("paper.pdf", PDF_BYTES))

        [asset] = intake.list_assets()

        assert asset.id == stored.id
        assert asset.sanitized_file_name == "paper"
        assert asset.storage_path == stored.storage_path
        assert asset.size_bytes == len(PDF_BYTES)

    def test_list_ignores_other_files(self, intake):
        (intake.storage_root / "notes.txt").write_text("x")

        assert intake.list_assets() == []

    def test_list_assets_newest_first(self, intake):
        old = intake.accept(RawUpload("old.pdf", PDF_BYTES))
        new = intake.accept(RawUpload("new.pdf", PDF_BYTES))
        os.utime(old.storage_path, (1_000_000, 1_000_000))
        os.utime(new.storage_path, (2_000_000, 2_000_000))

        assert [a.id for a in intake.list_assets()] == [new.id, old.id]

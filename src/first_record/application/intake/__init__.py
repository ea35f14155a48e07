"""PDF intake: validation, sanitization and storage of inbound documents."""

from .pdf_intake import MAX_FILE_SIZE, PdfIntake, RawUpload, sanitize_file_name

__all__ = ["MAX_FILE_SIZE", "PdfIntake", "RawUpload", "sanitize_file_name"]

"""
AnalysisStore - JSON sidecar persistence for analysis records.

Storage model (all under ``results_dir``):
- ``{pdf_id}_analysis.json``: the AnalysisRecord (status, summary, judgment)
- ``{pdf_id}_extraction.json``: the full ExtractionResult, reused on re-analysis
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from first_record.domain.entities import AnalysisRecord, ExtractionResult

logger = logging.getLogger(__name__)


class AnalysisStore:
    """File-backed store keyed by pdf id.

    Args:
        results_dir: Directory holding the sidecar files (created if missing)
    """

    def __init__(self, results_dir: str | Path) -> None:
        self._dir = Path(results_dir).expanduser()
        self._dir.mkdir(parents=True, exist_ok=True)

    @property
    def results_dir(self) -> Path:
        return self._dir

    # ── Paths ────────────────────────────────────────────────────────────

    def _record_path(self, pdf_id: str) -> Path:
        return self._dir / f"{pdf_id}_analysis.json"

    def _extraction_path(self, pdf_id: str) -> Path:
        return self._dir / f"{pdf_id}_extraction.json"

    @staticmethod
    def _write(path: Path, data: dict[str, Any]) -> None:
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)

    @staticmethod
    def _read(path: Path) -> dict[str, Any] | None:
        if not path.exists():
            return None
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("Failed to read %s, ignoring it", path)
            return None
        return data if isinstance(data, dict) else None

    # ── Records ──────────────────────────────────────────────────────────

    def save(self, record: AnalysisRecord) -> None:
        self._write(self._record_path(record.pdf_id), record.to_dict())

    def load(self, pdf_id: str) -> AnalysisRecord | None:
        data = self._read(self._record_path(pdf_id))
        if data is None:
            return None
        try:
            return AnalysisRecord.from_dict(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("Corrupt analysis record for %s, ignoring it", pdf_id)
            return None

    def list_records(self) -> list[AnalysisRecord]:
        """All readable records, newest upload first."""
        records = []
        for path in self._dir.glob("*_analysis.json"):
            record = self.load(path.name.removesuffix("_analysis.json"))
            if record is not None:
                records.append(record)
        return sorted(records, key=lambda r: r.asset.uploaded_at, reverse=True)

    # ── Extractions ──────────────────────────────────────────────────────

    def save_extraction(self, pdf_id: str, extraction: ExtractionResult) -> None:
        self._write(self._extraction_path(pdf_id), extraction.to_dict())

    def load_extraction(self, pdf_id: str) -> ExtractionResult | None:
        data = self._read(self._extraction_path(pdf_id))
        if data is None:
            return None
        try:
            return ExtractionResult.from_dict(data)
        except (KeyError, TypeError):
            logger.warning("Corrupt extraction for %s, ignoring it", pdf_id)
            return None

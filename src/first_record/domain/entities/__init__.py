"""
Domain Entities

Core business objects for first-record collection and analysis.
"""

from __future__ import annotations

from .analysis import (
    AnalysisRecord,
    AnalysisStatus,
    ExtractedFigure,
    ExtractedTable,
    ExtractionResult,
    ExtractionSummary,
    Judgment,
    PdfAsset,
)
from .literature import (
    CollectionResult,
    ItemKind,
    LiteratureItem,
    LiteratureQuery,
    SearchOptions,
    SearchStrategy,
    SourceId,
)

__all__ = [
    # Literature entities
    "CollectionResult",
    "ItemKind",
    "LiteratureItem",
    "LiteratureQuery",
    "SearchOptions",
    "SearchStrategy",
    "SourceId",
    # Analysis entities
    "AnalysisRecord",
    "AnalysisStatus",
    "ExtractedFigure",
    "ExtractedTable",
    "ExtractionResult",
    "ExtractionSummary",
    "Judgment",
    "PdfAsset",
]

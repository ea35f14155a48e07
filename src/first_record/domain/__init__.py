"""
Domain Layer - Core Business Logic

Contains:
- entities: literature and analysis entities
- ports: interfaces to sources, extraction, LLM and synonym registry
"""

from .entities import (
    AnalysisRecord,
    AnalysisStatus,
    CollectionResult,
    LiteratureItem,
    LiteratureQuery,
    PdfAsset,
    SearchOptions,
    SearchStrategy,
    SourceId,
)

__all__ = [
    "AnalysisRecord",
    "AnalysisStatus",
    "CollectionResult",
    "LiteratureItem",
    "LiteratureQuery",
    "PdfAsset",
    "SearchOptions",
    "SearchStrategy",
    "SourceId",
]

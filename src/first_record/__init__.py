"""
First Record Finder - literature collection and first-record analysis

Helps establish the first record of a marine species in Korea: resolves
synonyms, collects literature from several bibliographic sources,
validates candidate PDFs, extracts their text and asks an LLM whether
the text records the species in Korea.

Usage:
    from first_record import LiteratureQuery, build_container

    container = build_container()
    result = await container.aggregator().collect(
        LiteratureQuery("Fistularia petimba", synonym_names=["Fistularia serrata"])
    )

Features:
    - Fan-out search over BHL, OpenAlex, Semantic Scholar, KCI, RISS, ScienceON
    - Deterministic dedup and first-record ranking
    - Validated PDF intake with Docling text extraction
    - LLM judgment with a daily free-tier quota
"""

from .container import ApplicationContainer, build_container
from .domain.entities import (
    AnalysisRecord,
    AnalysisStatus,
    CollectionResult,
    LiteratureItem,
    LiteratureQuery,
    SearchStrategy,
    SourceId,
)

__version__ = "0.1.0"

__all__ = [
    "AnalysisRecord",
    "AnalysisStatus",
    "ApplicationContainer",
    "CollectionResult",
    "LiteratureItem",
    "LiteratureQuery",
    "SearchStrategy",
    "SourceId",
    "build_container",
]

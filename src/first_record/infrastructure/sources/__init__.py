"""
Bibliographic source adapters.

Every adapter implements ``search(name, options) -> list[LiteratureItem]``
on top of the shared ``BaseAPIClient``:

- BHL: historical literature with scanned full text (API key)
- OpenAlex: modern scholarly index (no key)
- Semantic Scholar: backup scholarly index (optional key)
- KCI / RISS: domestic indexes (API key)
- ScienceON: national portal; articles, patents, reports (client id + token)

PdfDownloader fetches item PDFs over the same HTTP plumbing.
"""

from __future__ import annotations

from .base_client import CONTINUE, BaseAPIClient, LiteratureSourceClient
from .bhl import BHLClient
from .kci import KCIClient
from .openalex import OpenAlexClient
from .pdf_download import PdfDownloader
from .riss import RISSClient
from .scienceon import ScienceONClient
from .semantic_scholar import SemanticScholarClient

__all__ = [
    "CONTINUE",
    "BHLClient",
    "BaseAPIClient",
    "KCIClient",
    "LiteratureSourceClient",
    "OpenAlexClient",
    "PdfDownloader",
    "RISSClient",
    "ScienceONClient",
    "SemanticScholarClient",
]

"""Text extraction service clients."""

from .docling import DoclingClient

__all__ = ["DoclingClient"]

"""Taxonomic registry clients."""

from .worms import WoRMSClient

__all__ = ["WoRMSClient"]

"""LLM quota accounting."""

from .tracker import QuotaReservation, QuotaStatus, QuotaTracker, get_quota_tracker, reset_quota_tracker

__all__ = [
    "QuotaReservation",
    "QuotaStatus",
    "QuotaTracker",
    "get_quota_tracker",
    "reset_quota_tracker",
]

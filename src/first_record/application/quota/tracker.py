"""
Daily quota for free-tier (billable) LLM calls.

- Daily limit (default 1000) with a warning at 90%
- Resets lazily at UTC midnight; every access applies any due reset first
- ``used`` only grows through ``record_usage`` after a successful call
- In-flight reservations stop concurrent callers from overshooting the limit

Usage:
    tracker = get_quota_tracker()
    with tracker.reserve() as reservation:
        judgment = await llm.judge(...)
        reservation.commit()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any

from first_record.shared.exceptions import (
    InvalidParameterError,
    OperationNotAllowedError,
    QuotaExceededError,
)

logger = logging.getLogger(__name__)

DEFAULT_DAILY_LIMIT = 1000
DEFAULT_WARNING_RATIO = 0.9
DEFAULT_SCOPE = "openrouter:free"

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(UTC)


def next_utc_midnight(now: datetime) -> datetime:
    """First UTC midnight strictly after ``now``."""
    now = now.astimezone(UTC)
    return datetime(now.year, now.month, now.day, tzinfo=UTC) + timedelta(days=1)


@dataclass(frozen=True)
class QuotaStatus:
    """Snapshot of the quota, with derived fields."""

    used: int
    limit: int
    resets_at: datetime
    warning_ratio: float
    in_flight: int = 0
    scope: str = DEFAULT_SCOPE

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)

    @property
    def is_warning(self) -> bool:
        return self.used / self.limit >= self.warning_ratio

    @property
    def is_exceeded(self) -> bool:
        return self.used >= self.limit

    @property
    def warning_threshold(self) -> int:
        return int(self.limit * self.warning_ratio)

    @property
    def warning_message(self) -> str | None:
        if self.is_exceeded:
            return (
                f"Today's free-tier quota ({self.limit} calls) is used up. "
                f"It resets at {self.resets_at.isoformat()} (UTC midnight)."
            )
        if self.is_warning:
            return (
                f"Free-tier quota warning: {self.used}/{self.limit} calls used "
                f"({self.remaining} remaining)."
            )
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "scope": self.scope,
            "used": self.used,
            "remaining": self.remaining,
            "limit": self.limit,
            "in_flight": self.in_flight,
            "is_warning": self.is_warning,
            "is_exceeded": self.is_exceeded,
            "warning_threshold": self.warning_threshold,
            "resets_at": self.resets_at.isoformat(),
            "warning_message": self.warning_message,
        }


class QuotaReservation:
    """An in-flight slot. ``commit()`` records usage exactly once."""

    def __init__(self, tracker: QuotaTracker) -> None:
        self._tracker = tracker
        self.committed = False

    def commit(self) -> None:
        if self.committed:
            return
        self.committed = True
        self._tracker.record_usage()


class QuotaTracker:
    """
    In-memory daily quota, scoped to one provider free-tier class.

    All methods are synchronous: on a single event loop no other task can
    run between the capacity check and the reservation.
    """

    def __init__(
        self,
        limit: int = DEFAULT_DAILY_LIMIT,
        warning_ratio: float = DEFAULT_WARNING_RATIO,
        *,
        allow_reset: bool = True,
        clock: Clock = utc_now,
        scope: str = DEFAULT_SCOPE,
    ) -> None:
        if limit <= 0:
            raise InvalidParameterError("limit", limit, "a positive integer")
        if not 0 < warning_ratio < 1:
            raise InvalidParameterError("warning_ratio", warning_ratio, "a ratio strictly between 0 and 1")
        self._limit = limit
        self._warning_ratio = warning_ratio
        self._allow_reset = allow_reset
        self._clock = clock
        self.scope = scope
        self._used = 0
        self._in_flight = 0
        self._resets_at = next_utc_midnight(clock())

    # =========================================================================
    # Reset handling
    # =========================================================================

    def _apply_due_reset(self) -> None:
        now = self._clock()
        if now >= self._resets_at:
            logger.info(f"Quota '{self.scope}' reset at UTC boundary ({self._used} calls used)")
            self._used = 0
            self._resets_at = next_utc_midnight(now)

    # =========================================================================
    # Public operations
    # =========================================================================

    def record_usage(self) -> None:
        """Count one successful billable call."""
        self._apply_due_reset()
        self._used += 1
        if self._used == int(self._limit * self._warning_ratio):
            logger.warning(f"Quota '{self.scope}' reached warning threshold: {self._used}/{self._limit}")
        elif self._used == self._limit:
            logger.warning(f"Quota '{self.scope}' exhausted: {self._used}/{self._limit}")

    def get_status(self) -> QuotaStatus:
        self._apply_due_reset()
        return QuotaStatus(
            used=self._used,
            limit=self._limit,
            resets_at=self._resets_at,
            warning_ratio=self._warning_ratio,
            in_flight=self._in_flight,
            scope=self.scope,
        )

    def can_start(self) -> bool:
        """Whether another billable call may begin now, counting in-flight calls."""
        self._apply_due_reset()
        return self._used + self._in_flight < self._limit

    @contextmanager
    def reserve(self) -> Iterator[QuotaReservation]:
        """
        Hold an in-flight slot for the duration of a billable call.

        Raises:
            QuotaExceededError: No capacity left; the call must not be made
        """
        if not self.can_start():
            raise QuotaExceededError(self.get_status())
        self._in_flight += 1
        reservation = QuotaReservation(self)
        try:
            yield reservation
        finally:
            self._in_flight -= 1

    def reset(self) -> QuotaStatus:
        """Zero the usage counter (administrative; disabled in production)."""
        if not self._allow_reset:
            raise OperationNotAllowedError("Quota reset is not allowed in production")
        self._apply_due_reset()
        self._used = 0
        logger.info(f"Quota '{self.scope}' reset manually")
        return self.get_status()


# Process-wide tracker
_quota_tracker: QuotaTracker | None = None


def get_quota_tracker(
    limit: int = DEFAULT_DAILY_LIMIT,
    warning_ratio: float = DEFAULT_WARNING_RATIO,
    allow_reset: bool = True,
) -> QuotaTracker:
    """Get or create the process-wide tracker. Arguments only apply on creation."""
    global _quota_tracker
    if _quota_tracker is None:
        _quota_tracker = QuotaTracker(limit, warning_ratio, allow_reset=allow_reset)
    return _quota_tracker


def reset_quota_tracker() -> None:
    """Drop the process-wide tracker (tests)."""
    global _quota_tracker
    _quota_tracker = None

"""
Time abstraction layer for OrderDesk.

Provides an injectable clock that can be:
- Real-time (for the running service)
- Manual (for tests: frozen, settable, advanceable)

Every status timestamp the lifecycle engine stamps comes from a Clock, so
history ordering is testable without sleeping.
"""

from abc import ABC, abstractmethod
from datetime import datetime, timezone, timedelta
from typing import Optional


class Clock(ABC):
    """Abstract clock interface"""

    @abstractmethod
    def now(self) -> datetime:
        """Get current time (always UTC, timezone-aware)"""
        pass


class RealTimeClock(Clock):
    """Wall clock"""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)


class ManualClock(Clock):
    """Clock that only moves when told to."""

    def __init__(self, start_time: Optional[datetime] = None):
        """
        Args:
            start_time: Initial time (must be timezone-aware). Defaults to
                2026-01-01T12:00:00Z.
        """
        if start_time is None:
            start_time = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        if start_time.tzinfo is None:
            raise ValueError("start_time must be timezone-aware (UTC)")

        self._current_time = start_time.astimezone(timezone.utc)

    def now(self) -> datetime:
        return self._current_time

    def advance(self, delta: Optional[timedelta] = None, *, seconds: float = 0) -> datetime:
        """Advance time by ``delta`` (or ``seconds``) and return the new now."""
        self._current_time += (delta or timedelta()) + timedelta(seconds=seconds)
        return self._current_time

    def set_time(self, new_time: datetime):
        if new_time.tzinfo is None:
            raise ValueError("new_time must be timezone-aware (UTC)")

        self._current_time = new_time.astimezone(timezone.utc)


def utc_now() -> datetime:
    """
    Canonical way to get the current UTC time as a timezone-aware datetime.

    Use this instead of ``datetime.now()`` so that grep can verify no naive
    timestamps sneak in.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """
    Ensure *dt* is timezone-aware and in UTC.

    - If naive (no tzinfo): attach UTC (assumes caller meant UTC).
    - If aware but not UTC: convert to UTC.
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_iso(dt: Optional[datetime]) -> Optional[str]:
    """ISO-8601 UTC string with a trailing ``Z``, or None."""
    if dt is None:
        return None
    return ensure_utc(dt).isoformat().replace("+00:00", "Z")

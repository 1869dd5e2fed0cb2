"""Clock abstraction and calendar-month helpers."""

from datetime import UTC, date, datetime, timedelta
from typing import Protocol
from zoneinfo import ZoneInfo


class Clock(Protocol):
    """Source of the current time."""

    def now(self) -> datetime:
        """Return the current timezone-aware UTC time."""
        ...


class SystemClock:
    """Wall-clock time."""

    def now(self) -> datetime:
        return datetime.now(UTC)


class FixedClock:
    """Manually driven clock for tests and replays."""

    def __init__(self, now: datetime) -> None:
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        self._now = now

    def now(self) -> datetime:
        return self._now

    def set(self, now: datetime) -> None:
        """Jump to an absolute time."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=UTC)
        self._now = now

    def advance(self, **kwargs: float) -> None:
        """Move forward by a timedelta (e.g. ``advance(minutes=4)``)."""
        self._now = self._now + timedelta(**kwargs)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo on round-trip)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def month_window(now: datetime, tz: str = "UTC") -> tuple[datetime, datetime]:
    """Return the [start, end) UTC bounds of the calendar month containing ``now``.

    Args:
        now: Reference time (timezone-aware)
        tz: IANA timezone the month boundaries are defined in

    Returns:
        Tuple of (month_start, next_month_start) in UTC
    """
    zone = ZoneInfo(tz)
    local = as_utc(now).astimezone(zone)
    start = datetime(local.year, local.month, 1, tzinfo=zone)
    if local.month == 12:
        end = datetime(local.year + 1, 1, 1, tzinfo=zone)
    else:
        end = datetime(local.year, local.month + 1, 1, tzinfo=zone)
    return start.astimezone(UTC), end.astimezone(UTC)


def next_month_start(now: datetime, tz: str = "UTC") -> date:
    """First calendar day of the month after ``now`` in ``tz``."""
    _, end = month_window(now, tz)
    return end.astimezone(ZoneInfo(tz)).date()

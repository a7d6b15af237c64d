"""UTC normalization and whole-day arithmetic used by the scoring rules."""

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

_ONE_DAY = timedelta(days=1)


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive timestamps as UTC."""
    return value if value.tzinfo else value.replace(tzinfo=UTC)


def date_start_utc(value: date) -> datetime:
    return datetime(value.year, value.month, value.day, tzinfo=UTC)


def days_between(later: datetime, earlier: datetime) -> int:
    """Whole days from `earlier` to `later`, truncated toward zero."""
    return int((ensure_utc(later) - ensure_utc(earlier)) / _ONE_DAY)

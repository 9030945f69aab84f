"""Timestamp coercion helpers shared by every aggregation."""

from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_datetime(value: Any) -> Optional[datetime]:
    """
    Coerce a stored timestamp into an aware UTC datetime.

    Firestore returns ``DatetimeWithNanoseconds`` (a datetime subclass); older
    documents carry ISO strings or epoch milliseconds. Anything else is None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return ensure_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return None
    to_dt = getattr(value, "to_datetime", None)
    if callable(to_dt):
        return ensure_utc(to_dt())
    return None


def is_in_range(value: Any, start: datetime, end: datetime) -> bool:
    """Inclusive on both ends; unparseable timestamps are never in range."""
    moment = to_datetime(value)
    if moment is None:
        return False
    return ensure_utc(start) <= moment <= ensure_utc(end)


def date_key(value: Any) -> Optional[str]:
    """UTC calendar day (YYYY-MM-DD) of a stored timestamp."""
    moment = to_datetime(value)
    if moment is None:
        return None
    return moment.date().isoformat()


def isoformat_z(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return ensure_utc(value).isoformat().replace("+00:00", "Z")


def month_bounds(now: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the UTC calendar month containing ``now``."""
    now = ensure_utc(now)
    start = datetime(now.year, now.month, 1, tzinfo=timezone.utc)
    if now.month == 12:
        next_month = datetime(now.year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        next_month = datetime(now.year, now.month + 1, 1, tzinfo=timezone.utc)
    return start, next_month - timedelta(milliseconds=1)


def first_isoformat(doc: Any, *paths: str) -> Optional[str]:
    """ISO-8601 (``Z``) of the first parseable timestamp among ``paths`` of a document."""
    for path in paths:
        moment = to_datetime(doc.get(path))
        if moment is not None:
            return isoformat_z(moment)
    return None

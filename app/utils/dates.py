"""
Timestamp helpers for announcement rows.
Rows come from the DB (naive datetimes, stored as UTC) or from JSON bodies (ISO strings).
Anything that cannot be read as a point in time is treated as absent; nothing here raises.
"""
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as dateparser


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Naive datetimes are UTC (SQLite drops tzinfo on the way back)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value: Any) -> datetime | None:
    """
    datetime or ISO string -> aware UTC datetime. None for empty or invalid input,
    including offsets that would shift the moment outside the datetime range.
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, str) and value.strip():
        try:
            parsed = dateparser.isoparse(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None
    try:
        return as_utc(parsed)
    except OverflowError:
        return None


def is_valid_datetime(value: Any) -> bool:
    return parse_datetime(value) is not None

from datetime import datetime, time, timezone
from typing import Optional

from bson import ObjectId


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime) -> datetime:
    """Make a naive datetime timezone-aware (UTC). Already-aware datetimes pass through."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def parse_day(value: Optional[str], *, end_of_day: bool = False) -> Optional[datetime]:
    """Parse ``YYYY-MM-DD`` into a UTC datetime at the start (or end) of that day.

    Returns None for empty or malformed input so callers can simply skip the filter.
    """
    if not value:
        return None
    try:
        day = datetime.strptime(value.strip(), "%Y-%m-%d").date()
    except ValueError:
        return None
    clock = time(23, 59, 59, 999000) if end_of_day else time(0, 0)
    return datetime.combine(day, clock, tzinfo=timezone.utc)


def to_api(doc: dict) -> dict:
    """Mongo document -> JSON-friendly dict (``_id`` becomes ``id``, ObjectIds and datetimes stringified)."""
    out: dict = {}
    for key, value in doc.items():
        if key == "_id":
            key = "id"
        if isinstance(value, datetime):
            value = ensure_utc(value).isoformat()
        elif isinstance(value, ObjectId):
            value = str(value)
        out[key] = value
    return out

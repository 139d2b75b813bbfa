from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union


# PUBLIC_INTERFACE
def pagination_envelope(
    items: Union[Sequence[Any], Iterable[Any]],
    total: int,
    limit: int,
    offset: int,
) -> Dict[str, Any]:
    """
    Build a standard pagination envelope for list endpoints.

    Args:
        items: The list/iterable of items for the current page.
        total: Total number of items that match the query (ignoring pagination).
        limit: The limit used for pagination.
        offset: The offset used for pagination.

    Returns:
        Dict with keys: items, total, limit, offset.
    """
    materialized: List[Any] = list(items) if not isinstance(items, list) else items
    return {
        "items": materialized,
        "total": int(total),
        "limit": int(max(limit, 0)),
        "offset": int(max(offset, 0)),
    }


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


# PUBLIC_INTERFACE
def next_timestamp(previous: Optional[datetime] = None) -> datetime:
    """
    Return the current UTC time, bumped by one microsecond when the clock has
    not moved past `previous`.
    """
    now = utcnow()
    if previous is not None and now <= previous:
        return previous + timedelta(microseconds=1)
    return now


# PUBLIC_INTERFACE
def format_timestamp(value: datetime) -> str:
    """
    Serialize a datetime as ISO-8601 in UTC with millisecond precision and a
    trailing 'Z', e.g. '2025-01-31T10:15:30.123Z'.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    s = value.astimezone(timezone.utc).isoformat(timespec="milliseconds")
    return s.replace("+00:00", "Z")


# PUBLIC_INTERFACE
def parse_timestamp(value: Union[str, datetime]) -> datetime:
    """
    Parse an ISO-8601 string (or pass through a datetime) into an aware UTC
    datetime. Naive values are read as UTC.

    Raises:
        ValueError: if the value is not a valid ISO-8601 timestamp.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str):
        s = value.strip()
        # datetime.fromisoformat only understands 'Z' on newer interpreters
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        dt = datetime.fromisoformat(s)
    else:
        raise ValueError(f"Invalid timestamp type: {type(value).__name__}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)

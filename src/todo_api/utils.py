from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

# Anything accepted where a timestamp is expected on input
TimestampInput = Union[date, datetime, str]


# PUBLIC_INTERFACE
def utcnow() -> datetime:
    """Return the current time as a naive datetime expressed in UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(value: datetime) -> datetime:
    """Convert an aware datetime to naive UTC; naive values are returned unchanged."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


# PUBLIC_INTERFACE
def parse_timestamp(value: Optional[TimestampInput], field: str = "timestamp") -> Optional[datetime]:
    """
    Normalize timestamp input into a naive UTC datetime.
    - If value is a string, parse via datetime.fromisoformat; a bare date means 00:00.
    - If value is a date (not datetime), convert to datetime at 00:00.
    - If value is a datetime, aware values are converted to UTC.
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return to_naive_utc(value)

    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 0, 0, 0)

    if isinstance(value, str):
        s = value.strip()
        try:
            return to_naive_utc(datetime.fromisoformat(s))
        except ValueError:
            try:
                d = date.fromisoformat(s)
                return datetime(d.year, d.month, d.day, 0, 0, 0)
            except ValueError as e:
                raise ValueError(
                    f"Invalid {field} format. Use ISO8601 date or datetime string "
                    "(e.g., '2025-01-31' or '2025-01-31T13:45:00')."
                ) from e

    raise ValueError(f"Invalid type for {field}; expected date, datetime, or ISO8601 string.")


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

"""Shared coercion and pagination helpers.

parse_datetime:       ISO strings / dates / datetimes → aware UTC datetime
as_utc:               normalise naive (assumed UTC) and aware datetimes
to_decimal:           money input → Decimal, None passes through
pagination_params:    clamp page/limit the way every list endpoint does
paginated_result:     {"data": [...], "pagination": {...}} envelope
"""
import math
from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def as_utc(value):
    """Return *value* as an aware UTC datetime.

    SQLite drops tzinfo on round-trip, so naive values read back from the
    database are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_datetime(value):
    """Parse an ISO string, date or datetime into an aware UTC datetime.

    Raises ValueError on unparseable input; returns None for empty input.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return as_utc(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    text = str(value).strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return as_utc(datetime.fromisoformat(text))
    except ValueError as exc:
        raise ValueError(f"Invalid datetime: {value!r}. Use ISO 8601.") from exc


def to_decimal(value):
    """Coerce a money amount to Decimal; raises ValueError on junk."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, TypeError) as exc:
        raise ValueError(f"Invalid amount: {value!r}") from exc


def pagination_params(page=None, limit=None):
    """Return (offset, limit, page) with page >= 1 and 1 <= limit <= MAX_PAGE_SIZE."""
    page = max(1, int(page or 1))
    limit = min(MAX_PAGE_SIZE, max(1, int(limit or DEFAULT_PAGE_SIZE)))
    return (page - 1) * limit, limit, page


def paginated_result(data, total, page, limit):
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "data": data,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }

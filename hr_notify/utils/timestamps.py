"""Timestamp and calendar-date helpers.

Notification timestamps are always timezone-aware UTC. Dates shown in
emails (leave periods, time-entry days) are formatted with the configured
``date_format``, ``dd.MM.yyyy`` by default.
"""

from datetime import date, datetime, timezone
from typing import Any, Optional, Union


def utc_now() -> datetime:
    """Current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def parse_iso_datetime(iso_string: str) -> Optional[datetime]:
    """Parse an ISO 8601 string (``2025-05-01``, ``2025-05-01T08:00:00Z``) to UTC.

    Returns None if the string is empty or not ISO 8601.

    Example:
        >>> parse_iso_datetime("2025-05-01").day
        1
    """
    if not iso_string or not iso_string.strip():
        return None

    cleaned = iso_string.strip()
    if cleaned.endswith("Z"):
        cleaned = cleaned[:-1] + "+00:00"

    try:
        return ensure_utc(datetime.fromisoformat(cleaned))
    except ValueError:
        return None


def format_date(value: Any, date_format: str = "%d.%m.%Y") -> Any:
    """Format a date-like value for display.

    Accepts ``date``, ``datetime`` or an ISO 8601 string. Anything that
    cannot be interpreted as a date is returned unchanged so a malformed
    value still appears in the email rather than aborting the render.

    Example:
        >>> format_date("2025-05-01")
        '01.05.2025'
    """
    parsed: Optional[Union[date, datetime]] = None

    if isinstance(value, (date, datetime)):
        parsed = value
    elif isinstance(value, str):
        parsed = parse_iso_datetime(value)

    if parsed is None:
        return value
    return parsed.strftime(date_format)


def format_timestamp(dt: datetime) -> str:
    """ISO 8601 UTC string with a ``Z`` suffix, e.g. ``2025-05-01T08:00:00Z``."""
    dt_utc = ensure_utc(dt)
    if dt_utc is None:
        return ""
    return dt_utc.strftime("%Y-%m-%dT%H:%M:%SZ")

"""Timestamp utilities for UTC handling and database storage formats."""

from datetime import datetime, timezone
from typing import Optional

STORAGE_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC; aware ones are converted.

    Args:
        dt: Datetime to convert (can be None)

    Returns:
        Timezone-aware datetime in UTC, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def to_storage(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as a fixed-width ISO 8601 string.

    The fixed width keeps stored values lexicographically ordered, so
    range comparisons in SQL behave like datetime comparisons.

    Args:
        dt: Datetime to format

    Returns:
        String like ``2025-11-04T12:00:00.000000Z`` or None
    """
    dt = ensure_utc(dt)
    if dt is None:
        return None
    return dt.strftime(STORAGE_FORMAT)


def from_storage(value: Optional[str]) -> Optional[datetime]:
    """Parse a value written by :func:`to_storage`.

    Args:
        value: Stored ISO 8601 string

    Returns:
        Timezone-aware UTC datetime, or None for empty values
    """
    if not value:
        return None

    cleaned = value.rstrip("Z")
    try:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(cleaned, "%Y-%m-%dT%H:%M:%S")
    return dt.replace(tzinfo=timezone.utc)


def parse_iso_datetime(iso_string: str) -> Optional[datetime]:
    """Parse a user-supplied ISO 8601 date or datetime to UTC.

    Accepts ``2025-11-04``, ``2025-11-04T12:00:00`` and offset/``Z`` forms.

    Args:
        iso_string: ISO 8601 formatted string

    Returns:
        Timezone-aware datetime in UTC, or None if parsing fails
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

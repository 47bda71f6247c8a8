"""Utility functions for time handling and recipient masking."""

from .masking import mask_recipient
from .timestamps import (
    ensure_utc,
    from_storage,
    parse_iso_datetime,
    to_storage,
    utc_now,
)

__all__ = [
    # Timestamps
    "utc_now",
    "ensure_utc",
    "to_storage",
    "from_storage",
    "parse_iso_datetime",
    # Masking
    "mask_recipient",
]

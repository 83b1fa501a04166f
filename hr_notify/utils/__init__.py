"""Utility functions for time handling and date display."""

from .timestamps import (
    ensure_utc,
    format_date,
    format_timestamp,
    parse_iso_datetime,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "parse_iso_datetime",
    "format_date",
    "format_timestamp",
]

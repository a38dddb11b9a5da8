"""Utility functions for time handling."""

from .timestamps import (
    ensure_utc,
    format_br_date,
    local_today,
    unix_to_timestamp,
    utc_now,
)

__all__ = [
    "utc_now",
    "ensure_utc",
    "local_today",
    "format_br_date",
    "unix_to_timestamp",
]

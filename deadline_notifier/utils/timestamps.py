"""Timestamp utilities for UTC handling and local calendar dates.

Ledger rows carry UTC timestamps; bucket membership is computed against
the local calendar date of the configured timezone.
"""

from datetime import date, datetime, timezone
from typing import Optional, Union
from zoneinfo import ZoneInfo


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Current UTC time with timezone info

    Example:
        >>> now = utc_now()
        >>> now.tzinfo == timezone.utc
        True
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware and in UTC.

    Naive datetimes are treated as UTC (SQLite drops tzinfo on the way back).

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


def local_today(tz: Union[str, ZoneInfo, None] = None) -> date:
    """Return today's calendar date in ``tz`` (time of day truncated).

    Args:
        tz: IANA timezone name or ZoneInfo; None means the host's local zone

    Example:
        >>> isinstance(local_today("America/Sao_Paulo"), date)
        True
    """
    if tz is None:
        return datetime.now().date()
    zone = ZoneInfo(tz) if isinstance(tz, str) else tz
    return datetime.now(zone).date()


def format_br_date(value: Optional[date]) -> str:
    """Format a date as ``DD/MM/YYYY``; None renders as ``N/A``."""
    if value is None:
        return "N/A"
    return value.strftime("%d/%m/%Y")


def unix_to_timestamp(unix_seconds: float) -> datetime:
    """Convert Unix timestamp to datetime in UTC."""
    return datetime.fromtimestamp(unix_seconds, tz=timezone.utc)

"""Unit tests for timestamp utilities."""

from datetime import date, datetime, timedelta, timezone
from unittest.mock import patch
from zoneinfo import ZoneInfo

from deadline_notifier.utils.timestamps import (
    ensure_utc,
    format_br_date,
    local_today,
    unix_to_timestamp,
    utc_now,
)


class TestUtcNow:
    """Tests for utc_now function."""

    def test_utc_now_returns_utc_datetime(self):
        """Test that utc_now returns a timezone-aware datetime in UTC."""
        now = utc_now()

        assert now.tzinfo == timezone.utc

    def test_utc_now_is_recent(self):
        """Test that utc_now returns a recent timestamp."""
        before = datetime.now(timezone.utc)
        now = utc_now()
        after = datetime.now(timezone.utc)

        assert before <= now <= after


class TestEnsureUtc:
    """Tests for ensure_utc function."""

    def test_ensure_utc_with_none(self):
        assert ensure_utc(None) is None

    def test_ensure_utc_with_naive_datetime(self):
        """Test that naive datetime is treated as UTC."""
        result = ensure_utc(datetime(2025, 1, 21, 12, 0, 0))

        assert result == datetime(2025, 1, 21, 12, 0, 0, tzinfo=timezone.utc)

    def test_ensure_utc_converts_other_zones(self):
        """Test that an aware datetime is converted, not relabelled."""
        brt = timezone(timedelta(hours=-3))
        result = ensure_utc(datetime(2025, 1, 21, 21, 30, tzinfo=brt))

        assert result == datetime(2025, 1, 22, 0, 30, tzinfo=timezone.utc)


class TestLocalToday:
    """Tests for local_today function."""

    def test_local_today_uses_zone_calendar_date(self):
        """Test that the date follows the zone, not UTC.

        01:30 UTC on the 22nd is still the 21st in São Paulo.
        """
        instant = datetime(2025, 1, 22, 1, 30, tzinfo=timezone.utc)

        with patch("deadline_notifier.utils.timestamps.datetime") as mock_datetime:
            mock_datetime.now.side_effect = lambda tz=None: instant.astimezone(tz)
            result = local_today("America/Sao_Paulo")

        assert result == date(2025, 1, 21)

    def test_local_today_accepts_zoneinfo(self):
        assert isinstance(local_today(ZoneInfo("UTC")), date)


class TestFormatting:
    """Tests for date and timestamp formatting."""

    def test_format_br_date(self):
        assert format_br_date(date(2025, 1, 5)) == "05/01/2025"

    def test_format_br_date_none(self):
        assert format_br_date(None) == "N/A"

    def test_unix_to_timestamp(self):
        result = unix_to_timestamp(1735689600)

        assert result == datetime(2025, 1, 1, tzinfo=timezone.utc)

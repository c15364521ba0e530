"""
Unit tests for datetime utilities.

Tests clinic timezone handling, lenient date parsing and period bucketing.
"""

import pytest
from datetime import date, datetime, timedelta, timezone

from utils.datetime_utils import (
    CLINIC_TZ,
    clinic_now,
    end_of_day,
    ensure_clinic_tz,
    format_display_datetime,
    parse_appointment_date,
    parse_date_string,
    parse_datetime_string,
    period_key,
    start_of_day,
    years_before,
)


class TestClinicTimezone:
    """Test clinic timezone utilities."""

    def test_clinic_now_is_timezone_aware(self):
        now = clinic_now()

        assert now.tzinfo == CLINIC_TZ

    def test_ensure_clinic_tz_with_naive_datetime(self):
        """Naive datetimes are taken as clinic-local time."""
        result = ensure_clinic_tz(datetime(2024, 1, 1, 10, 0))

        assert result.tzinfo == CLINIC_TZ
        assert result.hour == 10

    def test_ensure_clinic_tz_converts_aware_datetime(self):
        utc_dt = datetime(2024, 1, 1, 10, 0, tzinfo=timezone.utc)

        result = ensure_clinic_tz(utc_dt)

        assert result.tzinfo == CLINIC_TZ
        assert result == utc_dt

    def test_ensure_clinic_tz_none(self):
        assert ensure_clinic_tz(None) is None


class TestParsing:
    """Test parsing of date and datetime strings."""

    def test_parse_datetime_with_z_suffix(self):
        result = parse_datetime_string("2024-03-05T05:30:00Z")

        assert result == datetime(2024, 3, 5, 5, 30, tzinfo=timezone.utc)
        assert result.tzinfo == CLINIC_TZ

    def test_parse_plain_date_is_midnight(self):
        result = parse_datetime_string("2024-03-05")

        assert result == datetime(2024, 3, 5, tzinfo=CLINIC_TZ)

    def test_parse_datetime_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_datetime_string("next tuesday")

    def test_parse_datetime_rejects_empty(self):
        with pytest.raises(ValueError, match="empty"):
            parse_datetime_string("  ")

    def test_parse_appointment_date_is_lenient(self):
        assert parse_appointment_date("next tuesday") is None
        assert parse_appointment_date(None) is None
        assert parse_appointment_date("2024-03-05T10:30:00") == datetime(2024, 3, 5, 10, 30, tzinfo=CLINIC_TZ)

    @pytest.mark.parametrize("value", ["2024-03-05", "2024/3/5", "2024-3-05", "2024-03-05T10:30:00"])
    def test_parse_date_string_formats(self, value):
        assert parse_date_string(value) == date(2024, 3, 5)

    @pytest.mark.parametrize("value", ["", "20240305", "2024-13-01", "2024-03"])
    def test_parse_date_string_invalid(self, value):
        with pytest.raises(ValueError):
            parse_date_string(value)


class TestPeriods:
    """Test day boundaries and period keys."""

    def test_day_boundaries(self):
        d = date(2024, 3, 5)

        assert start_of_day(d) == datetime(2024, 3, 5, tzinfo=CLINIC_TZ)
        assert end_of_day(d) - start_of_day(d) == timedelta(days=1, microseconds=-1)

    def test_period_keys(self):
        dt = datetime(2024, 3, 5, 23, 30, tzinfo=CLINIC_TZ)

        assert period_key(dt, "day") == "2024-03-05"
        assert period_key(dt, "week") == "2024-W10"
        assert period_key(dt, "month") == "2024-03"
        assert period_key(dt, None) == "overall"

    def test_period_key_uses_clinic_local_date(self):
        """A UTC instant late in the day can fall on the next clinic day."""
        utc_dt = datetime(2024, 3, 5, 23, 30, tzinfo=timezone.utc)

        expected = utc_dt.astimezone(CLINIC_TZ).strftime("%Y-%m-%d")
        assert period_key(utc_dt, "day") == expected


def test_years_before_handles_leap_day():
    assert years_before(date(2024, 2, 29), 1) == date(2023, 2, 28)
    assert years_before(date(2024, 3, 5), 10) == date(2014, 3, 5)


def test_format_display_datetime():
    assert format_display_datetime(datetime(2024, 3, 5, 14, 30)) == "2024-03-05 14:30"
    assert format_display_datetime(None) == "-"

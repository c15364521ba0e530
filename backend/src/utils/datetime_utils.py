"""
Datetime utilities for consistent timezone handling across the application.

This module provides utilities to ensure all datetime operations use timezone-aware
datetimes consistently. Business logic runs in the clinic's local timezone, a fixed
UTC offset configured with CLINIC_UTC_OFFSET_HOURS.
"""

import logging
from datetime import datetime, timezone, timedelta, date
from typing import Optional

from core.config import CLINIC_UTC_OFFSET_HOURS

logger = logging.getLogger(__name__)

# Clinic timezone constant
CLINIC_TZ = timezone(timedelta(hours=CLINIC_UTC_OFFSET_HOURS))


def clinic_now() -> datetime:
    """
    Get current clinic-local datetime.

    Returns:
        Current datetime with the clinic timezone attached
    """
    return datetime.now(CLINIC_TZ)


def clinic_today() -> date:
    """Get the current date in the clinic timezone."""
    return clinic_now().date()


def ensure_clinic_tz(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in the clinic timezone.

    Naive datetimes are assumed to already be clinic-local time.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=CLINIC_TZ)
    return dt.astimezone(CLINIC_TZ)


def parse_datetime_string(dt_str: str) -> datetime:
    """
    Parse an ISO format datetime string and convert to the clinic timezone.

    Handles various datetime string formats:
    - ISO format with timezone (e.g., "2024-01-01T09:00:00+05:00")
    - ISO format with Z (UTC) (e.g., "2024-01-01T04:00:00.000Z")
    - ISO format without timezone (assumes clinic time)
    - Plain dates (e.g., "2024-01-01"), taken as midnight clinic time

    Raises:
        ValueError: If datetime string cannot be parsed
    """
    if not dt_str or not dt_str.strip():
        raise ValueError("Datetime string cannot be empty")
    try:
        # Replace Z with +00:00 for UTC
        dt = datetime.fromisoformat(dt_str.strip().replace('Z', '+00:00'))
    except ValueError as e:
        raise ValueError(f"Invalid datetime string format: {dt_str}") from e
    result = ensure_clinic_tz(dt)
    assert result is not None
    return result


def parse_appointment_date(value: Optional[str]) -> Optional[datetime]:
    """
    Leniently parse a stored appointment_date.

    Appointment dates are free ISO strings written by several clients, so an
    unparseable value yields None instead of an error.
    """
    if not value:
        return None
    try:
        return parse_datetime_string(value)
    except ValueError:
        logger.warning(f"Unparseable appointment_date: {value!r}")
        return None


def parse_date_string(date_str: str) -> date:
    """
    Parse a date string in YYYY-MM-DD or YYYY/MM/DD format.

    Accepts both formats:
    - YYYY-MM-DD (e.g., "2022-01-01", "2022-1-1")
    - YYYY/MM/DD (e.g., "2022/01/01", "2022/1/1")

    Automatically normalizes single-digit months/days.

    Raises:
        ValueError: If date string cannot be parsed
    """
    if not date_str or not date_str.strip():
        raise ValueError("Date string cannot be empty")

    date_str = date_str.strip()

    # Only the date part of an ISO datetime is relevant
    if 'T' in date_str:
        date_str = date_str.split('T', 1)[0]

    if '/' in date_str:
        parts = date_str.split('/')
    elif '-' in date_str:
        parts = date_str.split('-')
    else:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    if len(parts) != 3:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}")

    normalized = f"{parts[0].zfill(4)}-{parts[1].zfill(2)}-{parts[2].zfill(2)}"

    try:
        return datetime.strptime(normalized, '%Y-%m-%d').date()
    except ValueError as e:
        raise ValueError(f"Invalid date format (expected YYYY-MM-DD or YYYY/MM/DD): {date_str}") from e


def start_of_day(d: date) -> datetime:
    """Midnight at the start of a clinic-local day."""
    return datetime(d.year, d.month, d.day, tzinfo=CLINIC_TZ)


def end_of_day(d: date) -> datetime:
    """Last microsecond of a clinic-local day."""
    return datetime(d.year, d.month, d.day, 23, 59, 59, 999999, tzinfo=CLINIC_TZ)


def period_key(dt: datetime, group: Optional[str]) -> str:
    """
    Bucket a datetime into a reporting period.

    Args:
        dt: Datetime to bucket (converted to clinic time first)
        group: "day" (YYYY-MM-DD), "week" (ISO week, YYYY-Www), "month" (YYYY-MM);
            anything else puts everything in a single "overall" bucket

    Returns:
        Period key string
    """
    local = ensure_clinic_tz(dt)
    assert local is not None
    if group == "day":
        return local.strftime('%Y-%m-%d')
    if group == "week":
        iso_year, iso_week, _ = local.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    if group == "month":
        return local.strftime('%Y-%m')
    return "overall"


def years_before(d: date, years: int) -> date:
    """Same calendar day `years` years earlier (Feb 29 falls back to Feb 28)."""
    try:
        return d.replace(year=d.year - years)
    except ValueError:
        return d.replace(year=d.year - years, day=28)


def format_display_datetime(dt: Optional[datetime]) -> str:
    """Format a datetime for printed documents, e.g. "2024-03-05 14:30"."""
    local = ensure_clinic_tz(dt)
    if local is None:
        return "-"
    return local.strftime('%Y-%m-%d %H:%M')

"""Calendar date helpers pinned to the listing's reference timezone.

All event dates are calendar dates in Mountain Time, the service region.
The backend sometimes serializes them as midnight-UTC timestamps
(``2024-12-26T00:00:00.000Z``); the leading ``YYYY-MM-DD`` is the calendar
date in every case and is never shifted across timezones.
"""
import re
from datetime import date, datetime, time
from typing import Optional
from zoneinfo import ZoneInfo

REFERENCE_TZ = ZoneInfo('America/Denver')

ISO_DATE_PATTERN = re.compile(r'^\d{4}-\d{2}-\d{2}$')
EMBEDDED_DATE_PATTERN = re.compile(r'(\d{4})-(\d{2})-(\d{2})')

# Formats seen in older submissions
LEGACY_DATE_FORMATS = [
    '%m/%d/%Y',      # US format
    '%m-%d-%Y',      # US format with dashes
    '%B %d, %Y',     # Full month name
    '%b %d, %Y',     # Abbreviated month name
    '%Y/%m/%d',      # Alternative ISO format
]

TIME_FORMATS = [
    '%H:%M',         # 24-hour format
    '%H:%M:%S',      # 24-hour with seconds
    '%I:%M %p',      # 12-hour format with AM/PM
    '%I:%M%p',       # 12-hour format without space
    '%I:%M:%S %p',   # 12-hour with seconds and AM/PM
]


def now() -> datetime:
    """Current wall-clock time in the reference timezone."""
    return datetime.now(REFERENCE_TZ)


def today() -> date:
    """Current calendar date in the reference timezone."""
    return now().date()


def parse_iso_date(value) -> Optional[date]:
    """
    Parse a strict ``YYYY-MM-DD`` string, as accepted from query strings.

    Args:
        value: Candidate value of any type

    Returns:
        date object, or None if the value is not a valid ISO date
    """
    if not isinstance(value, str) or not ISO_DATE_PATTERN.match(value):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        return None


def parse_event_date(value) -> Optional[date]:
    """
    Extract the calendar date from an event's ``date`` field.

    Accepts a bare ISO date, any string embedding one (ISO timestamps), or
    one of the legacy formats.

    Args:
        value: Raw date field

    Returns:
        date object, or None if no valid calendar date can be found
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        return None

    trimmed = value.strip()
    match = EMBEDDED_DATE_PATTERN.search(trimmed)
    if match:
        try:
            return date(*(int(part) for part in match.groups()))
        except ValueError:
            return None

    for fmt in LEGACY_DATE_FORMATS:
        try:
            return datetime.strptime(trimmed, fmt).date()
        except ValueError:
            continue

    return None


def parse_clock_time(value) -> Optional[time]:
    """
    Parse a local clock time such as ``19:30``, ``19:30:00`` or ``7:30 PM``.

    Args:
        value: Raw time field

    Returns:
        time object, or None if parsing fails
    """
    if not isinstance(value, str) or not value.strip():
        return None

    trimmed = value.strip()
    for fmt in TIME_FORMATS:
        try:
            return datetime.strptime(trimmed, fmt).time()
        except ValueError:
            continue

    return None


def build_event_datetime(date_value, time_value=None) -> Optional[datetime]:
    """
    Combine an event date and optional start time into an aware datetime.

    Args:
        date_value: Raw date field
        time_value: Raw time field; midnight is used when missing

    Returns:
        Mountain Time datetime, or None if the date cannot be parsed
    """
    event_date = parse_event_date(date_value)
    if event_date is None:
        return None

    clock = parse_clock_time(time_value) or time(0, 0)
    return datetime.combine(event_date, clock, tzinfo=REFERENCE_TZ)


def as_reference_time(value: datetime) -> datetime:
    """Read a naive datetime as Mountain Time; aware ones are converted."""
    if value.tzinfo is None:
        return value.replace(tzinfo=REFERENCE_TZ)
    return value.astimezone(REFERENCE_TZ)

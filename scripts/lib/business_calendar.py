"""
Business calendar for Zoho Stats Hub.

Converts timestamps into the sales team's local time using a fixed UTC
offset (Mexico City standard time, UTC-06:00, by default). The process
timezone is never consulted, so a server running in UTC produces the same
numbers as a laptop in Mexico.

Usage:
    from scripts.lib.business_calendar import BusinessCalendar
    cal = BusinessCalendar()
    cal.is_within_business_window("2024-02-05T09:15:00-06:00")  # True
"""
import math
import re
from dataclasses import dataclass
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union

from integrations.zoho.settings import DEFAULT_BUSINESS_UTC_OFFSET_MINUTES

WINDOW_START_MINUTES = 8 * 60 + 30    # 08:30
WINDOW_END_MINUTES = 20 * 60 + 30     # 20:30
OFFICE_OPEN_MINUTES = 8 * 60          # 08:00
OFFICE_CLOSE_MINUTES = 20 * 60 + 30   # 20:30

_DATE_PREFIX = re.compile(r"^(\d{4}-\d{2}-\d{2})")

Timestamp = Union[str, datetime]


@dataclass(frozen=True)
class BusinessLocalTime:
    hour: int
    minute: int
    day_of_week: int  # 0=Sunday .. 6=Saturday

    @property
    def minutes_of_day(self) -> int:
        return self.hour * 60 + self.minute

    @property
    def is_weekend(self) -> bool:
        return self.day_of_week in (0, 6)


def parse_ts(value: Any) -> Optional[datetime]:
    """Parse a Zoho timestamp into an aware datetime; naive values are UTC."""
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, date):
        dt = datetime(value.year, value.month, value.day)
    elif isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


class BusinessCalendar:
    """Pure date/time helpers bound to one fixed UTC offset."""

    def __init__(self, utc_offset_minutes: int = DEFAULT_BUSINESS_UTC_OFFSET_MINUTES):
        self.utc_offset_minutes = utc_offset_minutes
        self.tz = timezone(timedelta(minutes=utc_offset_minutes))

    def localize(self, value: Timestamp) -> Optional[datetime]:
        dt = parse_ts(value)
        return dt.astimezone(self.tz) if dt else None

    def to_business_local(self, value: Timestamp) -> Optional[BusinessLocalTime]:
        local = self.localize(value)
        if local is None:
            return None
        # isoweekday(): Mon=1..Sun=7
        return BusinessLocalTime(local.hour, local.minute, local.isoweekday() % 7)

    def is_within_business_window(self, value: Timestamp) -> bool:
        """08:30-20:30 local, both ends inclusive, any day of the week."""
        parts = self.to_business_local(value)
        if parts is None:
            return False
        return WINDOW_START_MINUTES <= parts.minutes_of_day <= WINDOW_END_MINUTES

    def is_outside_business_hours(self, value: Timestamp) -> bool:
        """Weekend, or outside 08:00-20:30 local."""
        parts = self.to_business_local(value)
        if parts is None:
            return False
        if parts.is_weekend:
            return True
        return not OFFICE_OPEN_MINUTES <= parts.minutes_of_day <= OFFICE_CLOSE_MINUTES

    def date_key(self, value: Any) -> Optional[str]:
        """``YYYY-MM-DD`` for a timestamp.

        A string that already starts with a calendar date keeps that date
        as written; anything else is converted to the business-local date.
        """
        if not value:
            return None
        if isinstance(value, str):
            match = _DATE_PREFIX.match(value.strip())
            if match:
                return match.group(1)
            local = self.localize(value)
            return local.strftime("%Y-%m-%d") if local else None
        if isinstance(value, datetime):
            return self.localize(value).strftime("%Y-%m-%d")
        return None

    @staticmethod
    def is_date_key_in_range(key: Optional[str], start_key: Optional[str],
                             end_key: Optional[str]) -> bool:
        if not key:
            return False
        if start_key and key < start_key:
            return False
        if end_key and key > end_key:
            return False
        return True

    def week_key(self, value: Timestamp) -> Optional[str]:
        """``YYYY-Www`` where week = ceil((days since Jan 1 + weekday of Jan 1 + 1) / 7)."""
        local = self.localize(value)
        if local is None:
            return None
        jan1 = local.replace(month=1, day=1, hour=0, minute=0, second=0, microsecond=0)
        days = (local - jan1) // timedelta(days=1)
        jan1_dow = jan1.isoweekday() % 7
        week = math.ceil((days + jan1_dow + 1) / 7)
        return f"{local.year}-W{week:02d}"

    def month_key(self, value: Timestamp) -> Optional[str]:
        local = self.localize(value)
        return local.strftime("%Y-%m") if local else None

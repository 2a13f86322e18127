"""Tests for the fixed-offset business calendar."""

from datetime import datetime, timedelta, timezone

import pytest

from scripts.lib.business_calendar import BusinessCalendar, parse_ts

CDMX = timezone(timedelta(hours=-6))


@pytest.fixture
def cal():
    return BusinessCalendar(-360)


class TestParseTs:
    def test_zulu_suffix(self):
        assert parse_ts("2024-01-15T14:30:00Z") == datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)

    def test_naive_is_utc(self):
        assert parse_ts("2024-01-15T14:30:00").tzinfo == timezone.utc

    @pytest.mark.parametrize("value", [None, "", "not a date", 42])
    def test_unparseable(self, value):
        assert parse_ts(value) is None


class TestBusinessLocal:
    def test_offset_applied_regardless_of_input_zone(self, cal):
        parts = cal.to_business_local("2024-01-15T14:30:00Z")
        assert (parts.hour, parts.minute) == (8, 30)

    def test_day_of_week_sunday_is_zero(self, cal):
        # 2024-01-14 was a Sunday
        assert cal.to_business_local(datetime(2024, 1, 14, 12, 0, tzinfo=CDMX)).day_of_week == 0
        assert cal.to_business_local(datetime(2024, 1, 13, 12, 0, tzinfo=CDMX)).day_of_week == 6

    @pytest.mark.parametrize("day", range(14, 21))
    @pytest.mark.parametrize("hm,inside", [
        ((8, 29), False),
        ((8, 30), True),
        ((14, 0), True),
        ((20, 30), True),
        ((20, 31), False),
    ])
    def test_window_boundaries_every_weekday(self, cal, day, hm, inside):
        dt = datetime(2024, 1, day, hm[0], hm[1], tzinfo=CDMX)
        assert cal.is_within_business_window(dt) is inside

    def test_outside_hours_on_weekend(self, cal):
        assert cal.is_outside_business_hours(datetime(2024, 1, 13, 12, 0, tzinfo=CDMX)) is True

    def test_outside_hours_uses_eight_oclock_open(self, cal):
        # 08:15 is outside the first-contact window but inside office hours
        monday_0815 = datetime(2024, 1, 15, 8, 15, tzinfo=CDMX)
        assert cal.is_within_business_window(monday_0815) is False
        assert cal.is_outside_business_hours(monday_0815) is False
        assert cal.is_outside_business_hours(datetime(2024, 1, 15, 7, 59, tzinfo=CDMX)) is True
        assert cal.is_outside_business_hours(datetime(2024, 1, 15, 20, 31, tzinfo=CDMX)) is True


class TestKeys:
    def test_date_key_keeps_written_date(self, cal):
        assert cal.date_key("2024-01-31T23:30:00+02:00") == "2024-01-31"
        assert cal.date_key("2024-01-31") == "2024-01-31"

    def test_date_key_converts_datetime_to_business_date(self, cal):
        assert cal.date_key(datetime(2024, 2, 1, 3, 0, tzinfo=timezone.utc)) == "2024-01-31"

    @pytest.mark.parametrize("value", [None, "", "garbage", 12])
    def test_date_key_none(self, cal, value):
        assert cal.date_key(value) is None

    def test_date_key_in_range(self, cal):
        assert cal.is_date_key_in_range("2024-01-15", "2024-01-01", "2024-01-31")
        assert cal.is_date_key_in_range("2024-01-31", "2024-01-01", "2024-01-31")
        assert not cal.is_date_key_in_range("2024-02-01", "2024-01-01", "2024-01-31")
        assert cal.is_date_key_in_range("2024-02-01", None, None)
        assert not cal.is_date_key_in_range(None, None, None)

    def test_week_key(self, cal):
        # Jan 1 2024 was a Monday: ceil((0 + 1 + 1) / 7) = 1
        assert cal.week_key(datetime(2024, 1, 1, 12, tzinfo=CDMX)) == "2024-W01"
        # Saturday Jan 6: ceil((5 + 1 + 1) / 7) = 1, Sunday Jan 7 starts week 2
        assert cal.week_key(datetime(2024, 1, 6, 12, tzinfo=CDMX)) == "2024-W01"
        assert cal.week_key(datetime(2024, 1, 7, 12, tzinfo=CDMX)) == "2024-W02"

    def test_month_key(self, cal):
        assert cal.month_key("2024-03-01T02:00:00Z") == "2024-02"

from datetime import date, datetime

import pytest

from habitlog import dates
from habitlog.errors import ValidationError


def test_parse_day_accepts_dates_datetimes_and_text():
    assert dates.parse_day(date(2024, 1, 5)) == date(2024, 1, 5)
    assert dates.parse_day(datetime(2024, 1, 5, 13, 30)) == date(2024, 1, 5)
    assert dates.parse_day("2024-01-05") == date(2024, 1, 5)
    with pytest.raises(ValidationError) as excinfo:
        dates.parse_day("not-a-date")
    assert excinfo.value.field == "date"
    assert excinfo.value.status_code == 400


def test_week_boundaries_are_iso_monday_to_sunday():
    wednesday = date(2024, 1, 3)
    assert dates.week_start(wednesday) == date(2024, 1, 1)
    assert dates.week_end(wednesday) == date(2024, 1, 7)
    assert dates.week_start(date(2024, 1, 7)) == date(2024, 1, 1)


def test_month_boundaries_handle_leap_years():
    assert dates.month_start(date(2024, 2, 17)) == date(2024, 2, 1)
    assert dates.month_end(date(2024, 2, 17)) == date(2024, 2, 29)
    assert dates.month_end(date(2023, 2, 17)) == date(2023, 2, 28)
    assert dates.days_in_month(date(2024, 12, 1)) == 31


def test_each_day_is_inclusive_and_empty_when_reversed():
    assert dates.each_day(date(2024, 1, 30), date(2024, 2, 2)) == [
        date(2024, 1, 30),
        date(2024, 1, 31),
        date(2024, 2, 1),
        date(2024, 2, 2),
    ]
    assert dates.each_day(date(2024, 2, 2), date(2024, 1, 30)) == []


def test_trailing_days_end_today_oldest_first():
    days = dates.trailing_days(3, date(2024, 3, 1))
    assert days == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]
    assert dates.trailing_days(0, date(2024, 3, 1)) == []


def test_month_days_stops_at_today_for_current_month():
    today = date(2024, 3, 15)
    assert len(dates.month_days(today, today)) == 15
    assert len(dates.month_days(date(2024, 2, 10), today)) == 29
    assert dates.month_days(date(2024, 4, 1), today) == []

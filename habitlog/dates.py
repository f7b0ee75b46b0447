from __future__ import annotations

import calendar
from datetime import date, datetime, timedelta

from habitlog.errors import ValidationError


def parse_day(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError as exc:
        raise ValidationError(f"Invalid date: {value!r}", field="date") from exc


def week_start(ref: date) -> date:
    """Monday of the ISO week containing ``ref``."""
    return ref - timedelta(days=ref.weekday())


def week_end(ref: date) -> date:
    return week_start(ref) + timedelta(days=6)


def days_in_month(ref: date) -> int:
    return calendar.monthrange(ref.year, ref.month)[1]


def month_start(ref: date) -> date:
    return ref.replace(day=1)


def month_end(ref: date) -> date:
    return ref.replace(day=days_in_month(ref))


def each_day(start: date, end: date) -> list[date]:
    if end < start:
        return []
    return [start + timedelta(days=i) for i in range((end - start).days + 1)]


def trailing_days(count: int, today: date) -> list[date]:
    if count <= 0:
        return []
    return each_day(today - timedelta(days=count - 1), today)


def week_days(ref: date) -> list[date]:
    return each_day(week_start(ref), week_end(ref))


def month_days(ref: date, today: date) -> list[date]:
    # Current month stops at today; a future month has no elapsed days.
    return each_day(month_start(ref), min(today, month_end(ref)))

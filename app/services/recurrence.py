from __future__ import annotations

import calendar
from datetime import date, datetime, time, timedelta, tzinfo
from enum import Enum as PyEnum
from typing import Iterable, Iterator

from ..core.constants import BUSINESS_WEEKDAYS
from ..db.models import DayOfWeek, RecurringType
from .time_constraints import within_booking_horizon


class RecurringFrequency(str, PyEnum):
    day = "day"
    week = "week"
    month = "month"


def add_months(moment: datetime, months: int) -> datetime:
    month_index = moment.month - 1 + months
    year = moment.year + month_index // 12
    month = month_index % 12 + 1
    day = min(moment.day, calendar.monthrange(year, month)[1])
    return moment.replace(year=year, month=month, day=day)


def next_business_day(moment: datetime) -> datetime:
    """Move a Saturday or Sunday forward to the following Monday."""
    while moment.weekday() not in BUSINESS_WEEKDAYS:
        moment += timedelta(days=1)
    return moment


def _raw_dates(start: datetime, frequency: RecurringFrequency, count: int) -> Iterator[datetime]:
    if frequency is RecurringFrequency.week:
        for index in range(count):
            yield start + timedelta(weeks=index)
    elif frequency is RecurringFrequency.day:
        cursor = next_business_day(start)
        for _ in range(count):
            yield cursor
            cursor = next_business_day(cursor + timedelta(days=1))
    else:
        # Offsets are taken from the start date so a 31st is not walked down
        # to the 28th after February.
        for index in range(count):
            yield next_business_day(add_months(start, index))


def calculate_recurring_dates(
    start: datetime,
    frequency: RecurringFrequency | str,
    count: int,
    now: datetime,
) -> list[datetime]:
    frequency = RecurringFrequency(frequency)
    dates: list[datetime] = []
    for candidate in _raw_dates(start, frequency, max(count, 0)):
        if not within_booking_horizon(candidate, now):
            break
        if dates and candidate <= dates[-1]:
            continue
        dates.append(candidate)
    return dates


def _first_on_or_after(day: date, weekday: int) -> date:
    return day + timedelta(days=(weekday - day.weekday()) % 7)


def _weekly_days(weekday: int, first: date, last: date) -> Iterator[date]:
    current = _first_on_or_after(first, weekday)
    while current <= last:
        yield current
        current += timedelta(days=7)


def _monthly_days(weekday: int, first: date, last: date) -> Iterator[date]:
    month_start = first.replace(day=1)
    while month_start <= last:
        current = _first_on_or_after(month_start, weekday)
        if first <= current <= last:
            yield current
        month_start = add_months(
            datetime.combine(month_start, time()), 1
        ).date()


def activity_occurrences(
    recurring_type: RecurringType | str,
    recurring_days: Iterable[DayOfWeek | str],
    start_time: time,
    from_dt: datetime,
    until_dt: datetime,
    tz: tzinfo,
) -> list[datetime]:
    """Local start times of an activity's occurrences between two instants.

    Weekly activities occur on every listed weekday, monthly ones on the
    first listed weekday of each month.
    """
    recurring_type = RecurringType(recurring_type)
    first = from_dt.astimezone(tz).date()
    last = until_dt.astimezone(tz).date()
    expand = _weekly_days if recurring_type is RecurringType.weekly else _monthly_days

    days: set[date] = set()
    for day in recurring_days:
        days.update(expand(DayOfWeek(day).weekday, first, last))
    return [datetime.combine(day, start_time, tzinfo=tz) for day in sorted(days)]

"""Pure date arithmetic for recurring patterns.

Every function here works on calendar dates only; callers compute the user's
local date first. Nothing reads the system clock.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from typing import List, Optional

from tasklane.models.recurrence import RecurrenceKind


def _days_in_month(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def _months_between(start: date, target: date) -> int:
    return (target.year - start.year) * 12 + (target.month - start.month)


def _monthly_day(start: date, year: int, month: int) -> int:
    # Day 29-31 starts clip to the last day of shorter months.
    return min(start.day, _days_in_month(year, month))


def _is_leap_day(d: date) -> bool:
    return d.month == 2 and d.day == 29


def _yearly_date(start: date, year: int) -> date:
    if _is_leap_day(start) and not calendar.isleap(year):
        return date(year, 2, 28)
    return date(year, start.month, start.day)


def emits_on(kind: RecurrenceKind, start_date: date, target_date: date) -> bool:
    """Return True when a pattern of `kind` starting on `start_date` produces an instance on `target_date`.

    DAILY, WEEKLY and BIWEEKLY emit on the start date itself. MONTHLY and
    YEARLY emit only in months/years strictly after the start.
    """
    if target_date < start_date:
        return False

    kind = RecurrenceKind.parse(kind)
    delta = (target_date - start_date).days

    if kind == RecurrenceKind.DAILY:
        return True

    if kind == RecurrenceKind.WEEKLY:
        return delta % 7 == 0

    if kind == RecurrenceKind.BIWEEKLY:
        return delta % 14 == 0

    if kind == RecurrenceKind.MONTHLY:
        if _months_between(start_date, target_date) <= 0:
            return False
        return target_date.day == _monthly_day(start_date, target_date.year, target_date.month)

    if kind == RecurrenceKind.YEARLY:
        if target_date.year <= start_date.year:
            return False
        return target_date == _yearly_date(start_date, target_date.year)

    return False


def next_instance_date(kind: RecurrenceKind, start_date: date, after: date) -> date:
    """First date strictly after `after` on which the pattern emits (never before `start_date`)."""
    kind = RecurrenceKind.parse(kind)
    if after < start_date:
        if emits_on(kind, start_date, start_date):
            return start_date
        after = start_date

    if kind == RecurrenceKind.DAILY:
        return after + timedelta(days=1)

    if kind in (RecurrenceKind.WEEKLY, RecurrenceKind.BIWEEKLY):
        period = 7 if kind == RecurrenceKind.WEEKLY else 14
        remainder = (after - start_date).days % period
        return after + timedelta(days=period - remainder)

    if kind == RecurrenceKind.MONTHLY:
        year, month = after.year, after.month
        candidate = date(year, month, _monthly_day(start_date, year, month))
        if candidate <= after or _months_between(start_date, candidate) <= 0:
            month += 1
            if month > 12:
                year, month = year + 1, 1
            candidate = date(year, month, _monthly_day(start_date, year, month))
        return candidate

    # YEARLY
    year = max(after.year, start_date.year + 1)
    candidate = _yearly_date(start_date, year)
    if candidate <= after:
        candidate = _yearly_date(start_date, year + 1)
    return candidate


def emitting_dates(
    kind: RecurrenceKind,
    start_date: date,
    range_start: date,
    range_end: date,
    end_date: Optional[date] = None,
) -> List[date]:
    """All dates in [range_start, range_end] on which the pattern emits, honoring an optional end date."""
    last = range_end if end_date is None else min(range_end, end_date)
    first = max(range_start, start_date)
    if first > last:
        return []

    out: List[date] = []
    current = first if emits_on(kind, start_date, first) else next_instance_date(kind, start_date, first)
    while current <= last:
        out.append(current)
        current = next_instance_date(kind, start_date, current)
    return out

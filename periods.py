"""Billing period lookups and day-of-month projection.

Periods are half-open ``[start_date, end_date)`` intervals. An expense has no
stored period: the period that owns it is whichever one contains its
``purchase_date``, so every ownership question goes through
:func:`find_period_for_date`.
"""

from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence, Union
from zoneinfo import ZoneInfo

from config import get_settings
from models import BillingPeriod, Expense


def local_today() -> date:
    settings = get_settings()
    tz = ZoneInfo(settings.timezone)
    return datetime.now(tz).date()


def days_in_month(year: int, month: int) -> int:
    if month == 12:
        next_month = date(year + 1, 1, 1)
    else:
        next_month = date(year, month + 1, 1)
    return (next_month - date(year, month, 1)).days


def contains(period: BillingPeriod, target: date) -> bool:
    return period.start_date <= target < period.end_date


def find_period_for_date(
    target: date, periods: Iterable[BillingPeriod]
) -> Optional[BillingPeriod]:
    """Return the first period in ``periods`` whose interval contains ``target``.

    Overlapping periods are not supported; when they exist the first match in
    iteration order wins.
    """
    for period in periods:
        if contains(period, target):
            return period
    return None


def expense_in_period(expense: Expense, period: BillingPeriod) -> bool:
    return contains(period, expense.purchase_date)


def periods_from(
    periods: Iterable[BillingPeriod], anchor: BillingPeriod
) -> list[BillingPeriod]:
    return [p for p in periods if p.start_date >= anchor.start_date]


def day_of_month(value: Union[date, str]) -> int:
    if isinstance(value, date):
        return value.day
    try:
        day = int(value.split("-")[2])
    except (IndexError, ValueError):
        return 1
    return min(max(day, 1), 31)


def _day_in_month(year: int, month: int, desired_day: int) -> date:
    safe_day = min(max(desired_day, 1), days_in_month(year, month))
    return date(year, month, safe_day)


def project_date(period: BillingPeriod, desired_day: int) -> date:
    """Place ``desired_day`` inside ``period``.

    Uses the calendar month of the period start, moves to the following month
    when that lands before the start, and finally clamps to the last day of
    the period.
    """
    start = period.start_date
    candidate = _day_in_month(start.year, start.month, desired_day)
    if candidate < start:
        if start.month == 12:
            candidate = _day_in_month(start.year + 1, 1, desired_day)
        else:
            candidate = _day_in_month(start.year, start.month + 1, desired_day)
    if candidate >= period.end_date:
        candidate = period.end_date - timedelta(days=1)
    return candidate


def sort_periods(periods: Sequence[BillingPeriod]) -> list[BillingPeriod]:
    return sorted(periods, key=lambda p: (p.start_date, p.id or 0))

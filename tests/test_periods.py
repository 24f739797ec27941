from datetime import date, timedelta

from models import BillingPeriod, Expense, ExpenseType
from periods import (
    day_of_month,
    expense_in_period,
    find_period_for_date,
    periods_from,
    project_date,
)


def _period(pid: int, start: date, end: date, name: str = "P") -> BillingPeriod:
    return BillingPeriod(id=pid, user_id=1, name=name, start_date=start, end_date=end)


JAN = _period(1, date(2026, 1, 6), date(2026, 2, 6), "Jan")
FEB = _period(2, date(2026, 2, 6), date(2026, 3, 6), "Feb")
MAR = _period(3, date(2026, 3, 6), date(2026, 4, 6), "Mar")


def test_find_period_is_half_open():
    assert find_period_for_date(date(2026, 1, 6), [JAN, FEB]) is JAN
    assert find_period_for_date(date(2026, 2, 5), [JAN, FEB]) is JAN
    assert find_period_for_date(date(2026, 2, 6), [JAN, FEB]) is FEB
    assert find_period_for_date(date(2026, 3, 6), [JAN, FEB]) is None
    assert find_period_for_date(date(2026, 1, 5), [JAN, FEB]) is None


def test_find_period_matches_iff_date_inside_interval():
    day = date(2025, 12, 20)
    while day < date(2026, 2, 20):
        found = find_period_for_date(day, [JAN])
        assert (found is not None) == (JAN.start_date <= day < JAN.end_date)
        day += timedelta(days=1)


def test_find_period_overlap_takes_first_in_order():
    wide = _period(9, date(2026, 1, 1), date(2026, 3, 1))
    assert find_period_for_date(date(2026, 1, 20), [wide, JAN]) is wide
    assert find_period_for_date(date(2026, 1, 20), [JAN, wide]) is JAN


def test_find_period_empty():
    assert find_period_for_date(date(2026, 1, 20), []) is None


def test_expense_in_period_and_periods_from():
    expense = Expense(
        description="Rent",
        amount_cents=100,
        purchase_date=date(2026, 2, 15),
        category_id=1,
        type=ExpenseType.fixed,
    )
    assert expense_in_period(expense, FEB)
    assert not expense_in_period(expense, JAN)
    assert periods_from([JAN, FEB, MAR], FEB) == [FEB, MAR]
    assert periods_from([JAN, FEB, MAR], JAN) == [JAN, FEB, MAR]


def test_day_of_month_from_date_and_iso_string():
    assert day_of_month(date(2026, 1, 15)) == 15
    assert day_of_month("2026-01-31") == 31
    assert day_of_month("garbage") == 1
    assert day_of_month("2026-01-xx") == 1


def test_project_date_keeps_day_in_start_month():
    assert project_date(JAN, 15) == date(2026, 1, 15)
    assert project_date(FEB, 15) == date(2026, 2, 15)


def test_project_date_moves_to_next_month_before_start():
    # Day 3 falls before the 6th, so it lands in the following month.
    assert project_date(JAN, 3) == date(2026, 2, 3)
    assert project_date(FEB, 1) == date(2026, 3, 1)


def test_project_date_clamps_to_month_end():
    april = _period(4, date(2026, 4, 1), date(2026, 5, 1))
    assert project_date(april, 31) == date(2026, 4, 30)
    leap = _period(5, date(2024, 2, 1), date(2024, 3, 1))
    assert project_date(leap, 31) == date(2024, 2, 29)


def test_project_date_crosses_year_end():
    period = _period(6, date(2025, 12, 20), date(2026, 1, 20))
    assert project_date(period, 5) == date(2026, 1, 5)
    assert project_date(period, 25) == date(2025, 12, 25)


def test_project_date_clamps_to_last_day_of_short_period():
    period = _period(7, date(2026, 1, 10), date(2026, 1, 12))
    assert project_date(period, 5) == date(2026, 1, 11)
    assert project_date(period, 10) == date(2026, 1, 10)


def test_project_date_always_inside_period():
    periods = [
        JAN,
        FEB,
        _period(10, date(2026, 1, 31), date(2026, 2, 28)),
        _period(11, date(2024, 2, 29), date(2024, 3, 29)),
        _period(12, date(2026, 2, 1), date(2026, 3, 1)),
        _period(13, date(2026, 6, 15), date(2026, 6, 16)),
        _period(14, date(2026, 1, 1), date(2026, 4, 1)),
        _period(15, date(2025, 12, 31), date(2026, 1, 2)),
    ]
    for period in periods:
        for day in range(1, 32):
            result = project_date(period, day)
            assert period.start_date <= result < period.end_date, (period.name, day)

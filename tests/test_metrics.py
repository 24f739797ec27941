from datetime import date

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from database import Base
from errors import NotFoundError
from models import ExpenseType
from schemas import BillingPeriodIn, CategoryIn, ExpenseIn, MonthlyIncomeIn, SubcategoryIn
from services import (
    BillingPeriodService,
    CategoryService,
    ExpenseService,
    IncomeService,
    MetricsService,
)


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def _period(session: Session, name: str, start: date, end: date):
    return BillingPeriodService(session).create(
        BillingPeriodIn(name=name, start_date=start, end_date=end)
    ).period


def _expense(session: Session, category_id: int, amount: int, day: date, **extra):
    return ExpenseService(session).create(
        ExpenseIn(
            description="x",
            amount_cents=amount,
            purchase_date=day,
            category_id=category_id,
            **extra,
        )
    )


def test_summary_totals_income_expenses_and_balance():
    with _session() as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        jan = _period(session, "Jan", date(2026, 1, 6), date(2026, 2, 6))
        IncomeService(session).set_monthly_income(
            jan.id, MonthlyIncomeIn(salary_cents=300_000, extra_cents=20_000)
        )
        _expense(session, food.id, 120_000, date(2026, 1, 6))
        _expense(session, food.id, 30_000, date(2026, 2, 5))
        _expense(session, food.id, 99_000, date(2026, 2, 6))

        summary = MetricsService(session).summary_for_period(jan.id)

        assert summary.income_cents == 320_000
        assert summary.expense_cents == 150_000
        assert summary.balance_cents == 170_000


def test_summary_without_income_can_be_negative():
    with _session() as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        jan = _period(session, "Jan", date(2026, 1, 6), date(2026, 2, 6))
        _expense(session, food.id, 5_000, date(2026, 1, 10))

        summary = MetricsService(session).summary_for_period(jan.id)

        assert (summary.income_cents, summary.balance_cents) == (0, -5_000)
        with pytest.raises(NotFoundError):
            MetricsService(session).summary_for_period(404)


def test_history_lists_latest_periods_oldest_first():
    with _session() as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        starts = [date(2026, month, 6) for month in range(1, 9)]
        periods = [
            _period(session, start.strftime("%b"), start, start.replace(month=start.month + 1))
            for start in starts
        ]
        for period in periods:
            _expense(session, food.id, 1_000 * period.start_date.month, period.start_date)

        history = MetricsService(session).history()

        assert [s.period.name for s in history] == ["Mar", "Apr", "May", "Jun", "Jul", "Aug"]
        assert [s.expense_cents for s in history] == [3_000, 4_000, 5_000, 6_000, 7_000, 8_000]
        assert len(MetricsService(session).history(limit=None)) == 8
        assert [s.period.name for s in MetricsService(session).history(limit=2)] == ["Jul", "Aug"]


def test_breakdown_groups_by_type_category_and_subcategory():
    with _session() as session:
        categories = CategoryService(session)
        food = categories.create(CategoryIn(name="Food"))
        home = categories.create(CategoryIn(name="Home"))
        snacks = categories.add_subcategory(food.id, SubcategoryIn(name="Snacks"))
        dining = categories.add_subcategory(food.id, SubcategoryIn(name="Dining"))
        jan = _period(session, "Jan", date(2026, 1, 6), date(2026, 2, 6))
        _expense(session, home.id, 90_000, date(2026, 1, 10), type=ExpenseType.fixed)
        _expense(session, food.id, 1_000, date(2026, 1, 11), subcategory_id=snacks.id)
        _expense(session, food.id, 500, date(2026, 1, 12), subcategory_id=snacks.id)
        _expense(session, food.id, 4_000, date(2026, 1, 13), subcategory_id=dining.id)
        _expense(session, food.id, 200, date(2026, 1, 14))
        _expense(session, home.id, 3_000, date(2026, 1, 15))

        fixed, variable = MetricsService(session).breakdown_for_period(jan.id)

        assert fixed["type"] == "fixed"
        assert fixed["total_cents"] == 90_000
        assert [c["category_name"] for c in fixed["categories"]] == ["Home"]

        assert variable["total_cents"] == 8_700
        food_row, home_row = variable["categories"]
        assert (food_row["category_name"], food_row["total_cents"]) == ("Food", 5_700)
        assert (home_row["category_name"], home_row["total_cents"]) == ("Home", 3_000)
        assert [
            (s["subcategory_name"], s["total_cents"]) for s in food_row["subcategories"]
        ] == [("Dining", 4_000), ("Snacks", 1_500)]
        assert home_row["subcategories"] == []

from datetime import date

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker

import mutations
from database import Base
from errors import NotFoundError, PartialPropagationError
from models import Expense, ExpenseType, FixedExpenseExclusion
from mutations import MutationScope
from schemas import BillingPeriodIn, CategoryIn, ExpenseIn, ExpensePatch, SubcategoryIn
from services import (
    BillingPeriodService,
    CategoryService,
    ExpenseService,
    FixedTemplateService,
)


RANGES = {
    "Jan": (date(2026, 1, 6), date(2026, 2, 6)),
    "Feb": (date(2026, 2, 6), date(2026, 3, 6)),
    "Mar": (date(2026, 3, 6), date(2026, 4, 6)),
    "Apr": (date(2026, 4, 6), date(2026, 5, 6)),
}


def _session() -> Session:
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)()


def _add_period(session: Session, name: str):
    start, end = RANGES[name]
    return BillingPeriodService(session).create(
        BillingPeriodIn(name=name, start_date=start, end_date=end)
    )


def _setup_rent(session: Session, names=("Jan", "Feb", "Mar")):
    category = CategoryService(session).create(CategoryIn(name="Housing"))
    periods = {name: _add_period(session, name).period for name in names}
    created = ExpenseService(session).create(
        ExpenseIn(
            description="Rent",
            amount_cents=10_000,
            purchase_date=date(2026, 1, 15),
            category_id=category.id,
            type=ExpenseType.fixed,
        )
    )
    by_period = {name: None for name in names}
    for expense in created.expenses:
        for name, period in periods.items():
            if period.start_date <= expense.purchase_date < period.end_date:
                by_period[name] = expense
    return category, periods, created.template, by_period


def _rent_rows(session: Session, template_id: int) -> list[Expense]:
    return session.scalars(
        select(Expense)
        .where(Expense.fixed_template_id == template_id)
        .order_by(Expense.purchase_date)
    ).all()


def test_fixed_expense_materializes_into_existing_periods():
    with _session() as session:
        _, _, template, rows = _setup_rent(session)

        assert template.is_active
        assert [rows[n].purchase_date for n in ("Jan", "Feb", "Mar")] == [
            date(2026, 1, 15),
            date(2026, 2, 15),
            date(2026, 3, 15),
        ]
        assert all(e.fixed_template_id == template.id for e in rows.values())


def test_new_period_materializes_active_templates():
    with _session() as session:
        _, _, template, _ = _setup_rent(session, names=("Jan",))

        created = _add_period(session, "Feb")

        assert [e.purchase_date for e in created.expenses] == [date(2026, 2, 15)]
        assert created.expenses[0].fixed_template_id == template.id


def test_variable_expense_is_a_single_row():
    with _session() as session:
        category = CategoryService(session).create(CategoryIn(name="Food"))
        _add_period(session, "Jan")
        created = ExpenseService(session).create(
            ExpenseIn(
                description="Groceries",
                amount_cents=4_250,
                purchase_date=date(2026, 1, 10),
                category_id=category.id,
            )
        )
        assert created.template is None
        assert len(created.expenses) == 1
        assert created.expenses[0].fixed_template_id is None


def test_future_edit_updates_template_and_later_instances():
    with _session() as session:
        _, _, template, rows = _setup_rent(session)

        ExpenseService(session).update(
            rows["Feb"].id, ExpensePatch(amount_cents=15_000), MutationScope.future
        )

        amounts = [e.amount_cents for e in _rent_rows(session, template.id)]
        assert amounts == [10_000, 15_000, 15_000]
        assert FixedTemplateService(session).get(template.id).amount_cents == 15_000


def test_current_edit_changes_only_that_instance():
    with _session() as session:
        _, _, template, rows = _setup_rent(session)

        ExpenseService(session).update(
            rows["Feb"].id,
            ExpensePatch(description="Rent (discounted)"),
            MutationScope.current,
        )

        descriptions = [e.description for e in _rent_rows(session, template.id)]
        assert descriptions == ["Rent", "Rent (discounted)", "Rent"]
        assert FixedTemplateService(session).get(template.id).description == "Rent"


def test_future_date_change_projects_day_of_month():
    with _session() as session:
        _, _, template, rows = _setup_rent(session)

        ExpenseService(session).update(
            rows["Feb"].id,
            ExpensePatch(purchase_date=date(2026, 2, 20)),
            MutationScope.future,
        )

        dates = [e.purchase_date for e in _rent_rows(session, template.id)]
        assert dates == [date(2026, 1, 15), date(2026, 2, 20), date(2026, 3, 20)]
        assert FixedTemplateService(session).get(template.id).start_date == date(2026, 2, 20)


def test_current_delete_excludes_period_and_keeps_template():
    with _session() as session:
        _, periods, template, rows = _setup_rent(session, names=("Jan", "Feb"))

        ExpenseService(session).delete(rows["Feb"].id, MutationScope.current)

        exclusions = session.scalars(select(FixedExpenseExclusion)).all()
        assert [(x.template_id, x.billing_period_id) for x in exclusions] == [
            (template.id, periods["Feb"].id)
        ]
        assert [e.purchase_date for e in _rent_rows(session, template.id)] == [
            date(2026, 1, 15)
        ]

        created = _add_period(session, "Mar")
        assert [e.purchase_date for e in created.expenses] == [date(2026, 3, 15)]

        report = FixedTemplateService(session).reconcile()
        assert not report.changed


def test_future_delete_retires_template_from_owner_period():
    with _session() as session:
        _, periods, template, rows = _setup_rent(session)

        result = ExpenseService(session).delete(rows["Feb"].id, MutationScope.future)

        assert sorted(result.deleted_expense_ids) == sorted(
            [rows["Feb"].id, rows["Mar"].id]
        )
        template = FixedTemplateService(session).get(template.id)
        assert template.is_active is False
        assert template.end_date == periods["Feb"].start_date
        assert [e.purchase_date for e in _rent_rows(session, template.id)] == [
            date(2026, 1, 15)
        ]

        created = _add_period(session, "Apr")
        assert created.expenses == []


def test_variable_expense_ignores_scope():
    with _session() as session:
        category = CategoryService(session).create(CategoryIn(name="Food"))
        _add_period(session, "Jan")
        service = ExpenseService(session)
        first = service.create(
            ExpenseIn(
                description="Lunch",
                amount_cents=1_200,
                purchase_date=date(2026, 1, 10),
                category_id=category.id,
            )
        ).expenses[0]
        second = service.create(
            ExpenseIn(
                description="Dinner",
                amount_cents=2_400,
                purchase_date=date(2026, 1, 11),
                category_id=category.id,
            )
        ).expenses[0]

        service.update(first.id, ExpensePatch(amount_cents=1_500), MutationScope.future)
        service.delete(second.id, MutationScope.future)

        remaining = session.scalars(select(Expense)).all()
        assert [(e.description, e.amount_cents) for e in remaining] == [("Lunch", 1_500)]


def test_missing_expense_raises_not_found():
    with _session() as session:
        with pytest.raises(NotFoundError):
            ExpenseService(session).update(
                404, ExpensePatch(amount_cents=1), MutationScope.future
            )
        with pytest.raises(NotFoundError):
            ExpenseService(session).delete(404)


def test_subcategory_must_belong_to_category():
    with _session() as session:
        food = CategoryService(session).create(CategoryIn(name="Food"))
        housing = CategoryService(session).create(CategoryIn(name="Housing"))
        sub = CategoryService(session).add_subcategory(food.id, SubcategoryIn(name="Snacks"))

        with pytest.raises(ValueError):
            ExpenseService(session).create(
                ExpenseIn(
                    description="Chips",
                    amount_cents=300,
                    purchase_date=date(2026, 1, 10),
                    category_id=housing.id,
                    subcategory_id=sub.id,
                )
            )


def test_partial_future_edit_keeps_committed_steps(monkeypatch):
    with _session() as session:
        _, _, template, rows = _setup_rent(session)
        mar_id = rows["Mar"].id
        original_apply = mutations.PatchExpense.apply

        def failing_apply(self, session, user_id, result):
            if self.expense_id == mar_id:
                raise RuntimeError("storage unavailable")
            return original_apply(self, session, user_id, result)

        monkeypatch.setattr(mutations.PatchExpense, "apply", failing_apply)

        with pytest.raises(PartialPropagationError) as excinfo:
            ExpenseService(session).update(
                rows["Feb"].id, ExpensePatch(amount_cents=15_000), MutationScope.future
            )

        assert len(excinfo.value.completed) == 2
        assert excinfo.value.failed_step.expense_id == mar_id
        assert isinstance(excinfo.value.__cause__, RuntimeError)
        amounts = [e.amount_cents for e in _rent_rows(session, template.id)]
        assert amounts == [10_000, 15_000, 10_000]
        assert FixedTemplateService(session).get(template.id).amount_cents == 15_000

        monkeypatch.undo()
        ExpenseService(session).update(
            rows["Feb"].id, ExpensePatch(amount_cents=15_000), MutationScope.future
        )
        amounts = [e.amount_cents for e in _rent_rows(session, template.id)]
        assert amounts == [10_000, 15_000, 15_000]


def test_list_for_period_and_reorder():
    with _session() as session:
        category = CategoryService(session).create(CategoryIn(name="Food"))
        period = _add_period(session, "Jan").period
        service = ExpenseService(session)
        ids = [
            service.create(
                ExpenseIn(
                    description=name,
                    amount_cents=100,
                    purchase_date=day,
                    category_id=category.id,
                )
            ).expenses[0].id
            for name, day in (
                ("A", date(2026, 1, 7)),
                ("B", date(2026, 1, 20)),
                ("C", date(2026, 2, 6)),
            )
        ]

        assert [e.description for e in service.list_for_period(period.id)] == ["B", "A"]

        service.reorder([ids[0], ids[1]])
        assert [e.description for e in service.list_for_period(period.id)] == ["A", "B"]


def test_future_type_change_is_rejected_and_nothing_written():
    with _session() as session:
        _, _, template, rows = _setup_rent(session)

        with pytest.raises(ValueError, match="type"):
            ExpenseService(session).update(
                rows["Feb"].id,
                ExpensePatch(type=ExpenseType.variable),
                MutationScope.future,
            )

        assert all(e.type == ExpenseType.fixed for e in _rent_rows(session, template.id))

        ExpenseService(session).update(
            rows["Feb"].id, ExpensePatch(type=ExpenseType.variable), MutationScope.current
        )
        types = [e.type for e in _rent_rows(session, template.id)]
        assert types == [ExpenseType.fixed, ExpenseType.variable, ExpenseType.fixed]


def test_future_date_change_cannot_leave_owner_period():
    with _session() as session:
        _, _, template, rows = _setup_rent(session)

        with pytest.raises(ValueError, match="billing period"):
            ExpenseService(session).update(
                rows["Feb"].id,
                ExpensePatch(purchase_date=date(2026, 3, 10)),
                MutationScope.future,
            )

        rent = _rent_rows(session, template.id)
        assert [e.purchase_date for e in rent] == [
            date(2026, 1, 15),
            date(2026, 2, 15),
            date(2026, 3, 15),
        ]
        assert FixedTemplateService(session).get(template.id).start_date == date(2026, 1, 15)
        assert not FixedTemplateService(session).reconcile().changed

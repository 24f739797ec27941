from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from errors import NotFoundError, StoreRejectedError
from models import (
    BillingPeriod,
    Category,
    CategoryGoal,
    CategoryGoalOverride,
    Expense,
    ExpenseType,
    FixedExpenseExclusion,
    FixedExpenseTemplate,
    MonthlyIncome,
    Subcategory,
)
from mutations import (
    MutationExecutor,
    MutationResult,
    MutationScope,
    plan_delete,
    plan_edit,
)
from periods import find_period_for_date
from recurrence import FixedExpenseMaterializer, ReconcileReport
from schemas import (
    BillingPeriodIn,
    BillingPeriodUpdate,
    CategoryGoalIn,
    CategoryIn,
    CategoryUpdate,
    ExpenseIn,
    ExpensePatch,
    MonthlyIncomeIn,
    SubcategoryIn,
)


logger = logging.getLogger(__name__)


def get_current_user_id() -> int:
    return 1


def _commit(session: Session) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise StoreRejectedError(str(exc.orig)) from exc


class CategoryService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[Category]:
        stmt = (
            select(Category)
            .options(selectinload(Category.subcategories))
            .where(Category.user_id == self.user_id)
            .order_by(Category.order, Category.name)
        )
        return self.session.scalars(stmt).all()

    def get(self, category_id: int) -> Category:
        category = self.session.get(Category, category_id)
        if not category or category.user_id != self.user_id:
            raise NotFoundError("Category not found")
        return category

    def create(self, data: CategoryIn) -> Category:
        clean_name = data.name.strip()
        existing = self.session.scalar(
            select(Category).where(
                Category.user_id == self.user_id,
                func.lower(Category.name) == clean_name.lower(),
            )
        )
        if existing:
            raise ValueError("Category with this name already exists")
        category = Category(
            user_id=self.user_id,
            name=clean_name,
            color=data.color,
            order=data.order,
        )
        self.session.add(category)
        _commit(self.session)
        self.session.refresh(category)
        return category

    def update(self, category_id: int, data: CategoryUpdate) -> Category:
        category = self.get(category_id)
        if data.name is not None:
            category.name = data.name.strip()
        if data.color is not None:
            category.color = data.color
        _commit(self.session)
        self.session.refresh(category)
        return category

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        template_ids = select(FixedExpenseTemplate.id).where(
            FixedExpenseTemplate.category_id == category.id
        )
        self.session.execute(
            delete(FixedExpenseExclusion).where(
                FixedExpenseExclusion.template_id.in_(template_ids)
            )
        )
        self.session.execute(delete(Expense).where(Expense.category_id == category.id))
        self.session.execute(
            delete(FixedExpenseTemplate).where(
                FixedExpenseTemplate.category_id == category.id
            )
        )
        self.session.execute(
            delete(CategoryGoalOverride).where(
                CategoryGoalOverride.category_id == category.id
            )
        )
        self.session.execute(
            delete(CategoryGoal).where(CategoryGoal.category_id == category.id)
        )
        self.session.execute(
            delete(Subcategory).where(Subcategory.category_id == category.id)
        )
        self.session.expire(category, ["subcategories"])
        self.session.delete(category)
        _commit(self.session)

    def get_subcategory(self, subcategory_id: int) -> Subcategory:
        sub = self.session.get(Subcategory, subcategory_id)
        if not sub or sub.user_id != self.user_id:
            raise NotFoundError("Subcategory not found")
        return sub

    def add_subcategory(self, category_id: int, data: SubcategoryIn) -> Subcategory:
        category = self.get(category_id)
        sub = Subcategory(
            user_id=self.user_id, category_id=category.id, name=data.name.strip()
        )
        self.session.add(sub)
        _commit(self.session)
        self.session.refresh(sub)
        return sub

    def rename_subcategory(self, subcategory_id: int, name: str) -> Subcategory:
        sub = self.get_subcategory(subcategory_id)
        clean_name = name.strip()
        if not clean_name:
            raise ValueError("Subcategory name cannot be empty")
        sub.name = clean_name
        _commit(self.session)
        return sub

    def delete_subcategory(self, subcategory_id: int) -> None:
        sub = self.get_subcategory(subcategory_id)
        self.session.execute(
            update(Expense)
            .where(Expense.subcategory_id == sub.id)
            .values(subcategory_id=None)
        )
        self.session.execute(
            update(FixedExpenseTemplate)
            .where(FixedExpenseTemplate.subcategory_id == sub.id)
            .values(subcategory_id=None)
        )
        self.session.delete(sub)
        _commit(self.session)

    def check_assignment(
        self, category_id: int, subcategory_id: Optional[int]
    ) -> None:
        category = self.get(category_id)
        if subcategory_id is None:
            return
        sub = self.get_subcategory(subcategory_id)
        if sub.category_id != category.id:
            raise ValueError("Subcategory does not belong to category")


@dataclass
class PeriodCreated:
    period: BillingPeriod
    expenses: list[Expense] = field(default_factory=list)


class BillingPeriodService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list_all(self) -> list[BillingPeriod]:
        stmt = (
            select(BillingPeriod)
            .where(BillingPeriod.user_id == self.user_id)
            .order_by(BillingPeriod.start_date, BillingPeriod.id)
        )
        return self.session.scalars(stmt).all()

    def get(self, period_id: int) -> BillingPeriod:
        period = self.session.get(BillingPeriod, period_id)
        if not period or period.user_id != self.user_id:
            raise NotFoundError("Billing period not found")
        return period

    def for_date(self, target: date) -> Optional[BillingPeriod]:
        return find_period_for_date(target, self.list_all())

    def create(self, data: BillingPeriodIn) -> PeriodCreated:
        period = BillingPeriod(
            user_id=self.user_id,
            name=data.name.strip(),
            start_date=data.start_date,
            end_date=data.end_date,
        )
        self.session.add(period)
        self.session.flush()
        materializer = FixedExpenseMaterializer(self.session, self.user_id)
        expenses = materializer.materialize_period(period)
        _commit(self.session)
        self.session.refresh(period)
        logger.info(
            f"period_created: period_id={period.id} start={period.start_date.isoformat()} "
            f"end={period.end_date.isoformat()} materialized={len(expenses)}"
        )
        return PeriodCreated(period=period, expenses=expenses)

    def update(self, period_id: int, data: BillingPeriodUpdate) -> BillingPeriod:
        period = self.get(period_id)
        start = data.start_date or period.start_date
        end = data.end_date or period.end_date
        if start >= end:
            raise ValueError("Period start date must be before its end date")
        if data.name is not None:
            period.name = data.name.strip()
        if (start, end) != (period.start_date, period.end_date):
            # Expenses are not moved: ownership follows the new range.
            logger.info(
                f"period_range_changed: period_id={period.id} start={start.isoformat()} end={end.isoformat()}"
            )
        period.start_date = start
        period.end_date = end
        _commit(self.session)
        self.session.refresh(period)
        return period

    def delete(self, period_id: int) -> None:
        period = self.get(period_id)
        self.session.execute(
            delete(FixedExpenseExclusion).where(
                FixedExpenseExclusion.user_id == self.user_id,
                FixedExpenseExclusion.billing_period_id == period.id,
            )
        )
        self.session.execute(
            delete(CategoryGoalOverride).where(
                CategoryGoalOverride.user_id == self.user_id,
                CategoryGoalOverride.billing_period_id == period.id,
            )
        )
        self.session.execute(
            delete(MonthlyIncome).where(
                MonthlyIncome.user_id == self.user_id,
                MonthlyIncome.billing_period_id == period.id,
            )
        )
        self.session.delete(period)
        _commit(self.session)


@dataclass
class ExpenseCreated:
    expenses: list[Expense]
    template: Optional[FixedExpenseTemplate] = None


@dataclass(frozen=True)
class EffectiveGoal:
    category_id: int
    category_name: str
    amount: int
    source: str
    source_id: Optional[int]


class ExpenseService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def get(self, expense_id: int) -> Expense:
        expense = self.session.get(Expense, expense_id)
        if not expense or expense.user_id != self.user_id:
            raise NotFoundError("Expense not found")
        return expense

    def list_for_period(self, period_id: int) -> list[Expense]:
        period = BillingPeriodService(self.session, self.user_id).get(period_id)
        stmt = (
            select(Expense)
            .where(
                Expense.user_id == self.user_id,
                Expense.purchase_date >= period.start_date,
                Expense.purchase_date < period.end_date,
            )
            .order_by(
                Expense.display_order,
                Expense.purchase_date.desc(),
                Expense.id,
            )
        )
        return self.session.scalars(stmt).all()

    def create(self, data: ExpenseIn) -> ExpenseCreated:
        CategoryService(self.session, self.user_id).check_assignment(
            data.category_id, data.subcategory_id
        )
        if data.type != ExpenseType.fixed:
            expense = Expense(
                user_id=self.user_id,
                description=data.description,
                amount_cents=data.amount_cents,
                purchase_date=data.purchase_date,
                category_id=data.category_id,
                subcategory_id=data.subcategory_id,
                type=data.type,
            )
            self.session.add(expense)
            _commit(self.session)
            self.session.refresh(expense)
            return ExpenseCreated(expenses=[expense])

        template = FixedExpenseTemplate(
            user_id=self.user_id,
            description=data.description,
            amount_cents=data.amount_cents,
            category_id=data.category_id,
            subcategory_id=data.subcategory_id,
            start_date=data.purchase_date,
            is_active=True,
        )
        self.session.add(template)
        self.session.flush()
        materializer = FixedExpenseMaterializer(self.session, self.user_id)
        expenses = materializer.materialize_template(template)
        _commit(self.session)
        self.session.refresh(template)
        logger.info(
            f"fixed_expense_created: template_id={template.id} instances={len(expenses)}"
        )
        return ExpenseCreated(expenses=expenses, template=template)

    def _siblings(self, template_id: int) -> list[Expense]:
        stmt = (
            select(Expense)
            .where(
                Expense.user_id == self.user_id,
                Expense.fixed_template_id == template_id,
            )
            .order_by(Expense.purchase_date, Expense.id)
        )
        return self.session.scalars(stmt).all()

    def update(
        self,
        expense_id: int,
        data: ExpensePatch,
        scope: MutationScope = MutationScope.current,
    ) -> MutationResult:
        expense = self.get(expense_id)
        changes = data.changes()
        if "category_id" in changes or "subcategory_id" in changes:
            category_id = changes.get("category_id", expense.category_id)
            subcategory_id = changes.get("subcategory_id", expense.subcategory_id)
            CategoryService(self.session, self.user_id).check_assignment(
                category_id, subcategory_id
            )
        periods: list[BillingPeriod] = []
        siblings: list[Expense] = []
        if expense.is_template_instance and scope == MutationScope.future:
            periods = BillingPeriodService(self.session, self.user_id).list_all()
            siblings = self._siblings(expense.fixed_template_id)
        plan = plan_edit(expense, changes, scope, periods, siblings)
        logger.info(
            f"expense_update: expense_id={expense.id} scope={scope.value} steps={len(plan)}"
        )
        return MutationExecutor(self.session, self.user_id).run(plan)

    def delete(
        self, expense_id: int, scope: MutationScope = MutationScope.current
    ) -> MutationResult:
        expense = self.get(expense_id)
        periods: list[BillingPeriod] = []
        siblings: list[Expense] = []
        if expense.is_template_instance:
            periods = BillingPeriodService(self.session, self.user_id).list_all()
            siblings = self._siblings(expense.fixed_template_id)
        plan = plan_delete(expense, scope, periods, siblings)
        logger.info(
            f"expense_delete: expense_id={expense.id} scope={scope.value} steps={len(plan)}"
        )
        return MutationExecutor(self.session, self.user_id).run(plan)

    def reorder(self, ordered_ids: list[int]) -> None:
        for index, expense_id in enumerate(ordered_ids):
            self.session.execute(
                update(Expense)
                .where(Expense.user_id == self.user_id, Expense.id == expense_id)
                .values(display_order=index)
            )
        _commit(self.session)


class FixedTemplateService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def list(self, *, active_only: bool = False) -> list[FixedExpenseTemplate]:
        stmt = (
            select(FixedExpenseTemplate)
            .where(FixedExpenseTemplate.user_id == self.user_id)
            .order_by(FixedExpenseTemplate.created_at.desc(), FixedExpenseTemplate.id.desc())
        )
        if active_only:
            stmt = stmt.where(FixedExpenseTemplate.is_active.is_(True))
        return self.session.scalars(stmt).all()

    def get(self, template_id: int) -> FixedExpenseTemplate:
        template = self.session.get(FixedExpenseTemplate, template_id)
        if not template or template.user_id != self.user_id:
            raise NotFoundError("Fixed expense template not found")
        return template

    def exclusions(self, template_id: int) -> list[FixedExpenseExclusion]:
        self.get(template_id)
        stmt = select(FixedExpenseExclusion).where(
            FixedExpenseExclusion.user_id == self.user_id,
            FixedExpenseExclusion.template_id == template_id,
        )
        return self.session.scalars(stmt).all()

    def reconcile(self) -> ReconcileReport:
        report = FixedExpenseMaterializer(self.session, self.user_id).reconcile()
        _commit(self.session)
        return report


class IncomeService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def income_for_period(self, period_id: int) -> Optional[MonthlyIncome]:
        stmt = select(MonthlyIncome).where(
            MonthlyIncome.user_id == self.user_id,
            MonthlyIncome.billing_period_id == period_id,
        )
        return self.session.scalar(stmt)

    def set_monthly_income(self, period_id: int, data: MonthlyIncomeIn) -> MonthlyIncome:
        BillingPeriodService(self.session, self.user_id).get(period_id)
        existing = self.income_for_period(period_id)
        if existing:
            existing.salary_cents = data.salary_cents
            existing.extra_cents = data.extra_cents
            _commit(self.session)
            self.session.refresh(existing)
            return existing

        income = MonthlyIncome(
            user_id=self.user_id,
            billing_period_id=period_id,
            salary_cents=data.salary_cents,
            extra_cents=data.extra_cents,
        )
        self.session.add(income)
        _commit(self.session)
        self.session.refresh(income)
        return income


def resolve_goal(
    category_id: int,
    period_id: int,
    goals: Iterable[CategoryGoal],
    overrides: Iterable[CategoryGoalOverride],
) -> int:
    for override in overrides:
        if (
            override.category_id == category_id
            and override.billing_period_id == period_id
        ):
            # An explicit zero still wins over the default.
            return override.amount
    for goal in goals:
        if goal.category_id == category_id:
            return goal.amount
    return 0


class GoalService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _goals(self) -> list[CategoryGoal]:
        stmt = select(CategoryGoal).where(CategoryGoal.user_id == self.user_id)
        return self.session.scalars(stmt).all()

    def _overrides(self, period_id: int) -> list[CategoryGoalOverride]:
        stmt = select(CategoryGoalOverride).where(
            CategoryGoalOverride.user_id == self.user_id,
            CategoryGoalOverride.billing_period_id == period_id,
        )
        return self.session.scalars(stmt).all()

    def effective_goal(self, category_id: int, period_id: int) -> int:
        return resolve_goal(
            category_id, period_id, self._goals(), self._overrides(period_id)
        )

    def effective_goals_for_period(self, period_id: int) -> list[EffectiveGoal]:
        BillingPeriodService(self.session, self.user_id).get(period_id)
        overrides = {o.category_id: o for o in self._overrides(period_id)}
        goals = {g.category_id: g for g in self._goals()}
        effective: list[EffectiveGoal] = []
        for category in CategoryService(self.session, self.user_id).list_all():
            override = overrides.get(category.id)
            if override is not None:
                effective.append(
                    EffectiveGoal(
                        category_id=category.id,
                        category_name=category.name,
                        amount=override.amount,
                        source="override",
                        source_id=override.id,
                    )
                )
                continue
            goal = goals.get(category.id)
            effective.append(
                EffectiveGoal(
                    category_id=category.id,
                    category_name=category.name,
                    amount=goal.amount if goal else 0,
                    source="default" if goal else "none",
                    source_id=goal.id if goal else None,
                )
            )
        return effective

    def _upsert_goal(self, data: CategoryGoalIn) -> CategoryGoal:
        CategoryService(self.session, self.user_id).get(data.category_id)
        existing = self.session.scalar(
            select(CategoryGoal).where(
                CategoryGoal.user_id == self.user_id,
                CategoryGoal.category_id == data.category_id,
            )
        )
        if existing:
            existing.amount = data.amount
            return existing
        goal = CategoryGoal(
            user_id=self.user_id, category_id=data.category_id, amount=data.amount
        )
        self.session.add(goal)
        return goal

    def set_goal(self, data: CategoryGoalIn) -> CategoryGoal:
        goal = self._upsert_goal(data)
        _commit(self.session)
        self.session.refresh(goal)
        return goal

    def set_goals(self, rows: list[CategoryGoalIn]) -> list[CategoryGoal]:
        """Upsert several defaults, one row at a time.

        Rows before a failing one stay saved.
        """
        saved: list[CategoryGoal] = []
        for row in rows:
            try:
                goal = self._upsert_goal(row)
                _commit(self.session)
            except ValueError:
                logger.error(
                    f"goal_batch_failed: category_id={row.category_id} saved={len(saved)}"
                )
                raise
            self.session.refresh(goal)
            saved.append(goal)
        return saved

    def set_override(
        self, category_id: int, period_id: int, amount: int
    ) -> CategoryGoalOverride:
        CategoryService(self.session, self.user_id).get(category_id)
        BillingPeriodService(self.session, self.user_id).get(period_id)
        if not 0 <= amount <= 100:
            raise ValueError("Goal must be a percentage between 0 and 100")
        existing = self.session.scalar(
            select(CategoryGoalOverride).where(
                CategoryGoalOverride.user_id == self.user_id,
                CategoryGoalOverride.category_id == category_id,
                CategoryGoalOverride.billing_period_id == period_id,
            )
        )
        if existing:
            existing.amount = amount
            _commit(self.session)
            self.session.refresh(existing)
            return existing

        override = CategoryGoalOverride(
            user_id=self.user_id,
            category_id=category_id,
            billing_period_id=period_id,
            amount=amount,
        )
        self.session.add(override)
        _commit(self.session)
        self.session.refresh(override)
        return override

    def delete_override(self, category_id: int, period_id: int) -> None:
        override = self.session.scalar(
            select(CategoryGoalOverride).where(
                CategoryGoalOverride.user_id == self.user_id,
                CategoryGoalOverride.category_id == category_id,
                CategoryGoalOverride.billing_period_id == period_id,
            )
        )
        if not override:
            raise NotFoundError("Override not found")
        self.session.delete(override)
        _commit(self.session)

    def spent_by_category_for_period(self, period_id: int) -> dict[int, int]:
        period = BillingPeriodService(self.session, self.user_id).get(period_id)
        rows = self.session.execute(
            select(Expense.category_id, func.coalesce(func.sum(Expense.amount_cents), 0))
            .where(
                Expense.user_id == self.user_id,
                Expense.purchase_date >= period.start_date,
                Expense.purchase_date < period.end_date,
            )
            .group_by(Expense.category_id)
        ).all()
        return {category_id: int(total) for category_id, total in rows}

    def progress_for_period(self, period_id: int) -> dict[int, dict[str, object]]:
        income = IncomeService(self.session, self.user_id).income_for_period(period_id)
        income_total = income.total_cents if income else 0
        spent = self.spent_by_category_for_period(period_id)
        progress: dict[int, dict[str, object]] = {}
        for goal in self.effective_goals_for_period(period_id):
            # Categories without a goal are not tracked.
            if goal.amount == 0:
                continue
            goal_cents = income_total * goal.amount // 100
            spent_cents = spent.get(goal.category_id, 0)
            percentage = (spent_cents / goal_cents * 100) if goal_cents > 0 else 0.0
            if percentage > 100:
                status = "over"
            elif percentage > 75:
                status = "warning"
            else:
                status = "ok"
            progress[goal.category_id] = {
                "category_name": goal.category_name,
                "goal_percentage": goal.amount,
                "goal_cents": goal_cents,
                "spent_cents": spent_cents,
                "percentage": percentage,
                "status": status,
                "source": goal.source,
            }
        return progress


@dataclass(frozen=True)
class PeriodSummary:
    period: BillingPeriod
    income_cents: int
    expense_cents: int

    @property
    def balance_cents(self) -> int:
        return self.income_cents - self.expense_cents


class MetricsService:
    def __init__(self, session: Session, user_id: Optional[int] = None) -> None:
        self.session = session
        self.user_id = user_id or get_current_user_id()

    def _expense_total(self, period: BillingPeriod) -> int:
        total = self.session.scalar(
            select(func.coalesce(func.sum(Expense.amount_cents), 0)).where(
                Expense.user_id == self.user_id,
                Expense.purchase_date >= period.start_date,
                Expense.purchase_date < period.end_date,
            )
        )
        return int(total or 0)

    def _summary(self, period: BillingPeriod) -> PeriodSummary:
        income = IncomeService(self.session, self.user_id).income_for_period(period.id)
        return PeriodSummary(
            period=period,
            income_cents=income.total_cents if income else 0,
            expense_cents=self._expense_total(period),
        )

    def summary_for_period(self, period_id: int) -> PeriodSummary:
        period = BillingPeriodService(self.session, self.user_id).get(period_id)
        return self._summary(period)

    def history(self, limit: Optional[int] = 6) -> list[PeriodSummary]:
        """Income and expense totals for the latest ``limit`` periods, oldest first."""
        periods = BillingPeriodService(self.session, self.user_id).list_all()
        if limit is not None:
            periods = periods[-limit:] if limit > 0 else []
        return [self._summary(period) for period in periods]

    def breakdown_for_period(self, period_id: int) -> list[dict[str, object]]:
        """Expenses grouped by type, then category, then subcategory.

        Every level is sorted by total descending. Expenses without a
        subcategory only count towards their category.
        """
        period = BillingPeriodService(self.session, self.user_id).get(period_id)
        rows = self.session.execute(
            select(
                Expense.type,
                Category.id,
                Category.name,
                Subcategory.id,
                Subcategory.name,
                func.sum(Expense.amount_cents),
            )
            .join(Category, Category.id == Expense.category_id)
            .outerjoin(Subcategory, Subcategory.id == Expense.subcategory_id)
            .where(
                Expense.user_id == self.user_id,
                Expense.purchase_date >= period.start_date,
                Expense.purchase_date < period.end_date,
            )
            .group_by(
                Expense.type, Category.id, Category.name, Subcategory.id, Subcategory.name
            )
        ).all()

        by_type: dict[ExpenseType, dict[str, object]] = {
            expense_type: {"type": expense_type.value, "total_cents": 0, "categories": {}}
            for expense_type in (ExpenseType.fixed, ExpenseType.variable)
        }
        for expense_type, category_id, category_name, sub_id, sub_name, total in rows:
            amount = int(total or 0)
            type_row = by_type[expense_type]
            type_row["total_cents"] += amount
            category_row = type_row["categories"].setdefault(
                category_id,
                {
                    "category_id": category_id,
                    "category_name": category_name,
                    "total_cents": 0,
                    "subcategories": [],
                },
            )
            category_row["total_cents"] += amount
            if sub_id is not None:
                category_row["subcategories"].append(
                    {
                        "subcategory_id": sub_id,
                        "subcategory_name": sub_name,
                        "total_cents": amount,
                    }
                )

        breakdown: list[dict[str, object]] = []
        for type_row in by_type.values():
            categories = sorted(
                type_row["categories"].values(),
                key=lambda c: (-c["total_cents"], c["category_name"]),
            )
            for category_row in categories:
                category_row["subcategories"].sort(
                    key=lambda s: (-s["total_cents"], s["subcategory_name"])
                )
            breakdown.append({**type_row, "categories": categories})
        return breakdown

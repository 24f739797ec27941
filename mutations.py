"""Current/future scoped edits and deletes of fixed expense instances.

A scoped change is planned up front from one snapshot of the expense, its
template siblings and the billing periods, as an ordered list of steps. The
executor commits each step on its own, so a failure part way through leaves
the earlier steps in place. Every step can be re-applied safely.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Sequence, Union

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from errors import NotFoundError, PartialPropagationError, StoreRejectedError
from models import BillingPeriod, Expense, FixedExpenseExclusion, FixedExpenseTemplate
from periods import (
    contains,
    day_of_month,
    expense_in_period,
    find_period_for_date,
    periods_from,
    project_date,
)


logger = logging.getLogger(__name__)


class MutationScope(str, Enum):
    current = "current"
    future = "future"


# Fields shared between a template and its materialized instances.
SHARED_FIELDS = ("description", "amount_cents", "category_id", "subcategory_id")


@dataclass
class MutationResult:
    expenses: list[Expense] = field(default_factory=list)
    deleted_expense_ids: list[int] = field(default_factory=list)
    template: Optional[FixedExpenseTemplate] = None
    exclusions: list[FixedExpenseExclusion] = field(default_factory=list)
    completed: list["Step"] = field(default_factory=list)


def _load_template(
    session: Session, user_id: int, template_id: int
) -> FixedExpenseTemplate:
    template = session.get(FixedExpenseTemplate, template_id)
    if not template or template.user_id != user_id:
        raise NotFoundError("Fixed expense template not found")
    return template


@dataclass(frozen=True)
class PatchTemplate:
    template_id: int
    changes: dict[str, object]

    def apply(self, session: Session, user_id: int, result: MutationResult) -> None:
        template = _load_template(session, user_id, self.template_id)
        for name, value in self.changes.items():
            setattr(template, name, value)
        result.template = template

    def __str__(self) -> str:
        return f"patch_template(template_id={self.template_id}, fields={sorted(self.changes)})"


@dataclass(frozen=True)
class DeactivateTemplate:
    template_id: int
    end_date: date

    def apply(self, session: Session, user_id: int, result: MutationResult) -> None:
        template = _load_template(session, user_id, self.template_id)
        template.is_active = False
        template.end_date = self.end_date
        result.template = template

    def __str__(self) -> str:
        return f"deactivate_template(template_id={self.template_id}, end_date={self.end_date.isoformat()})"


@dataclass(frozen=True)
class PatchExpense:
    expense_id: int
    changes: dict[str, object]

    def apply(self, session: Session, user_id: int, result: MutationResult) -> None:
        expense = session.get(Expense, self.expense_id)
        if not expense or expense.user_id != user_id:
            raise NotFoundError("Expense not found")
        for name, value in self.changes.items():
            setattr(expense, name, value)
        result.expenses.append(expense)

    def __str__(self) -> str:
        return f"patch_expense(expense_id={self.expense_id}, fields={sorted(self.changes)})"


@dataclass(frozen=True)
class InsertExclusion:
    template_id: int
    billing_period_id: int

    def apply(self, session: Session, user_id: int, result: MutationResult) -> None:
        existing = session.scalar(
            select(FixedExpenseExclusion).where(
                FixedExpenseExclusion.template_id == self.template_id,
                FixedExpenseExclusion.billing_period_id == self.billing_period_id,
            )
        )
        if existing:
            result.exclusions.append(existing)
            return
        exclusion = FixedExpenseExclusion(
            user_id=user_id,
            template_id=self.template_id,
            billing_period_id=self.billing_period_id,
        )
        session.add(exclusion)
        session.flush()
        result.exclusions.append(exclusion)

    def __str__(self) -> str:
        return f"insert_exclusion(template_id={self.template_id}, period_id={self.billing_period_id})"


@dataclass(frozen=True)
class DeleteExpense:
    expense_id: int

    def apply(self, session: Session, user_id: int, result: MutationResult) -> None:
        expense = session.get(Expense, self.expense_id)
        if expense is not None and expense.user_id == user_id:
            session.delete(expense)
            session.flush()
        result.deleted_expense_ids.append(self.expense_id)

    def __str__(self) -> str:
        return f"delete_expense(expense_id={self.expense_id})"


Step = Union[PatchTemplate, DeactivateTemplate, PatchExpense, InsertExclusion, DeleteExpense]


def _instances_in_period(
    siblings: Sequence[Expense], period: BillingPeriod, prefer_id: int
) -> list[Expense]:
    found = [e for e in siblings if expense_in_period(e, period)]
    found.sort(key=lambda e: (e.id != prefer_id, e.id))
    return found


def plan_edit(
    expense: Expense,
    changes: dict[str, object],
    scope: MutationScope,
    periods: Sequence[BillingPeriod],
    siblings: Sequence[Expense],
) -> list[Step]:
    """Steps for editing ``expense``.

    ``periods`` must be ordered by start date, ``siblings`` are the instances
    of the same template (including ``expense``) as read before the change.
    """
    if not changes:
        return []
    if not expense.is_template_instance or scope == MutationScope.current:
        return [PatchExpense(expense.id, dict(changes))]

    if "type" in changes:
        raise ValueError("Expense type can only be changed for this period")

    shared = {k: changes[k] for k in SHARED_FIELDS if k in changes}
    new_date = changes.get("purchase_date")
    owner = find_period_for_date(expense.purchase_date, periods)
    # Each later period keeps exactly one instance, so the edited one may not
    # leave its own period.
    if new_date is not None and owner is not None and not contains(owner, new_date):
        raise ValueError(
            f"New date must stay inside billing period {owner.name} "
            f"({owner.start_date.isoformat()} to {owner.end_date.isoformat()})"
        )

    template_changes = dict(shared)
    if new_date is not None:
        template_changes["start_date"] = new_date

    steps: list[Step] = []
    if template_changes:
        steps.append(PatchTemplate(expense.fixed_template_id, template_changes))

    if owner is None:
        logger.warning(
            f"scoped_edit_no_period: expense_id={expense.id} purchase_date={expense.purchase_date.isoformat()}"
        )
        payload = dict(shared)
        if new_date is not None:
            payload["purchase_date"] = new_date
        if payload:
            steps.append(PatchExpense(expense.id, payload))
        return steps

    desired_day = day_of_month(new_date if new_date is not None else expense.purchase_date)
    for period in periods_from(periods, owner):
        instances = _instances_in_period(siblings, period, expense.id)
        if not instances:
            continue
        target = instances[0]
        payload = dict(shared)
        if new_date is not None:
            payload["purchase_date"] = (
                new_date if target.id == expense.id else project_date(period, desired_day)
            )
        if payload:
            steps.append(PatchExpense(target.id, payload))
    return steps


def plan_delete(
    expense: Expense,
    scope: MutationScope,
    periods: Sequence[BillingPeriod],
    siblings: Sequence[Expense],
) -> list[Step]:
    if not expense.is_template_instance:
        return [DeleteExpense(expense.id)]

    template_id = expense.fixed_template_id
    owner = find_period_for_date(expense.purchase_date, periods)

    if scope == MutationScope.current:
        steps: list[Step] = []
        if owner is not None:
            steps.append(InsertExclusion(template_id, owner.id))
        else:
            logger.warning(
                f"scoped_delete_no_period: expense_id={expense.id} exclusion=skipped"
            )
        steps.append(DeleteExpense(expense.id))
        return steps

    end_date = owner.start_date if owner is not None else expense.purchase_date
    steps = [DeactivateTemplate(template_id, end_date)]
    if owner is None:
        steps.append(DeleteExpense(expense.id))
        return steps
    for period in periods_from(periods, owner):
        for instance in _instances_in_period(siblings, period, expense.id):
            steps.append(DeleteExpense(instance.id))
    return steps


class MutationExecutor:
    def __init__(self, session: Session, user_id: int = 1) -> None:
        self.session = session
        self.user_id = user_id

    def run(self, plan: Sequence[Step]) -> MutationResult:
        result = MutationResult()
        for step in plan:
            try:
                step.apply(self.session, self.user_id, result)
                self.session.commit()
            except Exception as exc:
                self.session.rollback()
                logger.error(
                    f"mutation_step_failed: step={step} completed={len(result.completed)} error={exc}"
                )
                if result.completed:
                    raise PartialPropagationError(step, result.completed) from exc
                if isinstance(exc, IntegrityError):
                    raise StoreRejectedError(str(exc.orig)) from exc
                raise
            result.completed.append(step)
            logger.info(f"mutation_step: {step}")
        return result

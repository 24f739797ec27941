import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Iterable, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

from models import (
    BillingPeriod,
    Expense,
    ExpenseType,
    FixedExpenseExclusion,
    FixedExpenseTemplate,
)
from periods import day_of_month, find_period_for_date, project_date, sort_periods


logger = logging.getLogger(__name__)


ExclusionKeys = set[tuple[int, int]]


def exclusion_keys(exclusions: Iterable[FixedExpenseExclusion]) -> ExclusionKeys:
    return {(exc.template_id, exc.billing_period_id) for exc in exclusions}


def template_covers_period(
    template: FixedExpenseTemplate, period: BillingPeriod
) -> bool:
    if template.start_date > period.end_date:
        return False
    if template.end_date is not None and template.end_date < period.start_date:
        return False
    return True


def build_instance(
    template: FixedExpenseTemplate, period: BillingPeriod
) -> Expense:
    return Expense(
        user_id=template.user_id,
        description=template.description,
        amount_cents=template.amount_cents,
        purchase_date=project_date(period, day_of_month(template.start_date)),
        category_id=template.category_id,
        subcategory_id=template.subcategory_id,
        type=ExpenseType.fixed,
        fixed_template_id=template.id,
    )


@dataclass
class ReconcileReport:
    created: int = 0
    removed_duplicates: int = 0
    removed_excluded: int = 0
    removed_retired: int = 0
    created_ids: list[int] = field(default_factory=list)
    removed_ids: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.created_ids or self.removed_ids)


class FixedExpenseMaterializer:
    def __init__(self, session: Session, user_id: int = 1) -> None:
        self.session = session
        self.user_id = user_id

    def _instance_in_period(
        self, template_id: int, period: BillingPeriod
    ) -> Optional[int]:
        stmt = (
            select(Expense.id)
            .where(
                Expense.user_id == self.user_id,
                Expense.fixed_template_id == template_id,
                Expense.purchase_date >= period.start_date,
                Expense.purchase_date < period.end_date,
            )
            .limit(1)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def materialize(
        self,
        template: FixedExpenseTemplate,
        period: BillingPeriod,
        exclusions: ExclusionKeys,
    ) -> Optional[Expense]:
        if not template_covers_period(template, period):
            return None
        if (template.id, period.id) in exclusions:
            logger.info(
                f"materialize_skip: template_id={template.id} period_id={period.id} reason=excluded"
            )
            return None
        existing = self._instance_in_period(template.id, period)
        if existing:
            logger.info(
                f"materialize_skip: template_id={template.id} period_id={period.id} reason=exists expense_id={existing}"
            )
            return None

        expense = build_instance(template, period)
        self.session.add(expense)
        self.session.flush()
        logger.info(
            f"materialize: template_id={template.id} period_id={period.id} "
            f"expense_id={expense.id} purchase_date={expense.purchase_date.isoformat()}"
        )
        return expense

    def load_exclusions(self) -> ExclusionKeys:
        stmt = select(FixedExpenseExclusion).where(
            FixedExpenseExclusion.user_id == self.user_id
        )
        return exclusion_keys(self.session.scalars(stmt).all())

    def load_active_templates(self) -> list[FixedExpenseTemplate]:
        stmt = (
            select(FixedExpenseTemplate)
            .where(
                FixedExpenseTemplate.user_id == self.user_id,
                FixedExpenseTemplate.is_active.is_(True),
            )
            .order_by(FixedExpenseTemplate.id)
        )
        return list(self.session.scalars(stmt).all())

    def load_periods(self) -> list[BillingPeriod]:
        stmt = (
            select(BillingPeriod)
            .where(BillingPeriod.user_id == self.user_id)
            .order_by(BillingPeriod.start_date, BillingPeriod.id)
        )
        return list(self.session.scalars(stmt).all())

    def materialize_template(
        self,
        template: FixedExpenseTemplate,
        periods: Optional[Sequence[BillingPeriod]] = None,
    ) -> list[Expense]:
        if periods is None:
            periods = self.load_periods()
        exclusions = self.load_exclusions()
        created: list[Expense] = []
        for period in periods:
            expense = self.materialize(template, period, exclusions)
            if expense is not None:
                created.append(expense)
        return created

    def materialize_period(self, period: BillingPeriod) -> list[Expense]:
        templates = self.load_active_templates()
        exclusions = self.load_exclusions()
        created: list[Expense] = []
        for template in templates:
            expense = self.materialize(template, period, exclusions)
            if expense is not None:
                created.append(expense)
        return created

    def reconcile(self) -> ReconcileReport:
        """Realign materialized expenses with templates and exclusions.

        Repairs what an interrupted scoped mutation or a duplicate insert can
        leave behind. Field drift between a template and its instances is not
        touched because the intended scope of the interrupted edit is unknown.
        """
        report = ReconcileReport()
        periods = sort_periods(self.load_periods())
        exclusions = self.load_exclusions()
        templates = list(
            self.session.scalars(
                select(FixedExpenseTemplate)
                .where(FixedExpenseTemplate.user_id == self.user_id)
                .order_by(FixedExpenseTemplate.id)
            ).all()
        )
        instances = self.session.scalars(
            select(Expense)
            .where(
                Expense.user_id == self.user_id,
                Expense.fixed_template_id.is_not(None),
            )
            .order_by(Expense.id)
        ).all()

        by_slot: dict[tuple[int, int], list[Expense]] = defaultdict(list)
        for expense in instances:
            period = find_period_for_date(expense.purchase_date, periods)
            if period is None:
                continue
            by_slot[(expense.fixed_template_id, period.id)].append(expense)

        periods_by_id = {p.id: p for p in periods}
        templates_by_id = {t.id: t for t in templates}
        doomed: list[Expense] = []
        for (template_id, period_id), slot in by_slot.items():
            template = templates_by_id.get(template_id)
            period = periods_by_id[period_id]
            if (template_id, period_id) in exclusions:
                doomed.extend(slot)
                report.removed_excluded += len(slot)
                continue
            if (
                template is not None
                and not template.is_active
                and template.end_date is not None
                and period.start_date >= template.end_date
            ):
                doomed.extend(slot)
                report.removed_retired += len(slot)
                continue
            if len(slot) > 1:
                doomed.extend(slot[1:])
                report.removed_duplicates += len(slot) - 1

        for expense in doomed:
            report.removed_ids.append(expense.id)
            self.session.delete(expense)
        self.session.flush()

        for template in templates:
            if not template.is_active:
                continue
            for period in periods:
                if (template.id, period.id) in by_slot:
                    continue
                expense = self.materialize(template, period, exclusions)
                if expense is not None:
                    report.created += 1
                    report.created_ids.append(expense.id)

        logger.info(
            f"reconcile: created={report.created} duplicates={report.removed_duplicates} "
            f"excluded={report.removed_excluded} retired={report.removed_retired}"
        )
        return report

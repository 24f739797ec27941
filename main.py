import logging
from datetime import date
from typing import Optional

from fastapi import Depends, FastAPI, Header, HTTPException, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from config import get_settings
from csrf import generate_csrf_token, validate_csrf_token
from database import SessionLocal
from errors import NotFoundError, PartialPropagationError, StoreRejectedError
from models import (
    BillingPeriod,
    Category,
    Expense,
    FixedExpenseExclusion,
    FixedExpenseTemplate,
    MonthlyIncome,
    Subcategory,
)
from mutations import MutationResult, MutationScope
from periods import local_today
from schemas import (
    BillingPeriodIn,
    BillingPeriodUpdate,
    CategoryGoalIn,
    CategoryIn,
    CategoryUpdate,
    ExpenseIn,
    ExpenseOrderIn,
    ExpensePatch,
    GoalAmountIn,
    MonthlyIncomeIn,
    SubcategoryIn,
)
from services import (
    BillingPeriodService,
    CategoryService,
    ExpenseService,
    FixedTemplateService,
    GoalService,
    IncomeService,
    MetricsService,
    PeriodSummary,
)


logging.basicConfig(level=get_settings().log_level)
logger = logging.getLogger(__name__)


def _load_app_version() -> str:
    import tomllib

    try:
        with open("pyproject.toml", "rb") as f:
            data = tomllib.load(f)
    except (OSError, tomllib.TOMLDecodeError):
        return "unknown"
    return str(data.get("project", {}).get("version", "unknown"))


APP_VERSION = _load_app_version()

app = FastAPI(title="Budget Periods", version=APP_VERSION)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def require_csrf(x_csrf_token: Optional[str] = Header(default=None)) -> None:
    if not validate_csrf_token(x_csrf_token or ""):
        raise HTTPException(status_code=400, detail="Invalid CSRF token")


def http_error(exc: ValueError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, StoreRejectedError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, PartialPropagationError):
        logger.error(f"partial_propagation: {exc} cause={exc.__cause__}")
        return HTTPException(
            status_code=500,
            detail={
                "message": str(exc),
                "failed_step": str(exc.failed_step),
                "completed": [str(step) for step in exc.completed],
                "cause": str(exc.__cause__),
            },
        )
    return HTTPException(status_code=400, detail=str(exc))


def _iso(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value else None


def subcategory_out(sub: Subcategory) -> dict[str, object]:
    return {"id": sub.id, "category_id": sub.category_id, "name": sub.name}


def category_out(category: Category) -> dict[str, object]:
    return {
        "id": category.id,
        "name": category.name,
        "color": category.color,
        "order": category.order,
        "subcategories": [subcategory_out(s) for s in category.subcategories],
    }


def period_out(period: BillingPeriod) -> dict[str, object]:
    return {
        "id": period.id,
        "name": period.name,
        "start_date": period.start_date.isoformat(),
        "end_date": period.end_date.isoformat(),
    }


def expense_out(expense: Expense) -> dict[str, object]:
    return {
        "id": expense.id,
        "description": expense.description,
        "amount_cents": expense.amount_cents,
        "purchase_date": expense.purchase_date.isoformat(),
        "category_id": expense.category_id,
        "subcategory_id": expense.subcategory_id,
        "type": expense.type.value,
        "fixed_template_id": expense.fixed_template_id,
        "display_order": expense.display_order,
        "created_at": expense.created_at.isoformat() if expense.created_at else None,
    }


def template_out(template: FixedExpenseTemplate) -> dict[str, object]:
    return {
        "id": template.id,
        "description": template.description,
        "amount_cents": template.amount_cents,
        "category_id": template.category_id,
        "subcategory_id": template.subcategory_id,
        "start_date": template.start_date.isoformat(),
        "end_date": _iso(template.end_date),
        "is_active": template.is_active,
    }


def exclusion_out(exclusion: FixedExpenseExclusion) -> dict[str, object]:
    return {
        "id": exclusion.id,
        "template_id": exclusion.template_id,
        "billing_period_id": exclusion.billing_period_id,
    }


def income_out(income: MonthlyIncome) -> dict[str, object]:
    return {
        "id": income.id,
        "billing_period_id": income.billing_period_id,
        "salary_cents": income.salary_cents,
        "extra_cents": income.extra_cents,
        "total_cents": income.total_cents,
    }


def summary_out(summary: PeriodSummary) -> dict[str, object]:
    return {
        "period": period_out(summary.period),
        "income_cents": summary.income_cents,
        "expense_cents": summary.expense_cents,
        "balance_cents": summary.balance_cents,
    }


def mutation_out(result: MutationResult) -> dict[str, object]:
    return {
        "expenses": [expense_out(e) for e in result.expenses],
        "deleted_expense_ids": result.deleted_expense_ids,
        "template": template_out(result.template) if result.template else None,
        "exclusions": [exclusion_out(e) for e in result.exclusions],
        "steps": [str(step) for step in result.completed],
    }


@app.get("/api/csrf-token")
def api_csrf_token():
    return {"token": generate_csrf_token()}


@app.get("/api/categories")
def api_categories(db: Session = Depends(get_db)):
    return [category_out(c) for c in CategoryService(db).list_all()]


@app.post("/api/categories", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_category(data: CategoryIn, db: Session = Depends(get_db)):
    try:
        category = CategoryService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return category_out(category)


@app.patch("/api/categories/{category_id}", dependencies=[Depends(require_csrf)])
def api_update_category(
    category_id: int, data: CategoryUpdate, db: Session = Depends(get_db)
):
    try:
        category = CategoryService(db).update(category_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return category_out(category)


@app.delete("/api/categories/{category_id}", dependencies=[Depends(require_csrf)])
def api_delete_category(category_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete(category_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.post(
    "/api/categories/{category_id}/subcategories",
    status_code=201,
    dependencies=[Depends(require_csrf)],
)
def api_add_subcategory(
    category_id: int, data: SubcategoryIn, db: Session = Depends(get_db)
):
    try:
        sub = CategoryService(db).add_subcategory(category_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return subcategory_out(sub)


@app.patch("/api/subcategories/{subcategory_id}", dependencies=[Depends(require_csrf)])
def api_rename_subcategory(
    subcategory_id: int, data: SubcategoryIn, db: Session = Depends(get_db)
):
    try:
        sub = CategoryService(db).rename_subcategory(subcategory_id, data.name)
    except ValueError as exc:
        raise http_error(exc) from exc
    return subcategory_out(sub)


@app.delete(
    "/api/subcategories/{subcategory_id}", dependencies=[Depends(require_csrf)]
)
def api_delete_subcategory(subcategory_id: int, db: Session = Depends(get_db)):
    try:
        CategoryService(db).delete_subcategory(subcategory_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/periods")
def api_periods(db: Session = Depends(get_db)):
    return [period_out(p) for p in BillingPeriodService(db).list_all()]


@app.get("/api/periods/for-date")
def api_period_for_date(
    target: Optional[date] = Query(default=None, alias="date"),
    db: Session = Depends(get_db),
):
    period = BillingPeriodService(db).for_date(target or local_today())
    if period is None:
        raise HTTPException(status_code=404, detail="No billing period for date")
    return period_out(period)


@app.post("/api/periods", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_period(data: BillingPeriodIn, db: Session = Depends(get_db)):
    try:
        created = BillingPeriodService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "period": period_out(created.period),
        "expenses": [expense_out(e) for e in created.expenses],
    }


@app.patch("/api/periods/{period_id}", dependencies=[Depends(require_csrf)])
def api_update_period(
    period_id: int, data: BillingPeriodUpdate, db: Session = Depends(get_db)
):
    try:
        period = BillingPeriodService(db).update(period_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return period_out(period)


@app.delete("/api/periods/{period_id}", dependencies=[Depends(require_csrf)])
def api_delete_period(period_id: int, db: Session = Depends(get_db)):
    try:
        BillingPeriodService(db).delete(period_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/periods/{period_id}/expenses")
def api_period_expenses(period_id: int, db: Session = Depends(get_db)):
    try:
        expenses = ExpenseService(db).list_for_period(period_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [expense_out(e) for e in expenses]


@app.post("/api/expenses", status_code=201, dependencies=[Depends(require_csrf)])
def api_create_expense(data: ExpenseIn, db: Session = Depends(get_db)):
    try:
        created = ExpenseService(db).create(data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "expenses": [expense_out(e) for e in created.expenses],
        "template": template_out(created.template) if created.template else None,
    }


@app.post("/api/expenses/order", status_code=204, dependencies=[Depends(require_csrf)])
def api_reorder_expenses(data: ExpenseOrderIn, db: Session = Depends(get_db)):
    ExpenseService(db).reorder(data.ordered_ids)
    return Response(status_code=204)


@app.patch("/api/expenses/{expense_id}", dependencies=[Depends(require_csrf)])
def api_update_expense(
    expense_id: int,
    data: ExpensePatch,
    scope: MutationScope = MutationScope.current,
    db: Session = Depends(get_db),
):
    try:
        result = ExpenseService(db).update(expense_id, data, scope)
    except ValueError as exc:
        raise http_error(exc) from exc
    return mutation_out(result)


@app.delete("/api/expenses/{expense_id}", dependencies=[Depends(require_csrf)])
def api_delete_expense(
    expense_id: int,
    scope: MutationScope = MutationScope.current,
    db: Session = Depends(get_db),
):
    try:
        result = ExpenseService(db).delete(expense_id, scope)
    except ValueError as exc:
        raise http_error(exc) from exc
    return mutation_out(result)


@app.get("/api/templates")
def api_templates(active: bool = False, db: Session = Depends(get_db)):
    templates = FixedTemplateService(db).list(active_only=active)
    return [template_out(t) for t in templates]


@app.get("/api/templates/{template_id}/exclusions")
def api_template_exclusions(template_id: int, db: Session = Depends(get_db)):
    try:
        exclusions = FixedTemplateService(db).exclusions(template_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [exclusion_out(e) for e in exclusions]


@app.post("/api/reconcile", dependencies=[Depends(require_csrf)])
def api_reconcile(db: Session = Depends(get_db)):
    try:
        report = FixedTemplateService(db).reconcile()
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "created": report.created,
        "removed_duplicates": report.removed_duplicates,
        "removed_excluded": report.removed_excluded,
        "removed_retired": report.removed_retired,
        "created_ids": report.created_ids,
        "removed_ids": report.removed_ids,
    }


@app.put("/api/goals", dependencies=[Depends(require_csrf)])
def api_set_goals(rows: list[CategoryGoalIn], db: Session = Depends(get_db)):
    try:
        goals = GoalService(db).set_goals(rows)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [{"category_id": g.category_id, "amount": g.amount} for g in goals]


@app.put("/api/goals/{category_id}", dependencies=[Depends(require_csrf)])
def api_set_goal(category_id: int, data: GoalAmountIn, db: Session = Depends(get_db)):
    try:
        goal = GoalService(db).set_goal(
            CategoryGoalIn(category_id=category_id, amount=data.amount)
        )
    except ValueError as exc:
        raise http_error(exc) from exc
    return {"category_id": goal.category_id, "amount": goal.amount}


@app.put(
    "/api/goals/{category_id}/periods/{period_id}",
    dependencies=[Depends(require_csrf)],
)
def api_set_goal_override(
    category_id: int,
    period_id: int,
    data: GoalAmountIn,
    db: Session = Depends(get_db),
):
    try:
        override = GoalService(db).set_override(category_id, period_id, data.amount)
    except ValueError as exc:
        raise http_error(exc) from exc
    return {
        "category_id": override.category_id,
        "billing_period_id": override.billing_period_id,
        "amount": override.amount,
    }


@app.delete(
    "/api/goals/{category_id}/periods/{period_id}",
    dependencies=[Depends(require_csrf)],
)
def api_delete_goal_override(
    category_id: int, period_id: int, db: Session = Depends(get_db)
):
    try:
        GoalService(db).delete_override(category_id, period_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/periods/{period_id}/goals")
def api_period_goals(period_id: int, db: Session = Depends(get_db)):
    try:
        goals = GoalService(db).effective_goals_for_period(period_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [
        {
            "category_id": g.category_id,
            "category_name": g.category_name,
            "amount": g.amount,
            "source": g.source,
        }
        for g in goals
    ]


@app.get("/api/periods/{period_id}/goal-progress")
def api_period_goal_progress(period_id: int, db: Session = Depends(get_db)):
    try:
        progress = GoalService(db).progress_for_period(period_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return [{"category_id": cid, **row} for cid, row in progress.items()]


@app.get("/api/periods/{period_id}/summary")
def api_period_summary(period_id: int, db: Session = Depends(get_db)):
    try:
        summary = MetricsService(db).summary_for_period(period_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    return summary_out(summary)


@app.get("/api/periods/{period_id}/breakdown")
def api_period_breakdown(period_id: int, db: Session = Depends(get_db)):
    try:
        return MetricsService(db).breakdown_for_period(period_id)
    except ValueError as exc:
        raise http_error(exc) from exc


@app.get("/api/history")
def api_history(
    limit: int = Query(default=6, ge=1, le=120), db: Session = Depends(get_db)
):
    return [summary_out(s) for s in MetricsService(db).history(limit)]


@app.get("/api/periods/{period_id}/income")
def api_period_income(period_id: int, db: Session = Depends(get_db)):
    try:
        BillingPeriodService(db).get(period_id)
    except ValueError as exc:
        raise http_error(exc) from exc
    income = IncomeService(db).income_for_period(period_id)
    if income is None:
        return {
            "billing_period_id": period_id,
            "salary_cents": 0,
            "extra_cents": 0,
            "total_cents": 0,
        }
    return income_out(income)


@app.put("/api/periods/{period_id}/income", dependencies=[Depends(require_csrf)])
def api_set_period_income(
    period_id: int, data: MonthlyIncomeIn, db: Session = Depends(get_db)
):
    try:
        income = IncomeService(db).set_monthly_income(period_id, data)
    except ValueError as exc:
        raise http_error(exc) from exc
    return income_out(income)


def main():
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=False)


if __name__ == "__main__":
    main()

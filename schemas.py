from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from models import ExpenseType


class CategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    color: str = Field("#3B82F6", max_length=7)
    order: int = 0


class CategoryUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    color: Optional[str] = Field(default=None, max_length=7)


class SubcategoryIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)


class BillingPeriodIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date

    @model_validator(mode="after")
    def _check_range(self) -> "BillingPeriodIn":
        if self.start_date >= self.end_date:
            raise ValueError("Period start date must be before its end date")
        return self


class BillingPeriodUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=100)
    start_date: Optional[date] = None
    end_date: Optional[date] = None


class ExpenseIn(BaseModel):
    description: str = Field(..., min_length=1, max_length=200)
    amount_cents: int = Field(..., ge=0)
    purchase_date: date
    category_id: int
    subcategory_id: Optional[int] = None
    type: ExpenseType = ExpenseType.variable


class ExpensePatch(BaseModel):
    """Partial update. Only fields explicitly sent are applied."""

    model_config = ConfigDict(extra="forbid")

    description: Optional[str] = Field(default=None, min_length=1, max_length=200)
    amount_cents: Optional[int] = Field(default=None, ge=0)
    purchase_date: Optional[date] = None
    category_id: Optional[int] = None
    subcategory_id: Optional[int] = None
    type: Optional[ExpenseType] = None

    @model_validator(mode="after")
    def _check_required(self) -> "ExpensePatch":
        for name in self.model_fields_set:
            if name != "subcategory_id" and getattr(self, name) is None:
                raise ValueError(f"{name} cannot be cleared")
        return self

    def changes(self) -> dict[str, object]:
        return self.model_dump(exclude_unset=True)


class ExpenseOrderIn(BaseModel):
    ordered_ids: list[int] = Field(default_factory=list)


class CategoryGoalIn(BaseModel):
    category_id: int
    amount: int = Field(..., ge=0, le=100)


class GoalAmountIn(BaseModel):
    amount: int = Field(..., ge=0, le=100)


class MonthlyIncomeIn(BaseModel):
    salary_cents: int = Field(0, ge=0)
    extra_cents: int = Field(0, ge=0)

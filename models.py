from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    Enum as SAEnum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class ExpenseType(str, Enum):
    fixed = "fixed"
    variable = "variable"


class TimestampMixin:
    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False
    )


class Category(Base, TimestampMixin):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    color: Mapped[str] = mapped_column(String(7), nullable=False, default="#3B82F6")
    order: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    subcategories: Mapped[list["Subcategory"]] = relationship(
        "Subcategory",
        back_populates="category",
        order_by="Subcategory.name",
    )

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )


class Subcategory(Base, TimestampMixin):
    __tablename__ = "subcategories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    category: Mapped["Category"] = relationship(
        "Category", back_populates="subcategories"
    )


class BillingPeriod(Base, TimestampMixin):
    __tablename__ = "billing_periods"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    __table_args__ = (
        CheckConstraint("start_date < end_date", name="ck_billing_period_range"),
        Index("ix_billing_periods_user_start", "user_id", "start_date"),
    )


class FixedExpenseTemplate(Base, TimestampMixin):
    __tablename__ = "fixed_expense_templates"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    description: Mapped[str] = mapped_column(String(200), nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    subcategory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subcategories.id", ondelete="SET NULL")
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[Optional[date]] = mapped_column(Date)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    expenses: Mapped[list["Expense"]] = relationship(
        "Expense", back_populates="fixed_template"
    )

    __table_args__ = (
        CheckConstraint("amount_cents >= 0", name="ck_template_amount_positive"),
        Index("ix_fixed_templates_user_active", "user_id", "is_active"),
    )


class Expense(Base, TimestampMixin):
    __tablename__ = "expenses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount_cents: Mapped[int] = mapped_column(Integer, nullable=False)
    purchase_date: Mapped[date] = mapped_column(Date, nullable=False)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    subcategory_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("subcategories.id", ondelete="SET NULL")
    )
    type: Mapped[ExpenseType] = mapped_column(
        SAEnum(ExpenseType), nullable=False, default=ExpenseType.variable
    )
    # No billing period foreign key: the owning period is derived from
    # purchase_date by periods.find_period_for_date.
    fixed_template_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("fixed_expense_templates.id", ondelete="SET NULL")
    )
    display_order: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    category: Mapped["Category"] = relationship("Category")
    fixed_template: Mapped[Optional["FixedExpenseTemplate"]] = relationship(
        "FixedExpenseTemplate", back_populates="expenses"
    )

    @property
    def is_template_instance(self) -> bool:
        return self.type == ExpenseType.fixed and self.fixed_template_id is not None

    __table_args__ = (
        Index("ix_expenses_user_date", "user_id", "purchase_date"),
        Index("ix_expenses_template_date", "fixed_template_id", "purchase_date"),
        CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )


class FixedExpenseExclusion(Base, TimestampMixin):
    __tablename__ = "fixed_expense_exclusions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    template_id: Mapped[int] = mapped_column(
        ForeignKey("fixed_expense_templates.id", ondelete="CASCADE"), nullable=False
    )
    billing_period_id: Mapped[int] = mapped_column(
        ForeignKey("billing_periods.id", ondelete="CASCADE"), nullable=False
    )

    __table_args__ = (
        UniqueConstraint(
            "template_id",
            "billing_period_id",
            name="uq_exclusion_template_period",
        ),
    )


class CategoryGoal(Base, TimestampMixin):
    __tablename__ = "category_goals"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("amount >= 0 AND amount <= 100", name="ck_goal_percentage"),
        UniqueConstraint("user_id", "category_id", name="uq_goal_user_category"),
    )


class CategoryGoalOverride(Base, TimestampMixin):
    __tablename__ = "category_goal_overrides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"), nullable=False
    )
    billing_period_id: Mapped[int] = mapped_column(
        ForeignKey("billing_periods.id", ondelete="CASCADE"), nullable=False
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint(
            "amount >= 0 AND amount <= 100", name="ck_goal_override_percentage"
        ),
        UniqueConstraint(
            "user_id",
            "category_id",
            "billing_period_id",
            name="uq_goal_override_user_category_period",
        ),
    )


class MonthlyIncome(Base, TimestampMixin):
    __tablename__ = "monthly_incomes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    billing_period_id: Mapped[int] = mapped_column(
        ForeignKey("billing_periods.id", ondelete="CASCADE"), nullable=False
    )
    salary_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    extra_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    @property
    def total_cents(self) -> int:
        return self.salary_cents + self.extra_cents

    __table_args__ = (
        UniqueConstraint(
            "user_id", "billing_period_id", name="uq_income_user_period"
        ),
    )

"""initial budget schema

Revision ID: 202601081200
Revises:
Create Date: 2026-01-08 12:00:00.000000

"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op


revision = "202601081200"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
        sa.Column(
            "updated_at", sa.DateTime(), nullable=False, server_default=sa.func.now()
        ),
    ]


def upgrade() -> None:
    op.create_table(
        "categories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("color", sa.String(7), nullable=False, server_default="#3B82F6"),
        sa.Column("order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("user_id", "name", name="uq_category_user_name"),
    )

    op.create_table(
        "subcategories",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(100), nullable=False),
        *_timestamps(),
    )

    op.create_table(
        "billing_periods",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=False),
        *_timestamps(),
        sa.CheckConstraint("start_date < end_date", name="ck_billing_period_range"),
    )
    op.create_index(
        "ix_billing_periods_user_start", "billing_periods", ["user_id", "start_date"]
    )

    op.create_table(
        "fixed_expense_templates",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("description", sa.String(200), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "subcategory_id",
            sa.Integer(),
            sa.ForeignKey("subcategories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("start_date", sa.Date(), nullable=False),
        sa.Column("end_date", sa.Date(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_template_amount_positive"),
    )
    op.create_index(
        "ix_fixed_templates_user_active",
        "fixed_expense_templates",
        ["user_id", "is_active"],
    )

    op.create_table(
        "expenses",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount_cents", sa.Integer(), nullable=False),
        sa.Column("purchase_date", sa.Date(), nullable=False),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "subcategory_id",
            sa.Integer(),
            sa.ForeignKey("subcategories.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "type",
            sa.Enum("fixed", "variable", name="expensetype"),
            nullable=False,
            server_default="variable",
        ),
        sa.Column(
            "fixed_template_id",
            sa.Integer(),
            sa.ForeignKey("fixed_expense_templates.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("display_order", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("amount_cents >= 0", name="ck_expenses_amount_positive"),
    )
    op.create_index("ix_expenses_user_date", "expenses", ["user_id", "purchase_date"])
    op.create_index(
        "ix_expenses_template_date",
        "expenses",
        ["fixed_template_id", "purchase_date"],
    )

    op.create_table(
        "fixed_expense_exclusions",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "template_id",
            sa.Integer(),
            sa.ForeignKey("fixed_expense_templates.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "billing_period_id",
            sa.Integer(),
            sa.ForeignKey("billing_periods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        *_timestamps(),
        sa.UniqueConstraint(
            "template_id", "billing_period_id", name="uq_exclusion_template_period"
        ),
    )

    op.create_table(
        "category_goals",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("amount >= 0 AND amount <= 100", name="ck_goal_percentage"),
        sa.UniqueConstraint("user_id", "category_id", name="uq_goal_user_category"),
    )

    op.create_table(
        "category_goal_overrides",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "category_id",
            sa.Integer(),
            sa.ForeignKey("categories.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "billing_period_id",
            sa.Integer(),
            sa.ForeignKey("billing_periods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("amount", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint(
            "amount >= 0 AND amount <= 100", name="ck_goal_override_percentage"
        ),
        sa.UniqueConstraint(
            "user_id",
            "category_id",
            "billing_period_id",
            name="uq_goal_override_user_category_period",
        ),
    )

    op.create_table(
        "monthly_incomes",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False, server_default="1"),
        sa.Column(
            "billing_period_id",
            sa.Integer(),
            sa.ForeignKey("billing_periods.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("salary_cents", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("extra_cents", sa.Integer(), nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint(
            "user_id", "billing_period_id", name="uq_income_user_period"
        ),
    )


def downgrade() -> None:
    op.drop_table("monthly_incomes")
    op.drop_table("category_goal_overrides")
    op.drop_table("category_goals")
    op.drop_table("fixed_expense_exclusions")
    op.drop_index("ix_expenses_template_date", table_name="expenses")
    op.drop_index("ix_expenses_user_date", table_name="expenses")
    op.drop_table("expenses")
    op.drop_index("ix_fixed_templates_user_active", table_name="fixed_expense_templates")
    op.drop_table("fixed_expense_templates")
    op.drop_index("ix_billing_periods_user_start", table_name="billing_periods")
    op.drop_table("billing_periods")
    op.drop_table("subcategories")
    op.drop_table("categories")

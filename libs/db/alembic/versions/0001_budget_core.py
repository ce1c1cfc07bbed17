"""Budget sheets, transactions, rules and activity log.

Revision ID: 0001_budget_core
Revises: None
Create Date: 2025-10-19
"""

from __future__ import annotations

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "0001_budget_core"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.create_table(
        "budget_sheets",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )

    op.create_table(
        "budget_transactions",
        sa.Column(
            "sheet_id",
            sa.String(),
            sa.ForeignKey("budget_sheets.id", ondelete="CASCADE"),
            primary_key=True,
        ),
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("reference_id", sa.String(), nullable=True),
        sa.Column("date", sa.String(length=10), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("amount", sa.Float(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("subcategory", sa.String(), nullable=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("ai_categorized", sa.Boolean(), nullable=False),
        sa.Column("ai_reason", sa.Text(), nullable=True),
        sa.Column("rule_id", sa.String(), nullable=True),
        sa.Column("rule_name", sa.String(), nullable=True),
        sa.Column("categorized_by", sa.String(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=True),
        sa.Column("force_rule_generation", sa.Boolean(), nullable=False),
        sa.CheckConstraint(
            "categorized_by IS NULL OR categorized_by in ('rule','ai')",
            name="ck_budget_tx_categorized_by",
        ),
        sa.CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="ck_budget_tx_confidence",
        ),
    )

    op.create_table(
        "budget_rules",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("name", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("pattern", sa.JSON(), nullable=False),
        sa.Column("category", sa.String(), nullable=False),
        sa.Column("subcategory", sa.String(), nullable=True),
        sa.Column("confidence", sa.Float(), nullable=False),
        sa.Column("match_count", sa.Integer(), nullable=False),
        sa.Column("examples", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.String(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=False),
        sa.Column("enabled", sa.Boolean(), nullable=False),
        sa.CheckConstraint(
            (
                "type in ('description_contains','description_starts_with',"
                "'description_regex','amount_range','merchant')"
            ),
            name="ck_budget_rule_type",
        ),
        sa.CheckConstraint("created_by in ('user','ai')", name="ck_budget_rule_created_by"),
        sa.CheckConstraint("confidence >= 0 AND confidence <= 1", name="ck_budget_rule_confidence"),
        sa.CheckConstraint("match_count >= 0", name="ck_budget_rule_match_count"),
    )

    op.create_table(
        "budget_activity_log",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("position", sa.Integer(), nullable=False),
        sa.Column("timestamp", sa.String(), nullable=False),
        sa.Column("type", sa.String(), nullable=False),
        sa.Column("status", sa.String(), nullable=False),
        sa.Column("details", sa.JSON(), nullable=False),
        sa.CheckConstraint(
            "type in ('categorization','recategorization','rule_generation','insights')",
            name="ck_budget_activity_type",
        ),
        sa.CheckConstraint("status in ('success','error')", name="ck_budget_activity_status"),
    )


def downgrade() -> None:
    op.drop_table("budget_activity_log")
    op.drop_table("budget_rules")
    op.drop_table("budget_transactions")
    op.drop_table("budget_sheets")

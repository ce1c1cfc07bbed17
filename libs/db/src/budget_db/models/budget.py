from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    CheckConstraint,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


# ---------------------------
# budget_sheets
# ---------------------------


class SheetRow(Base):
    __tablename__ = "budget_sheets"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )


# ---------------------------
# budget_transactions
# ---------------------------


class TransactionRow(Base):
    __tablename__ = "budget_transactions"

    # Transaction ids are unique within a sheet only.
    sheet_id: Mapped[str] = mapped_column(
        String, ForeignKey("budget_sheets.id", ondelete="CASCADE"), primary_key=True
    )
    id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    reference_id: Mapped[str | None] = mapped_column(String, nullable=True)
    date: Mapped[str] = mapped_column(String(10), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[float] = mapped_column(Float, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    source: Mapped[str] = mapped_column(String, nullable=False, default="")
    ai_categorized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    ai_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    rule_id: Mapped[str | None] = mapped_column(String, nullable=True)
    rule_name: Mapped[str | None] = mapped_column(String, nullable=True)
    categorized_by: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)
    force_rule_generation: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        CheckConstraint(
            "categorized_by IS NULL OR categorized_by in ('rule','ai')",
            name="ck_budget_tx_categorized_by",
        ),
        CheckConstraint(
            "confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
            name="ck_budget_tx_confidence",
        ),
    )


# ---------------------------
# budget_rules
# ---------------------------


class RuleRow(Base):
    __tablename__ = "budget_rules"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    # String for text rules; {"min": .., "max": ..} for amount_range.
    pattern: Mapped[Any] = mapped_column(JSON, nullable=False)
    category: Mapped[str] = mapped_column(String, nullable=False)
    subcategory: Mapped[str | None] = mapped_column(String, nullable=True)
    confidence: Mapped[float] = mapped_column(Float, nullable=False)
    match_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    examples: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[str] = mapped_column(String, nullable=False)
    created_by: Mapped[str] = mapped_column(String, nullable=False)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint(
            (
                "type in ('description_contains','description_starts_with',"
                "'description_regex','amount_range','merchant')"
            ),
            name="ck_budget_rule_type",
        ),
        CheckConstraint("created_by in ('user','ai')", name="ck_budget_rule_created_by"),
        CheckConstraint(
            "confidence >= 0 AND confidence <= 1", name="ck_budget_rule_confidence"
        ),
        CheckConstraint("match_count >= 0", name="ck_budget_rule_match_count"),
    )


# ---------------------------
# budget_activity_log
# ---------------------------


class ActivityLogRow(Base):
    __tablename__ = "budget_activity_log"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    # 0 is the newest entry.
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[str] = mapped_column(String, nullable=False)
    type: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False)
    details: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    __table_args__ = (
        CheckConstraint(
            "type in ('categorization','recategorization','rule_generation','insights')",
            name="ck_budget_activity_type",
        ),
        CheckConstraint("status in ('success','error')", name="ck_budget_activity_status"),
    )


__all__ = [
    "ActivityLogRow",
    "Base",
    "RuleRow",
    "SheetRow",
    "TransactionRow",
]

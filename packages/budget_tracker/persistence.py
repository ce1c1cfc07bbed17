"""Local persistence for sheets, rules and the activity log.

Functions take an open SQLAlchemy ``Session`` (see ``budget_db.client``) and
never commit; callers wrap them in ``session_scope()``. Saves replace the
stored collection wholesale so the database mirrors the in-memory state,
including ordering.
"""

from __future__ import annotations

from collections.abc import Sequence

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from budget_db.models.budget import ActivityLogRow, RuleRow, SheetRow, TransactionRow

from .logging_setup import get_logger
from .models import ActivityLogEntry, AmountRangeRule, Rule, Sheet, Transaction, parse_rule

_logger = get_logger("budget_tracker.persistence")


# ---- Sheets -------------------------------------------------------------------


def _tx_to_row(sheet_id: str, position: int, t: Transaction) -> TransactionRow:
    return TransactionRow(
        sheet_id=sheet_id,
        id=t.id,
        position=position,
        reference_id=t.reference_id,
        date=t.date,
        description=t.description,
        amount=t.amount,
        category=t.category,
        subcategory=t.subcategory,
        source=t.source,
        ai_categorized=t.ai_categorized,
        ai_reason=t.ai_reason,
        rule_id=t.rule_id,
        rule_name=t.rule_name,
        categorized_by=t.categorized_by,
        confidence=t.confidence,
        force_rule_generation=t.force_rule_generation,
    )


def _tx_from_row(row: TransactionRow) -> Transaction:
    return Transaction(
        id=row.id,
        reference_id=row.reference_id,
        date=row.date,
        description=row.description,
        amount=row.amount,
        category=row.category,
        subcategory=row.subcategory,
        source=row.source,
        ai_categorized=row.ai_categorized,
        ai_reason=row.ai_reason,
        rule_id=row.rule_id,
        rule_name=row.rule_name,
        categorized_by=row.categorized_by,
        confidence=row.confidence,
        force_rule_generation=row.force_rule_generation,
    )


def save_sheet(session: Session, sheet: Sheet) -> None:
    """Create or replace ``sheet`` and all of its transactions."""

    existing = session.get(SheetRow, sheet.id)
    if existing is None:
        session.add(SheetRow(id=sheet.id, name=sheet.name))
    else:
        existing.name = sheet.name
    session.execute(delete(TransactionRow).where(TransactionRow.sheet_id == sheet.id))
    session.add_all(_tx_to_row(sheet.id, i, t) for i, t in enumerate(sheet.transactions))
    session.flush()
    _logger.info("persistence:save_sheet sheet_id=%s transactions=%d", sheet.id, len(sheet.transactions))


def load_sheet(session: Session, sheet_id: str) -> Sheet | None:
    row = session.get(SheetRow, sheet_id)
    if row is None:
        return None
    tx_rows = session.scalars(
        select(TransactionRow)
        .where(TransactionRow.sheet_id == sheet_id)
        .order_by(TransactionRow.position)
    ).all()
    return Sheet(id=row.id, name=row.name, transactions=tuple(_tx_from_row(r) for r in tx_rows))


def list_sheets(session: Session) -> list[tuple[str, str]]:
    """Return ``(id, name)`` for every sheet, oldest first."""

    rows = session.execute(
        select(SheetRow.id, SheetRow.name).order_by(SheetRow.created_at, SheetRow.id)
    ).all()
    return [(r.id, r.name) for r in rows]


def delete_sheet(session: Session, sheet_id: str) -> bool:
    session.execute(delete(TransactionRow).where(TransactionRow.sheet_id == sheet_id))
    result = session.execute(delete(SheetRow).where(SheetRow.id == sheet_id))
    return bool(result.rowcount)


# ---- Rules --------------------------------------------------------------------


def _rule_to_row(position: int, rule: Rule) -> RuleRow:
    pattern = rule.pattern.model_dump() if isinstance(rule, AmountRangeRule) else rule.pattern
    return RuleRow(
        id=rule.id,
        position=position,
        name=rule.name,
        type=rule.type,
        pattern=pattern,
        category=rule.category,
        subcategory=rule.subcategory,
        confidence=rule.confidence,
        match_count=rule.match_count,
        examples=list(rule.examples),
        created_at=rule.created_at,
        created_by=rule.created_by,
        enabled=rule.enabled,
    )


def _rule_from_row(row: RuleRow) -> Rule:
    return parse_rule(
        {
            "id": row.id,
            "name": row.name,
            "type": row.type,
            "pattern": row.pattern,
            "category": row.category,
            "subcategory": row.subcategory,
            "confidence": row.confidence,
            "match_count": row.match_count,
            "examples": row.examples or [],
            "created_at": row.created_at,
            "created_by": row.created_by,
            "enabled": row.enabled,
        }
    )


def save_rules(session: Session, rules: Sequence[Rule]) -> None:
    session.execute(delete(RuleRow))
    session.add_all(_rule_to_row(i, r) for i, r in enumerate(rules))
    session.flush()
    _logger.info("persistence:save_rules count=%d", len(rules))


def load_rules(session: Session) -> list[Rule]:
    rows = session.scalars(select(RuleRow).order_by(RuleRow.position)).all()
    return [_rule_from_row(r) for r in rows]


# ---- Activity log -------------------------------------------------------------


def save_activity_log(session: Session, log: Sequence[ActivityLogEntry]) -> None:
    session.execute(delete(ActivityLogRow))
    session.add_all(
        ActivityLogRow(
            id=e.id,
            position=i,
            timestamp=e.timestamp,
            type=e.type,
            status=e.status,
            details=e.details,
        )
        for i, e in enumerate(log)
    )
    session.flush()


def load_activity_log(session: Session) -> list[ActivityLogEntry]:
    rows = session.scalars(select(ActivityLogRow).order_by(ActivityLogRow.position)).all()
    return [
        ActivityLogEntry(
            id=r.id, timestamp=r.timestamp, type=r.type, status=r.status, details=r.details or {}
        )
        for r in rows
    ]


__all__ = [
    "delete_sheet",
    "list_sheets",
    "load_activity_log",
    "load_rules",
    "load_sheet",
    "save_activity_log",
    "save_rules",
    "save_sheet",
]

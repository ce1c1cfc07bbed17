"""SQLAlchemy models registry for the budget tracker store."""

from .budget import ActivityLogRow, Base, RuleRow, SheetRow, TransactionRow

__all__ = [
    "ActivityLogRow",
    "Base",
    "RuleRow",
    "SheetRow",
    "TransactionRow",
]

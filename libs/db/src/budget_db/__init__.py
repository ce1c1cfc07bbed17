"""budget_db: local SQLite/Postgres store for the budget tracker.

Public exports
--------------
- ``Base`` and ``metadata``
- ORM models in ``budget_db.models.budget`` (re-exported for convenience)
- Engine/session helpers in ``budget_db.client``
"""

from __future__ import annotations

from .models.budget import ActivityLogRow, Base, RuleRow, SheetRow, TransactionRow

metadata = Base.metadata

__all__ = [
    "ActivityLogRow",
    "Base",
    "RuleRow",
    "SheetRow",
    "TransactionRow",
    "metadata",
]

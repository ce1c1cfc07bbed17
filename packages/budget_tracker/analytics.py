"""Spending summaries over a sheet's transactions.

Expenses are negative amounts and are reported as positive totals; income is
positive amounts. Transfers are counted like any other category.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .models import Transaction


@dataclass(frozen=True, slots=True)
class SpendingSummary:
    total_expenses: float
    total_income: float
    net_balance: float
    transaction_count: int
    # Expense totals per category, largest first.
    category_totals: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class MonthlyTotal:
    month: str
    expenses: float
    income: float


def _sorted_desc(totals: dict[str, float]) -> dict[str, float]:
    return dict(sorted(totals.items(), key=lambda kv: (-kv[1], kv[0])))


def summarize(transactions: Sequence[Transaction]) -> SpendingSummary:
    expenses = 0.0
    income = 0.0
    by_category: dict[str, float] = {}
    for t in transactions:
        if t.amount < 0:
            spent = abs(t.amount)
            expenses += spent
            by_category[t.category] = by_category.get(t.category, 0.0) + spent
        else:
            income += t.amount
    return SpendingSummary(
        total_expenses=round(expenses, 2),
        total_income=round(income, 2),
        net_balance=round(income - expenses, 2),
        transaction_count=len(transactions),
        category_totals={k: round(v, 2) for k, v in _sorted_desc(by_category).items()},
    )


def subcategory_totals(transactions: Iterable[Transaction], category: str) -> dict[str, float]:
    """Expense totals per subcategory within ``category`` (unset -> ``Other``)."""

    totals: dict[str, float] = {}
    for t in transactions:
        if t.category != category or t.amount >= 0:
            continue
        key = t.subcategory or "Other"
        totals[key] = totals.get(key, 0.0) + abs(t.amount)
    return {k: round(v, 2) for k, v in _sorted_desc(totals).items()}


def monthly_totals(transactions: Iterable[Transaction]) -> list[MonthlyTotal]:
    """Expenses and income per ``YYYY-MM``, oldest month first."""

    buckets: dict[str, list[float]] = {}
    for t in transactions:
        month = t.date[:7]
        bucket = buckets.setdefault(month, [0.0, 0.0])
        if t.amount < 0:
            bucket[0] += abs(t.amount)
        else:
            bucket[1] += t.amount
    return [
        MonthlyTotal(month=month, expenses=round(exp, 2), income=round(inc, 2))
        for month, (exp, inc) in sorted(buckets.items())
    ]


def filter_transactions(
    transactions: Iterable[Transaction],
    *,
    category: str | None = None,
    query: str | None = None,
) -> list[Transaction]:
    """Filter by exact category and/or case-insensitive description substring."""

    needle = (query or "").strip().lower()
    out: list[Transaction] = []
    for t in transactions:
        if category and t.category != category:
            continue
        if needle and needle not in t.description.lower():
            continue
        out.append(t)
    return out


__all__ = [
    "MonthlyTotal",
    "SpendingSummary",
    "filter_transactions",
    "monthly_totals",
    "subcategory_totals",
    "summarize",
]

"""Rules first, then AI (or the keyword classifier) for whatever is left.

Public API:
    - :func:`categorize_with_rules_and_ai`
    - :func:`categorize_basic`
"""

from __future__ import annotations

from collections.abc import Sequence

from . import basic
from .ai_categorizer import categorize_with_ai
from .logging_setup import get_logger
from .models import Rule, Transaction
from .progress import ProgressCallback, notify
from .rules import apply_match, categorize_with_rules

_logger = get_logger("budget_tracker.orchestrator")


def _basic_one(transaction: Transaction) -> Transaction:
    result = basic.classify(transaction.description)
    return transaction.replace(
        category=result.category,
        subcategory=result.subcategory,
        ai_categorized=False,
        ai_reason=None,
        rule_id=None,
        rule_name=None,
        categorized_by=None,
        confidence=None,
    )


def categorize_basic(transactions: Sequence[Transaction]) -> list[Transaction]:
    """Classify every transaction with the keyword table, clearing provenance."""

    return [_basic_one(t) for t in transactions]


def categorize_with_rules_and_ai(
    transactions: Sequence[Transaction],
    rules: Sequence[Rule],
    api_key: str | None = None,
    *,
    on_progress: ProgressCallback | None = None,
) -> list[Transaction]:
    """Categorize with rules, sending unmatched rows to the AI or basic stage.

    The result has the same length and order as ``transactions``. Only the
    ``api_key`` argument decides whether the AI stage runs; without it the
    unmatched rows go through :func:`categorize_basic`. AI errors propagate.
    """

    results: list[Transaction] = list(transactions)
    unmatched_positions: list[int] = []
    for pos, t in enumerate(results):
        match = categorize_with_rules(t, rules)
        if match is None:
            unmatched_positions.append(pos)
        else:
            results[pos] = apply_match(t, match)

    matched = len(results) - len(unmatched_positions)
    notify(on_progress, "rules_applied", matched=matched, remaining=len(unmatched_positions))

    if unmatched_positions:
        remainder = [results[pos] for pos in unmatched_positions]
        if api_key:
            categorized = categorize_with_ai(remainder, api_key, on_progress=on_progress)
            stage = "ai"
        else:
            categorized = categorize_basic(remainder)
            stage = "basic"
        for pos, t in zip(unmatched_positions, categorized, strict=True):
            results[pos] = t
    else:
        stage = "none"

    _logger.info(
        "categorize_with_rules_and_ai:done total=%d rule_matched=%d remainder_stage=%s",
        len(results),
        matched,
        stage,
    )
    return results


__all__ = ["categorize_basic", "categorize_with_rules_and_ai"]

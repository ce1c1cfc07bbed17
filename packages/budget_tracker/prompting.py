"""Prompt builders for the language-model backed operations.

- :func:`build_categorization_prompt` - one AI categorization batch.
- :func:`build_rule_generation_prompt` - one rule-generation batch.
- :func:`build_insights_prompt` - free-text spending insights.

Prompts are plain strings; JSON payloads inside them are serialized with a
stable key order so identical inputs produce identical prompts.
"""

from __future__ import annotations

import json
from collections.abc import Mapping, Sequence
from typing import Any

from .models import Transaction
from .taxonomy import CATEGORIES, describe_taxonomy


def _format_amount(amount: float) -> str:
    return f"{abs(amount):.2f}"


def build_categorization_prompt(batch: Sequence[Transaction]) -> str:
    """Return the prompt for one categorization batch.

    Transactions are numbered from 1 within the batch and shown with their
    absolute amount; the response must refer back to those numbers.
    """

    listing = "\n".join(
        f"{i}. {t.description} - ${_format_amount(t.amount)}" for i, t in enumerate(batch, start=1)
    )
    return (
        "You are a financial categorization expert. Categorize each transaction into "
        f"EXACTLY ONE of these categories: {', '.join(CATEGORIES)}.\n\n"
        "Also choose a subcategory from the list registered for that category:\n"
        f"{describe_taxonomy()}\n\n"
        f"Transactions:\n{listing}\n\n"
        "IMPORTANT: Respond ONLY with a valid JSON array. Each item must have "
        '"index" (the transaction number), "category" (from the list above), '
        '"subcategory" (from that category\'s list) and "reason" (a short '
        "explanation). DO NOT include any text outside the JSON array. Make sure "
        "the JSON is valid and complete.\n\n"
        "Example format:\n"
        '[{"index": 1, "category": "Groceries", "subcategory": "Supermarket", '
        '"reason": "Grocery chain"}, {"index": 2, "category": "Dining", '
        '"subcategory": "Coffee Shops", "reason": "Coffee shop purchase"}]'
    )


_RULE_EXAMPLE: list[dict[str, Any]] = [
    {
        "name": "Starbucks Coffee",
        "type": "description_contains",
        "pattern": "STARBUCKS",
        "category": "Dining",
        "subcategory": "Coffee Shops",
        "confidence": 0.95,
    }
]


def build_rule_generation_prompt(
    category_examples: Sequence[Mapping[str, Any]],
    known_patterns: Sequence[Mapping[str, Any]],
    *,
    categories: Sequence[str],
    rules_per_category: int,
) -> str:
    """Return the prompt for one rule-generation batch.

    ``category_examples`` holds ``{category, count, examples}`` entries;
    ``known_patterns`` holds ``{type, pattern, category}`` for every rule the
    model must not duplicate (existing rules plus earlier batches' output).
    """

    rule_count = len(categories) * rules_per_category
    return (
        "You are a financial transaction categorization expert. Analyze these "
        "categorized transactions and generate precise categorization rules.\n\n"
        "EXISTING RULES (don't duplicate these):\n"
        f"{json.dumps(list(known_patterns), indent=2)}\n\n"
        "CATEGORIZED TRANSACTIONS:\n"
        f"{json.dumps(list(category_examples), indent=2)}\n\n"
        "Your task: Generate rules that can automatically categorize future "
        "transactions. Each rule should:\n"
        "1. Match a clear pattern in transaction descriptions\n"
        "2. Be specific enough to avoid false matches\n"
        "3. Cover common merchants/patterns\n"
        "4. Include confidence score (0-1)\n\n"
        "Rule types you can use:\n"
        '- "description_contains": Simple substring match (e.g., "STARBUCKS" -> Dining/Coffee Shops)\n'
        '- "description_starts_with": Prefix match (e.g., "TST* " -> Dining)\n'
        '- "description_regex": Regex pattern for complex matching\n'
        '- "merchant": Extract and match merchant name\n\n'
        "Valid subcategories per category:\n"
        f"{describe_taxonomy()}\n\n"
        "Return ONLY a JSON array of rules in this exact format:\n"
        f"{json.dumps(_RULE_EXAMPLE, indent=2)}\n\n"
        f"Generate {rule_count} high-quality rules that cover the most common patterns "
        f"in THESE CATEGORIES ONLY: {', '.join(categories)}. Try to generate multiple "
        "rules per category to capture different merchants and patterns. Focus on "
        "precision over coverage."
    )


def build_insights_prompt(
    *,
    total_income: float,
    total_expenses: float,
    transaction_count: int,
    category_totals: Mapping[str, float],
) -> str:
    lines: list[str] = []
    for category, amount in category_totals.items():
        share = (amount / total_expenses * 100.0) if total_expenses else 0.0
        lines.append(f"- {category}: ${amount:.2f} ({share:.1f}%)")
    breakdown = "\n".join(lines) if lines else "- (no expenses)"
    return (
        "Analyze this spending data and provide 3-4 actionable insights:\n\n"
        f"Total Income: ${total_income:.2f}\n"
        f"Total Expenses: ${total_expenses:.2f}\n"
        f"Transaction Count: {transaction_count}\n\n"
        f"Spending by Category:\n{breakdown}\n\n"
        "Provide insights about:\n"
        "1. Spending patterns and trends\n"
        "2. Potential savings opportunities\n"
        "3. Budget recommendations\n"
        "4. Any concerning patterns\n\n"
        "Keep each insight concise (1-2 sentences) and actionable."
    )


__all__ = [
    "build_categorization_prompt",
    "build_insights_prompt",
    "build_rule_generation_prompt",
]

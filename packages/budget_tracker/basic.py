"""Keyword-based fallback classifier.

Deterministic and total: every description maps to some category. Table
order matters; the first category with a matching keyword wins, so a
description containing both a grocery and a dining keyword resolves to
Groceries.
"""

from __future__ import annotations

from typing import NamedTuple

from .taxonomy import OTHER_SUBCATEGORY


class BasicClassification(NamedTuple):
    category: str
    subcategory: str


_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    (
        "Groceries",
        (
            "grocery",
            "supermarket",
            "whole foods",
            "trader joe",
            "safeway",
            "kroger",
            "walmart",
            "target",
            "costco",
            "market",
            "food lion",
            "publix",
        ),
    ),
    (
        "Dining",
        (
            "restaurant",
            "cafe",
            "coffee",
            "starbucks",
            "chipotle",
            "mcdonalds",
            "pizza",
            "burger",
            "food",
            "doordash",
            "uber eats",
            "grubhub",
            "panera",
            "subway",
        ),
    ),
    (
        "Transportation",
        (
            "uber",
            "lyft",
            "gas",
            "fuel",
            "parking",
            "transit",
            "metro",
            "bus",
            "train",
            "airline",
            "flight",
            "shell",
            "chevron",
            "exxon",
        ),
    ),
    (
        "Shopping",
        (
            "amazon",
            "store",
            "shop",
            "retail",
            "clothing",
            "apparel",
            "best buy",
            "apple store",
            "ebay",
            "etsy",
        ),
    ),
    (
        "Entertainment",
        (
            "netflix",
            "spotify",
            "hulu",
            "disney",
            "movie",
            "theater",
            "concert",
            "game",
            "gym",
            "fitness",
            "hbo",
            "playstation",
            "xbox",
        ),
    ),
    (
        "Utilities",
        (
            "electric",
            "water",
            "gas bill",
            "internet",
            "phone",
            "utility",
            "verizon",
            "at&t",
            "comcast",
            "t-mobile",
            "sprint",
        ),
    ),
    (
        "Healthcare",
        (
            "pharmacy",
            "doctor",
            "hospital",
            "medical",
            "health",
            "dental",
            "cvs",
            "walgreens",
            "rite aid",
        ),
    ),
    (
        "Travel",
        ("hotel", "airbnb", "booking", "expedia", "resort", "vacation", "marriott", "hilton"),
    ),
    (
        "Income",
        ("payroll", "salary", "deposit", "payment received", "venmo transfer", "paycheck"),
    ),
    ("Transfer", ("transfer", "withdrawal", "atm", "zelle")),
)

UNMATCHED = BasicClassification("Other", "Miscellaneous")


def classify(description: str | None) -> BasicClassification:
    """Return the first keyword-table category contained in ``description``."""

    desc = (description or "").lower()
    for category, keywords in _KEYWORDS:
        if any(keyword in desc for keyword in keywords):
            return BasicClassification(category, OTHER_SUBCATEGORY)
    return UNMATCHED


__all__ = ["BasicClassification", "classify", "UNMATCHED"]

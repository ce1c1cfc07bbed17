"""The fixed two-level category taxonomy.

Every transaction and rule carries one of :data:`CATEGORIES`. Subcategories
are optional, but when present they must come from the list registered for
the parent category; anything else is normalized to ``"Other"``.
"""

from __future__ import annotations

from collections.abc import Mapping

CATEGORIES: tuple[str, ...] = (
    "Groceries",
    "Dining",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Utilities",
    "Healthcare",
    "Travel",
    "Income",
    "Transfer",
    "Other",
)

# Placeholder for rows loaded from storage before any classification ran.
# Not part of the enumeration; no component ever assigns it.
UNCATEGORIZED = "Uncategorized"

OTHER_SUBCATEGORY = "Other"

SUBCATEGORIES: Mapping[str, tuple[str, ...]] = {
    "Groceries": (
        "Supermarket",
        "Warehouse Club",
        "Specialty Food",
        "Convenience Store",
        "Other",
    ),
    "Dining": (
        "Restaurants",
        "Coffee Shops",
        "Fast Food",
        "Food Delivery",
        "Bars",
        "Other",
    ),
    "Transportation": (
        "Rideshare",
        "Fuel",
        "Parking",
        "Public Transit",
        "Tolls",
        "Auto Maintenance",
        "Other",
    ),
    "Shopping": (
        "Online",
        "Clothing",
        "Electronics",
        "Home Goods",
        "Other",
    ),
    "Entertainment": (
        "Streaming",
        "Music",
        "Movies & Events",
        "Games",
        "Fitness",
        "Other",
    ),
    "Utilities": (
        "Electricity",
        "Water",
        "Gas",
        "Internet",
        "Phone",
        "Other",
    ),
    "Healthcare": (
        "Pharmacy",
        "Doctor",
        "Dental",
        "Vision",
        "Insurance",
        "Other",
    ),
    "Travel": (
        "Flights",
        "Lodging",
        "Car Rental",
        "Other",
    ),
    "Income": (
        "Salary",
        "Refund",
        "Interest",
        "Transfer In",
        "Other",
    ),
    "Transfer": (
        "Bank Transfer",
        "ATM Withdrawal",
        "Peer-to-Peer",
        "Credit Card Payment",
        "Other",
    ),
    "Other": (
        "Miscellaneous",
        "Fees",
        "Other",
    ),
}


def is_valid_category(category: object) -> bool:
    return isinstance(category, str) and category in SUBCATEGORIES


def subcategories_for(category: str) -> tuple[str, ...]:
    """Return the subcategory enumeration for ``category`` (empty if unknown)."""

    return SUBCATEGORIES.get(category, ())


def normalize_subcategory(category: str, subcategory: str | None) -> str | None:
    """Coerce ``subcategory`` into the enumeration registered for ``category``.

    ``None`` and blank values stay ``None``. Known values are returned
    unchanged. Anything else becomes ``"Other"``. Categories outside the
    enumeration (the ``Uncategorized`` placeholder) cannot carry a
    subcategory.
    """

    if subcategory is None:
        return None
    s = subcategory.strip()
    if not s:
        return None
    allowed = SUBCATEGORIES.get(category)
    if not allowed:
        return None
    if s in allowed:
        return s
    # Tolerate case drift from model output before falling back.
    by_lower = {a.lower(): a for a in allowed}
    return by_lower.get(s.lower(), OTHER_SUBCATEGORY)


def describe_taxonomy() -> str:
    """Render the taxonomy as an indented block for prompts."""

    lines: list[str] = []
    for category in CATEGORIES:
        lines.append(f"- {category}: {', '.join(SUBCATEGORIES[category])}")
    return "\n".join(lines)


__all__ = [
    "CATEGORIES",
    "SUBCATEGORIES",
    "UNCATEGORIZED",
    "OTHER_SUBCATEGORY",
    "is_valid_category",
    "subcategories_for",
    "normalize_subcategory",
    "describe_taxonomy",
]

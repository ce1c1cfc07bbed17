"""Rule engine: match user/AI-authored rules against transactions.

Public API
----------
- :func:`apply_rule` - evaluate one rule against one transaction.
- :func:`categorize_with_rules` - best match under rule precedence.
- :func:`categorize_transactions_with_rules` - bulk rule pass.
- :func:`update_rule_stats` - recompute ``match_count``/``examples``.
- :func:`detect_conflicts` / :func:`find_rule_conflicts` - overlap reports.
- Rule lifecycle helpers (:func:`add_rule`, :func:`update_rule`,
  :func:`toggle_rule`, :func:`delete_rule`) and JSON import/export.

Precedence: user-authored rules always beat AI-authored rules; within the
same author tier the higher ``confidence`` wins; remaining ties keep rule
list order. All functions are pure: inputs are never mutated and new lists
are returned.
"""

from __future__ import annotations

import json
import re
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import (
    RULE_LIST_ADAPTER,
    AmountRangeRule,
    ConflictingTransaction,
    ConflictReport,
    DescriptionContainsRule,
    DescriptionRegexRule,
    DescriptionStartsWithRule,
    MerchantRule,
    Rule,
    RuleConflict,
    RuleMatch,
    RuleOverlap,
    Transaction,
    dump_rule,
    parse_rule,
)

_logger = get_logger("budget_tracker.rules")

MAX_RULE_EXAMPLES = 5

# ---- Merchant extraction ------------------------------------------------------

_LEADING_TOKENS_RE = re.compile(r"^(?:(?:POS|DEBIT|CREDIT|CARD|ATM)\s+)+", re.IGNORECASE)
_HASH_NUMBER_RE = re.compile(r"\s+#\d+")
_LONG_NUMBER_RE = re.compile(r"\s+\d{4,}")
_LOCATION_SPLIT_RE = re.compile(r"\s+(?:IN|AT|ON)\s+", re.IGNORECASE)


def extract_merchant_name(description: str) -> str:
    """Best-effort merchant name from a raw bank description.

    Strips leading POS/DEBIT/CREDIT/CARD/ATM tokens, ``#1234`` store or card
    numbers and numeric reference blocks of four or more digits, then keeps
    the part before a location connector (`` IN ``/`` AT ``/`` ON ``).
    """

    merchant = _LEADING_TOKENS_RE.sub("", description.strip())
    merchant = _HASH_NUMBER_RE.sub("", merchant)
    merchant = _LONG_NUMBER_RE.sub("", merchant).strip()
    return _LOCATION_SPLIT_RE.split(merchant, maxsplit=1)[0].strip()


@lru_cache(maxsize=512)
def _compile_rule_regex(pattern: str) -> re.Pattern[str] | None:
    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        _logger.warning("rules:invalid_regex pattern=%r error=%s", pattern, e)
        return None


# ---- Matching -----------------------------------------------------------------


def _matches(transaction: Transaction, rule: Rule) -> bool:
    if isinstance(rule, AmountRangeRule):
        amount = abs(transaction.amount)
        return rule.pattern.min <= amount <= rule.pattern.max

    if isinstance(rule, DescriptionRegexRule):
        regex = _compile_rule_regex(rule.pattern)
        return regex is not None and regex.search(transaction.description) is not None

    desc = transaction.description.upper()
    pattern = rule.pattern.upper()
    if isinstance(rule, DescriptionContainsRule):
        return pattern in desc
    if isinstance(rule, DescriptionStartsWithRule):
        return desc.startswith(pattern)
    if isinstance(rule, MerchantRule):
        merchant = extract_merchant_name(transaction.description)
        return bool(merchant) and pattern in merchant.upper()
    return False


def apply_rule(transaction: Transaction, rule: Rule) -> RuleMatch | None:
    """Evaluate ``rule`` against ``transaction``.

    Disabled rules never match. Text comparisons are case-insensitive. An
    invalid regular expression is logged and treated as a non-match.
    """

    if not rule.enabled:
        return None
    if not _matches(transaction, rule):
        return None
    return RuleMatch(
        category=rule.category,
        subcategory=rule.subcategory,
        confidence=rule.confidence,
        rule_id=rule.id,
        rule_name=rule.name,
        created_by=rule.created_by,
    )


def _precedence_key(match: RuleMatch) -> tuple[int, float]:
    return (0 if match.created_by == "user" else 1, -match.confidence)


def rank_matches(matches: Iterable[RuleMatch]) -> list[RuleMatch]:
    """Order matches by precedence (user first, then confidence descending)."""

    # sorted() is stable: equal keys keep rule-list order.
    return sorted(matches, key=_precedence_key)


def find_matches(transaction: Transaction, rules: Iterable[Rule]) -> list[RuleMatch]:
    matches: list[RuleMatch] = []
    for rule in rules:
        match = apply_rule(transaction, rule)
        if match is not None:
            matches.append(match)
    return matches


def categorize_with_rules(transaction: Transaction, rules: Iterable[Rule]) -> RuleMatch | None:
    """Return the highest-precedence match for ``transaction`` or ``None``."""

    ranked = rank_matches(find_matches(transaction, rules))
    return ranked[0] if ranked else None


def apply_match(transaction: Transaction, match: RuleMatch) -> Transaction:
    """Stamp a rule match onto a transaction (rule provenance only)."""

    return transaction.replace(
        category=match.category,
        subcategory=match.subcategory,
        rule_id=match.rule_id,
        rule_name=match.rule_name,
        confidence=match.confidence,
        categorized_by="rule",
        ai_categorized=False,
        ai_reason=None,
    )


def categorize_transactions_with_rules(
    transactions: Iterable[Transaction], rules: Sequence[Rule]
) -> list[Transaction]:
    """Apply the best rule match to each transaction.

    Unmatched transactions are returned unchanged; any prior categorization
    they carry is kept.
    """

    out: list[Transaction] = []
    for transaction in transactions:
        match = categorize_with_rules(transaction, rules)
        out.append(apply_match(transaction, match) if match is not None else transaction)
    return out


# ---- Statistics and conflicts -------------------------------------------------


def update_rule_stats(rules: Sequence[Rule], transactions: Sequence[Transaction]) -> list[Rule]:
    """Recompute ``match_count`` and up to five ``examples`` for every rule.

    Full recomputation over rules x transactions; call again whenever either
    collection changes.
    """

    out: list[Rule] = []
    for rule in rules:
        count = 0
        examples: list[str] = []
        for transaction in transactions:
            if apply_rule(transaction, rule) is None:
                continue
            count += 1
            if len(examples) < MAX_RULE_EXAMPLES:
                examples.append(transaction.description)
        out.append(rule.model_copy(update={"match_count": count, "examples": tuple(examples)}))
    return out


@dataclass(slots=True)
class _ConflictAccumulator:
    rule_name: str
    conflicts_with: dict[str, None] = field(default_factory=dict)
    conflict_count: int = 0
    descriptions: list[str] = field(default_factory=list)


def detect_conflicts(rules: Sequence[Rule], transactions: Sequence[Transaction]) -> ConflictReport:
    """Report transactions matched by more than one enabled rule.

    Conflicts are warnings only: :func:`categorize_with_rules` still picks a
    single deterministic winner for every transaction.
    """

    by_rule: dict[str, _ConflictAccumulator] = {}
    conflicting: list[ConflictingTransaction] = []

    for transaction in transactions:
        matches = find_matches(transaction, rules)
        if len(matches) < 2:
            continue
        conflicting.append(ConflictingTransaction(transaction=transaction, matches=tuple(matches)))
        for match in matches:
            acc = by_rule.setdefault(match.rule_id, _ConflictAccumulator(rule_name=match.rule_name))
            for other in matches:
                if other.rule_id != match.rule_id:
                    acc.conflicts_with[other.rule_id] = None
            acc.conflict_count += 1
            acc.descriptions.append(transaction.description)

    conflicts = tuple(
        RuleConflict(
            rule_id=rule_id,
            rule_name=acc.rule_name,
            conflicts_with=tuple(acc.conflicts_with),
            conflict_count=acc.conflict_count,
            conflicting_transactions=tuple(acc.descriptions),
        )
        for rule_id, acc in by_rule.items()
    )
    if conflicts:
        _logger.info(
            "rules:conflicts rules=%d transactions=%d", len(conflicts), len(conflicting)
        )
    return ConflictReport(conflicts=conflicts, conflicting_transactions=tuple(conflicting))


def find_rule_conflicts(
    rule: Rule,
    other_rules: Sequence[Rule],
    transactions: Sequence[Transaction],
) -> list[RuleOverlap]:
    """Describe how ``rule`` (typically being edited) overlaps ``other_rules``.

    Only transactions matched by ``rule`` are considered, and ``rule`` is
    evaluated as if enabled so that a disabled rule can be checked before it
    is switched on. One entry is returned per overlapping enabled rule, in
    ``other_rules`` order.
    """

    candidate = rule if rule.enabled else rule.model_copy(update={"enabled": True})
    others = [r for r in other_rules if r.id != rule.id]

    counts: dict[str, int] = {}
    examples: dict[str, list[str]] = {}
    wins: dict[str, bool] = {}
    for transaction in transactions:
        own = apply_rule(transaction, candidate)
        if own is None:
            continue
        for other in others:
            other_match = apply_rule(transaction, other)
            if other_match is None:
                continue
            counts[other.id] = counts.get(other.id, 0) + 1
            bucket = examples.setdefault(other.id, [])
            if len(bucket) < MAX_RULE_EXAMPLES:
                bucket.append(transaction.description)
            wins[other.id] = rank_matches([own, other_match])[0] is own

    return [
        RuleOverlap(
            rule_id=other.id,
            rule_name=other.name,
            category=other.category,
            subcategory=other.subcategory,
            created_by=other.created_by,
            overlap_count=counts[other.id],
            examples=tuple(examples[other.id]),
            same_category=(
                other.category == rule.category and other.subcategory == rule.subcategory
            ),
            wins=wins[other.id],
        )
        for other in others
        if other.id in counts
    ]


# ---- Lifecycle ----------------------------------------------------------------


def _index_of(rules: Sequence[Rule], rule_id: str) -> int:
    for i, rule in enumerate(rules):
        if rule.id == rule_id:
            return i
    raise KeyError(f"rule not found: {rule_id!r}")


def add_rule(rules: Sequence[Rule], rule: Rule) -> list[Rule]:
    if any(r.id == rule.id for r in rules):
        raise ValueError(f"duplicate rule id: {rule.id!r}")
    return [*rules, rule]


def update_rule(
    rules: Sequence[Rule],
    updated: Rule,
    transactions: Sequence[Transaction],
) -> tuple[list[Rule], list[RuleOverlap]]:
    """Replace the rule with ``updated.id`` and re-run overlap detection.

    Returns the new rule list plus the overlaps of the edited rule against
    every other rule on ``transactions``.
    """

    idx = _index_of(rules, updated.id)
    out = list(rules)
    out[idx] = updated
    overlaps = find_rule_conflicts(updated, [r for r in out if r.id != updated.id], transactions)
    return out, overlaps


def toggle_rule(rules: Sequence[Rule], rule_id: str, enabled: bool | None = None) -> list[Rule]:
    """Flip (or set) ``enabled`` on one rule."""

    idx = _index_of(rules, rule_id)
    out = list(rules)
    current = out[idx]
    out[idx] = current.model_copy(
        update={"enabled": (not current.enabled) if enabled is None else enabled}
    )
    return out


def delete_rule(rules: Sequence[Rule], rule_id: str) -> list[Rule]:
    _index_of(rules, rule_id)
    return [r for r in rules if r.id != rule_id]


# ---- Validation and JSON import/export ----------------------------------------


def _format_validation_error(exc: ValidationError) -> list[str]:
    out: list[str] = []
    for err in exc.errors():
        loc = ".".join(str(p) for p in err.get("loc", ()) if p is not None)
        msg = err.get("msg", "invalid value")
        out.append(f"{loc}: {msg}" if loc else msg)
    return out


def validate_rule(data: Mapping[str, Any]) -> list[str]:
    """Return human-readable validation errors for a raw rule mapping.

    An empty list means the mapping is a valid rule.
    """

    try:
        parse_rule(data)
    except ValidationError as e:
        return _format_validation_error(e)
    return []


@dataclass(frozen=True, slots=True)
class RuleImportError:
    index: int | None
    errors: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class RuleImportResult:
    rules: list[Rule]
    errors: list[RuleImportError]

    @property
    def success(self) -> bool:
        return not self.errors


def import_rules_from_json(text: str) -> RuleImportResult:
    """Parse a JSON array of rules, keeping the valid ones.

    Invalid entries are reported per index; a document that is not a JSON
    array yields no rules and a single error.
    """

    try:
        raw = json.loads(text)
    except json.JSONDecodeError as e:
        return RuleImportResult(rules=[], errors=[RuleImportError(None, (str(e),))])
    if not isinstance(raw, list):
        return RuleImportResult(
            rules=[], errors=[RuleImportError(None, ("Rules must be an array",))]
        )

    rules: list[Rule] = []
    errors: list[RuleImportError] = []
    for index, item in enumerate(raw):
        if not isinstance(item, Mapping):
            errors.append(RuleImportError(index, ("Rule must be an object",)))
            continue
        try:
            rules.append(parse_rule(item))
        except ValidationError as e:
            errors.append(RuleImportError(index, tuple(_format_validation_error(e))))
    return RuleImportResult(rules=rules, errors=errors)


def export_rules_to_json(rules: Sequence[Rule]) -> str:
    return json.dumps([dump_rule(r) for r in rules], indent=2, ensure_ascii=False)


def load_rules(data: Any) -> list[Rule]:
    """Strictly validate a decoded JSON list into rules (raises on any error)."""

    return RULE_LIST_ADAPTER.validate_python(data)


__all__ = [
    "MAX_RULE_EXAMPLES",
    "RuleImportError",
    "RuleImportResult",
    "add_rule",
    "apply_match",
    "apply_rule",
    "categorize_transactions_with_rules",
    "categorize_with_rules",
    "delete_rule",
    "detect_conflicts",
    "export_rules_to_json",
    "extract_merchant_name",
    "find_matches",
    "find_rule_conflicts",
    "import_rules_from_json",
    "load_rules",
    "rank_matches",
    "toggle_rule",
    "update_rule",
    "update_rule_stats",
    "validate_rule",
]

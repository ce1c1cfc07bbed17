"""Data models for ``budget_tracker``.

Transactions, rules and audit records are immutable pydantic models. Field
names are snake_case in Python; the serialized form (JSON export, local
store payloads) uses the camelCase names of the original dashboard
(``ruleId``, ``aiCategorized``, ...) via an alias generator, and either form
is accepted on input.

Rules are a tagged union keyed by ``type``: the four text-matching variants
carry a string ``pattern`` while ``amount_range`` carries an
:class:`AmountRange`. Validation happens once at construction so the rule
engine never has to inspect pattern shapes at match time.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Annotated, Any, Literal, NamedTuple

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationInfo,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from .taxonomy import SUBCATEGORIES, UNCATEGORIZED, normalize_subcategory

CategorizedBy = Literal["rule", "ai"]
CreatedBy = Literal["user", "ai"]
ActivityType = Literal["categorization", "recategorization", "rule_generation", "insights"]
ActivityStatus = Literal["success", "error"]

RULE_TYPES: tuple[str, ...] = (
    "description_contains",
    "description_starts_with",
    "description_regex",
    "amount_range",
    "merchant",
)


def utc_now_iso() -> str:
    """Return the current UTC time as an ISO-8601 string (millisecond precision)."""

    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


_FROZEN_CAMEL = ConfigDict(
    frozen=True,
    populate_by_name=True,
    alias_generator=to_camel,
    extra="ignore",
)


# ---------------------------------------------------------------------------
# Transactions
# ---------------------------------------------------------------------------


class Transaction(BaseModel):
    """A single bank/card transaction owned by a sheet.

    ``category`` is one of the enumerated categories, or the
    ``Uncategorized`` placeholder for rows that were never classified.
    ``subcategory`` is normalized into the category's enumeration on
    construction. ``categorized_by`` records which pipeline stage last set
    the category (``None`` for the basic keyword classifier or manual
    edits).
    """

    model_config = _FROZEN_CAMEL

    id: str
    reference_id: str | None = None
    date: str
    description: str
    amount: float
    category: str = UNCATEGORIZED
    subcategory: str | None = None
    source: str = ""
    ai_categorized: bool = False
    ai_reason: str | None = None
    rule_id: str | None = None
    rule_name: str | None = None
    categorized_by: CategorizedBy | None = None
    confidence: float | None = None
    force_rule_generation: bool = False

    @field_validator("category")
    @classmethod
    def _category_known(cls, v: str) -> str:
        s = v.strip()
        if s in SUBCATEGORIES or s == UNCATEGORIZED:
            return s
        raise ValueError(f"unknown category: {v!r}")

    @field_validator("subcategory")
    @classmethod
    def _subcategory_in_category(cls, v: str | None, info: ValidationInfo) -> str | None:
        category = info.data.get("category")
        if not isinstance(category, str):
            return None
        return normalize_subcategory(category, v)

    def replace(self, **changes: Any) -> Transaction:
        """Return a validated copy with ``changes`` applied."""

        return type(self).model_validate({**self.model_dump(), **changes})


class Sheet(BaseModel):
    """A named collection of transactions (one budget)."""

    model_config = _FROZEN_CAMEL

    id: str
    name: str
    transactions: tuple[Transaction, ...] = ()


# ---------------------------------------------------------------------------
# Rules (tagged union on ``type``)
# ---------------------------------------------------------------------------


class AmountRange(BaseModel):
    """Inclusive bounds applied to the absolute transaction amount."""

    model_config = ConfigDict(frozen=True)

    min: float
    max: float

    @model_validator(mode="after")
    def _ordered(self) -> AmountRange:
        if self.min > self.max:
            raise ValueError("amount range min must not exceed max")
        return self


class _RuleBase(BaseModel):
    model_config = _FROZEN_CAMEL

    id: str
    name: str
    category: str
    subcategory: str | None = None
    confidence: float = Field(default=0.9, ge=0.0, le=1.0)
    match_count: int = Field(default=0, ge=0)
    examples: tuple[str, ...] = Field(default=(), max_length=5)
    created_at: str = Field(default_factory=utc_now_iso)
    created_by: CreatedBy = "user"
    enabled: bool = True

    @field_validator("name")
    @classmethod
    def _name_non_empty(cls, v: str) -> str:
        s = v.strip()
        if not s:
            raise ValueError("rule must have a name")
        return s

    @field_validator("category")
    @classmethod
    def _category_enumerated(cls, v: str) -> str:
        s = v.strip()
        if s not in SUBCATEGORIES:
            raise ValueError(f"unknown category: {v!r}")
        return s

    @field_validator("subcategory")
    @classmethod
    def _subcategory_in_category(cls, v: str | None, info: ValidationInfo) -> str | None:
        category = info.data.get("category")
        if not isinstance(category, str):
            return None
        return normalize_subcategory(category, v)

    def replace(self, **changes: Any) -> Rule:
        """Return a validated copy with ``changes`` applied."""

        return parse_rule({**self.model_dump(), **changes})


class _TextPatternRule(_RuleBase):
    pattern: str = Field(min_length=1)


class DescriptionContainsRule(_TextPatternRule):
    type: Literal["description_contains"] = "description_contains"


class DescriptionStartsWithRule(_TextPatternRule):
    type: Literal["description_starts_with"] = "description_starts_with"


class DescriptionRegexRule(_TextPatternRule):
    # The pattern is compiled lazily by the rule engine; an invalid
    # expression is a non-match there rather than a validation error here.
    type: Literal["description_regex"] = "description_regex"


class MerchantRule(_TextPatternRule):
    type: Literal["merchant"] = "merchant"


class AmountRangeRule(_RuleBase):
    type: Literal["amount_range"] = "amount_range"
    pattern: AmountRange


Rule = Annotated[
    DescriptionContainsRule
    | DescriptionStartsWithRule
    | DescriptionRegexRule
    | MerchantRule
    | AmountRangeRule,
    Field(discriminator="type"),
]

RULE_ADAPTER: TypeAdapter[Rule] = TypeAdapter(Rule)
RULE_LIST_ADAPTER: TypeAdapter[list[Rule]] = TypeAdapter(list[Rule])


def parse_rule(data: Mapping[str, Any]) -> Rule:
    """Validate a mapping (camelCase or snake_case keys) into a concrete rule."""

    return RULE_ADAPTER.validate_python(dict(data))


def dump_rule(rule: Rule) -> dict[str, Any]:
    """Serialize a rule with the camelCase field names used in JSON exports."""

    return rule.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True, slots=True)
class RuleMatch:
    """Outcome of evaluating one rule against one transaction (not persisted)."""

    category: str
    subcategory: str | None
    confidence: float
    rule_id: str
    rule_name: str
    created_by: CreatedBy


# ---------------------------------------------------------------------------
# Conflict reporting
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RuleConflict:
    """Per-rule summary of transactions also matched by other enabled rules."""

    rule_id: str
    rule_name: str
    conflicts_with: tuple[str, ...]
    conflict_count: int
    conflicting_transactions: tuple[str, ...]


@dataclass(frozen=True, slots=True)
class ConflictingTransaction:
    transaction: Transaction
    matches: tuple[RuleMatch, ...]


@dataclass(frozen=True, slots=True)
class ConflictReport:
    conflicts: tuple[RuleConflict, ...]
    conflicting_transactions: tuple[ConflictingTransaction, ...]

    @property
    def has_conflicts(self) -> bool:
        return bool(self.conflicts)

    def for_rule(self, rule_id: str) -> RuleConflict | None:
        for conflict in self.conflicts:
            if conflict.rule_id == rule_id:
                return conflict
        return None


@dataclass(frozen=True, slots=True)
class RuleOverlap:
    """How an edited rule overlaps one other rule on the current transactions.

    ``wins`` is True when the edited rule takes precedence over ``rule_id``
    for the overlapping transactions.
    """

    rule_id: str
    rule_name: str
    category: str
    subcategory: str | None
    created_by: CreatedBy
    overlap_count: int
    examples: tuple[str, ...]
    same_category: bool
    wins: bool


# ---------------------------------------------------------------------------
# Audit records
# ---------------------------------------------------------------------------


class ApiRequestLog(BaseModel):
    model_config = _FROZEN_CAMEL

    model: str
    max_tokens: int
    prompt: str


class ApiResponseLog(BaseModel):
    model_config = _FROZEN_CAMEL

    full_text: str
    rules_generated: int = 0
    usage: dict[str, int] | None = None


class ApiCallLog(BaseModel):
    """One language-model request/response pair from a batched operation.

    ``error`` is set when the response came back but could not be parsed;
    such batches contribute no results.
    """

    model_config = _FROZEN_CAMEL

    batch_number: int
    categories: tuple[str, ...] = ()
    request: ApiRequestLog
    response: ApiResponseLog
    error: str | None = None


class RuleGenerationResult(NamedTuple):
    rules: list[Rule]
    api_calls: list[ApiCallLog]


class ActivityLogEntry(BaseModel):
    """Audit trail entry for one AI interaction."""

    model_config = _FROZEN_CAMEL

    id: str
    timestamp: str = Field(default_factory=utc_now_iso)
    type: ActivityType
    status: ActivityStatus
    details: dict[str, Any] = Field(default_factory=dict)


__all__ = [
    "RULE_TYPES",
    "RULE_ADAPTER",
    "RULE_LIST_ADAPTER",
    "ActivityLogEntry",
    "AmountRange",
    "AmountRangeRule",
    "ApiCallLog",
    "ApiRequestLog",
    "ApiResponseLog",
    "CategorizedBy",
    "ConflictReport",
    "ConflictingTransaction",
    "CreatedBy",
    "DescriptionContainsRule",
    "DescriptionRegexRule",
    "DescriptionStartsWithRule",
    "MerchantRule",
    "Rule",
    "RuleConflict",
    "RuleGenerationResult",
    "RuleMatch",
    "RuleOverlap",
    "Sheet",
    "Transaction",
    "dump_rule",
    "parse_rule",
    "utc_now_iso",
]

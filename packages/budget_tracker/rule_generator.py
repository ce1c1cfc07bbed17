"""Propose categorization rules from already-categorized transactions.

Public API:
    - :func:`generate_rules`

Flow:
1. Group categorized transactions by category.
2. Drop rows an existing rule already matches (unless the row has
   ``force_rule_generation`` set).
3. Send the remaining categories to the model in batches of four, each with
   up to 20 examples per category and the list of patterns already known.
4. Validate each proposed rule; the accepted ones join the known patterns
   before the next batch is built.

A batch whose response cannot be parsed is recorded in the audit trail with
its ``error`` set and contributes no rules; later batches still run. SDK
errors propagate and abort the remaining batches.
"""

from __future__ import annotations

import time
from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import ValidationError

from . import llm, prompting
from .errors import InvalidAIResponseError, NoCategorizedDataError
from .logging_setup import get_logger
from .models import (
    ApiCallLog,
    ApiRequestLog,
    ApiResponseLog,
    Rule,
    RuleGenerationResult,
    Transaction,
    parse_rule,
    utc_now_iso,
)
from .progress import ProgressCallback, notify
from .rules import apply_rule
from .taxonomy import UNCATEGORIZED

# ---- Tunables (private) ------------------------------------------------------

_CATEGORIES_PER_BATCH: int = 4
_EXAMPLES_PER_CATEGORY: int = 20
_RULES_PER_CATEGORY: int = 8
_MAX_TOKENS: int = 4096

# Only these keys are taken from a model proposal; metadata is always ours.
_PROPOSAL_FIELDS: tuple[str, ...] = (
    "name",
    "type",
    "pattern",
    "category",
    "subcategory",
    "confidence",
)

_logger = get_logger("budget_tracker.rule_generator")


# ---- Internal helpers --------------------------------------------------------


def _group_by_category(transactions: Sequence[Transaction]) -> dict[str, list[Transaction]]:
    groups: dict[str, list[Transaction]] = {}
    for t in transactions:
        if not t.category or t.category == UNCATEGORIZED:
            continue
        groups.setdefault(t.category, []).append(t)
    return groups


def _uncovered(
    groups: Mapping[str, list[Transaction]], existing_rules: Sequence[Rule]
) -> tuple[dict[str, list[Transaction]], int]:
    """Return the rows no existing rule matches, plus the number ignored."""

    out: dict[str, list[Transaction]] = {}
    ignored = 0
    for category, rows in groups.items():
        kept: list[Transaction] = []
        for t in rows:
            if t.force_rule_generation or not any(
                apply_rule(t, rule) is not None for rule in existing_rules
            ):
                kept.append(t)
            else:
                ignored += 1
        if kept:
            out[category] = kept
    return out, ignored


def _known_pattern(rule_type: str, pattern: Any, category: str) -> dict[str, Any]:
    return {"type": rule_type, "pattern": pattern, "category": category}


def _pattern_of(rule: Rule) -> Any:
    pattern = rule.pattern
    return pattern if isinstance(pattern, str) else pattern.model_dump()


def _category_examples(category: str, rows: Sequence[Transaction]) -> dict[str, Any]:
    return {
        "category": category,
        "count": len(rows),
        "examples": [
            {"description": t.description, "amount": t.amount, "subcategory": t.subcategory}
            for t in rows[:_EXAMPLES_PER_CATEGORY]
        ],
    }


def _validate_proposals(items: Sequence[Any]) -> list[Rule]:
    """Validate raw proposals; invalid entries are dropped with a warning.

    Proposals are checked against the rule model with placeholder metadata;
    final ids and timestamps are assigned once all batches are done.
    """

    out: list[Rule] = []
    for raw in items:
        if not isinstance(raw, Mapping):
            _logger.warning("generate_rules:proposal_not_object entry=%r", raw)
            continue
        try:
            out.append(
                parse_rule(
                    {
                        **{k: raw[k] for k in _PROPOSAL_FIELDS if k in raw},
                        "id": "pending",
                        "match_count": 0,
                        "examples": (),
                        "created_by": "ai",
                        "enabled": True,
                    }
                )
            )
        except ValidationError as e:
            _logger.warning(
                "generate_rules:proposal_invalid name=%r errors=%d",
                raw.get("name"),
                e.error_count(),
            )
    return out


def _enrich(proposals: Sequence[Rule]) -> list[Rule]:
    stamp_ms = int(time.time() * 1000)
    created_at = utc_now_iso()
    return [
        rule.model_copy(update={"id": f"rule_{stamp_ms}_{index}", "created_at": created_at})
        for index, rule in enumerate(proposals)
    ]


# ---- Public API --------------------------------------------------------------


def generate_rules(
    transactions: Sequence[Transaction],
    api_key: str | None,
    existing_rules: Sequence[Rule] = (),
    *,
    on_progress: ProgressCallback | None = None,
    model: str | None = None,
) -> RuleGenerationResult:
    """Ask the model for new rules covering the uncovered categorized rows.

    Returns the enriched rules (``created_by='ai'``, fresh ids, zero stats)
    together with one :class:`~budget_tracker.models.ApiCallLog` per batch
    sent. Raises :class:`~budget_tracker.errors.NoCategorizedDataError` when
    nothing is categorized and
    :class:`~budget_tracker.errors.MissingApiKeyError` when a call is needed
    but no key is available.
    """

    notify(
        on_progress,
        "start",
        total_transactions=len(transactions),
        existing_rules=len(existing_rules),
    )
    groups = _group_by_category(transactions)
    if not groups:
        _logger.warning("generate_rules:no_categorized total=%d", len(transactions))
        raise NoCategorizedDataError()
    notify(
        on_progress,
        "grouped",
        categories=len(groups),
        breakdown={category: len(rows) for category, rows in groups.items()},
    )

    uncovered, ignored = _uncovered(groups, existing_rules)
    notify(
        on_progress,
        "filtered",
        ignored=ignored,
        remaining=sum(len(rows) for rows in uncovered.values()),
    )
    if not uncovered:
        _logger.info("generate_rules:all_covered ignored=%d", ignored)
        return RuleGenerationResult(rules=[], api_calls=[])

    categories = list(uncovered)
    batches = [
        categories[i : i + _CATEGORIES_PER_BATCH]
        for i in range(0, len(categories), _CATEGORIES_PER_BATCH)
    ]
    known: list[dict[str, Any]] = [
        _known_pattern(r.type, _pattern_of(r), r.category) for r in existing_rules
    ]

    key = llm.resolve_api_key(api_key)
    resolved_model = llm.resolve_model(model)
    client = llm.create_client(key)
    proposals: list[Rule] = []
    api_calls: list[ApiCallLog] = []
    for batch_number, batch_categories in enumerate(batches, start=1):
        notify(
            on_progress,
            "batch_request",
            batch_number=batch_number,
            total_batches=len(batches),
            categories=list(batch_categories),
        )
        prompt = prompting.build_rule_generation_prompt(
            [_category_examples(c, uncovered[c]) for c in batch_categories],
            known,
            categories=batch_categories,
            rules_per_category=_RULES_PER_CATEGORY,
        )
        completion = llm.complete(client, prompt, model=resolved_model, max_tokens=_MAX_TOKENS)
        request = ApiRequestLog(model=resolved_model, max_tokens=_MAX_TOKENS, prompt=prompt)

        try:
            raw_items = llm.extract_json_array(completion.text)
        except InvalidAIResponseError as e:
            _logger.warning(
                "generate_rules:batch_unparseable batch=%d error=%s", batch_number, e.reason
            )
            api_calls.append(
                ApiCallLog(
                    batch_number=batch_number,
                    categories=tuple(batch_categories),
                    request=request,
                    response=ApiResponseLog(full_text=completion.text, usage=completion.usage),
                    error=str(e),
                )
            )
            notify(on_progress, "batch_failed", batch_number=batch_number, error=e.reason)
            continue

        batch_rules = _validate_proposals(raw_items)
        api_calls.append(
            ApiCallLog(
                batch_number=batch_number,
                categories=tuple(batch_categories),
                request=request,
                response=ApiResponseLog(
                    full_text=completion.text,
                    rules_generated=len(batch_rules),
                    usage=completion.usage,
                ),
            )
        )
        proposals.extend(batch_rules)
        known = known + [
            _known_pattern(r.type, _pattern_of(r), r.category) for r in batch_rules
        ]
        _logger.info(
            "generate_rules:batch_done batch=%d/%d proposed=%d accepted=%d",
            batch_number,
            len(batches),
            len(raw_items),
            len(batch_rules),
        )
        notify(
            on_progress,
            "batch_done",
            batch_number=batch_number,
            rules_generated=len(batch_rules),
        )

    rules = _enrich(proposals)
    notify(on_progress, "done", total_rules=len(rules), batches=len(batches))
    return RuleGenerationResult(rules=rules, api_calls=api_calls)


__all__ = ["generate_rules"]

"""Batch categorization of transactions through the language model.

Public API:
    - :func:`categorize_with_ai`

Transactions are sent in sequential batches of 50. Each batch prompt numbers
its rows from 1 and the model answers with a JSON array of
``{index, category, subcategory, reason}`` objects. A batch whose response
has no decodable array aborts the whole call with
:class:`~budget_tracker.errors.InvalidAIResponseError`; individual entries
with an unknown category or index leave their row unchanged.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from . import llm, prompting
from .logging_setup import get_logger
from .models import Transaction
from .progress import ProgressCallback, notify
from .taxonomy import OTHER_SUBCATEGORY, is_valid_category

# ---- Tunables (private) ------------------------------------------------------

_BATCH_SIZE: int = 50
_MAX_TOKENS: int = 4096

NO_REASON_PLACEHOLDER = "No reason provided"

_logger = get_logger("budget_tracker.ai_categorizer")


class _AIDecision(BaseModel):
    model_config = ConfigDict(extra="ignore")

    index: int
    category: str
    subcategory: str | None = None
    reason: str | None = None

    @field_validator("category")
    @classmethod
    def _strip(cls, v: str) -> str:
        return v.strip()


def _decisions_by_index(items: Sequence[Any], batch_len: int) -> dict[int, _AIDecision]:
    """Validate raw entries and key them by 1-based index (first entry wins)."""

    out: dict[int, _AIDecision] = {}
    for raw in items:
        if not isinstance(raw, Mapping):
            continue
        try:
            decision = _AIDecision.model_validate(raw)
        except ValidationError:
            _logger.warning("categorize_with_ai:entry_invalid entry=%r", raw)
            continue
        if not 1 <= decision.index <= batch_len:
            _logger.warning("categorize_with_ai:index_out_of_range index=%d", decision.index)
            continue
        if not is_valid_category(decision.category):
            _logger.warning(
                "categorize_with_ai:unknown_category index=%d category=%r",
                decision.index,
                decision.category,
            )
            continue
        out.setdefault(decision.index, decision)
    return out


def _apply_decision(transaction: Transaction, decision: _AIDecision) -> Transaction:
    reason = (decision.reason or "").strip() or NO_REASON_PLACEHOLDER
    return transaction.replace(
        category=decision.category,
        subcategory=decision.subcategory or OTHER_SUBCATEGORY,
        ai_categorized=True,
        ai_reason=reason,
        categorized_by="ai",
        rule_id=None,
        rule_name=None,
        confidence=None,
    )


def categorize_with_ai(
    transactions: Sequence[Transaction],
    api_key: str | None,
    *,
    on_progress: ProgressCallback | None = None,
    model: str | None = None,
) -> list[Transaction]:
    """Categorize ``transactions`` with the language model.

    Returns a new list of the same length and order. Raises
    :class:`~budget_tracker.errors.MissingApiKeyError` when no key is
    available, :class:`~budget_tracker.errors.InvalidAIResponseError` when a
    batch response is malformed; SDK errors propagate unchanged. Any error
    aborts the remaining batches.
    """

    key = llm.resolve_api_key(api_key)
    resolved_model = llm.resolve_model(model)
    results = list(transactions)
    if not results:
        return results

    client = llm.create_client(key)
    total_batches = (len(results) + _BATCH_SIZE - 1) // _BATCH_SIZE
    for batch_index, start in enumerate(range(0, len(results), _BATCH_SIZE)):
        batch = results[start : start + _BATCH_SIZE]
        notify(
            on_progress,
            "ai_batch_request",
            batch_number=batch_index + 1,
            total_batches=total_batches,
            size=len(batch),
        )
        completion = llm.complete(
            client,
            prompting.build_categorization_prompt(batch),
            model=resolved_model,
            max_tokens=_MAX_TOKENS,
        )
        decisions = _decisions_by_index(llm.extract_json_array(completion.text), len(batch))
        for index, decision in decisions.items():
            pos = start + index - 1
            results[pos] = _apply_decision(results[pos], decision)

        _logger.info(
            "categorize_with_ai:batch_done batch=%d/%d size=%d applied=%d",
            batch_index + 1,
            total_batches,
            len(batch),
            len(decisions),
        )
        notify(
            on_progress,
            "ai_batch_done",
            batch_number=batch_index + 1,
            total_batches=total_batches,
            applied=len(decisions),
            usage=completion.usage,
        )
    return results


__all__ = ["NO_REASON_PLACEHOLDER", "categorize_with_ai"]

"""User-facing flows composed from ingest, categorization and rule generation.

Each flow takes the current state (sheet, rules, activity log) as values and
returns the new state; nothing is mutated. AI interactions append a success or
error entry to the activity log. Errors are re-raised after logging, except
in :func:`upload_transactions`, which falls back to keyword classification so
an upload never fails because the model is unavailable.

Note: the activity log is returned on the result objects, so when a flow
raises, the error entry is attached to the exception as ``activity_log``.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from . import llm, prompting
from .activity import append_activity, error_details, new_entry
from .analytics import summarize
from .errors import BudgetTrackerError
from .ingest.csv_import import parse_csv
from .logging_setup import get_logger
from .models import ActivityLogEntry, Rule, Sheet, Transaction
from .orchestrator import categorize_basic, categorize_with_rules_and_ai
from .progress import ProgressCallback, ProgressRecorder
from .rule_generator import generate_rules
from .rules import (
    apply_match,
    categorize_transactions_with_rules,
    categorize_with_rules,
    update_rule_stats,
)

_INSIGHTS_MAX_TOKENS: int = 1500

_logger = get_logger("budget_tracker.workflows")


def _attach_log(exc: BaseException, log: list[ActivityLogEntry]) -> None:
    # Exceptions are the only channel back to the caller when a flow fails.
    exc.activity_log = log  # type: ignore[attr-defined]


def _merge_new(existing: Sequence[Transaction], incoming: Sequence[Transaction]) -> tuple[list[Transaction], int]:
    seen = {t.id for t in existing}
    merged = list(existing)
    skipped = 0
    for t in incoming:
        if t.id in seen:
            skipped += 1
            continue
        seen.add(t.id)
        merged.append(t)
    return merged, skipped


# ---- Upload -----------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class UploadResult:
    sheet: Sheet
    activity_log: list[ActivityLogEntry]
    added: int
    duplicates_in_file: int
    already_present: int
    used_ai: bool
    warning: str | None = None


def upload_transactions(
    sheet: Sheet,
    csv_text: str,
    filename: str,
    rules: Sequence[Rule],
    api_key: str | None,
    activity_log: Sequence[ActivityLogEntry] = (),
    *,
    on_progress: ProgressCallback | None = None,
) -> UploadResult:
    """Parse a CSV upload, categorize it and merge it into ``sheet``.

    Rows whose id already exists in the sheet are skipped. When the AI stage
    fails the non-rule rows are classified with the keyword table instead and
    ``warning`` describes the failure.
    """

    parsed = parse_csv(csv_text, filename)
    log = list(activity_log)
    warning: str | None = None
    used_ai = bool(api_key)

    try:
        categorized = categorize_with_rules_and_ai(
            parsed.transactions, rules, api_key, on_progress=on_progress
        )
        if used_ai:
            log = append_activity(
                log,
                new_entry(
                    "categorization",
                    "success",
                    {"source": filename, "transactionCount": len(categorized)},
                ),
            )
    except Exception as e:  # noqa: BLE001
        # Keep the upload: rule matches still apply, the rest falls back to basic.
        _logger.warning("upload_transactions:ai_failed file=%s error=%s", filename, e.__class__.__name__)
        log = append_activity(
            log,
            new_entry(
                "categorization",
                "error",
                error_details(e, source=filename, transactionCount=len(parsed.transactions)),
            ),
        )
        categorized = _rules_then_basic(parsed.transactions, rules)
        used_ai = False
        warning = f"AI categorization failed; used basic categorization ({e})"

    merged, already_present = _merge_new(sheet.transactions, categorized)
    added = len(merged) - len(sheet.transactions)
    _logger.info(
        "upload_transactions:done file=%s added=%d duplicates=%d already_present=%d used_ai=%s",
        filename,
        added,
        parsed.duplicate_count,
        already_present,
        used_ai,
    )
    return UploadResult(
        sheet=sheet.model_copy(update={"transactions": tuple(merged)}),
        activity_log=log,
        added=added,
        duplicates_in_file=parsed.duplicate_count,
        already_present=already_present,
        used_ai=used_ai,
        warning=warning,
    )


def _rules_then_basic(transactions: Sequence[Transaction], rules: Sequence[Rule]) -> list[Transaction]:
    out: list[Transaction] = []
    for t in transactions:
        match = categorize_with_rules(t, rules)
        out.append(apply_match(t, match) if match is not None else categorize_basic([t])[0])
    return out


# ---- Recategorize -----------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RecategorizeResult:
    sheet: Sheet
    activity_log: list[ActivityLogEntry]


def recategorize_all(
    sheet: Sheet,
    rules: Sequence[Rule],
    api_key: str | None,
    activity_log: Sequence[ActivityLogEntry] = (),
    *,
    on_progress: ProgressCallback | None = None,
) -> RecategorizeResult:
    """Re-run rules plus AI over every transaction in ``sheet``."""

    key = llm.resolve_api_key(api_key)
    log = list(activity_log)
    try:
        updated = categorize_with_rules_and_ai(sheet.transactions, rules, key, on_progress=on_progress)
    except Exception as e:
        log = append_activity(
            log,
            new_entry(
                "recategorization",
                "error",
                error_details(e, transactionCount=len(sheet.transactions)),
            ),
        )
        _attach_log(e, log)
        raise

    log = append_activity(
        log,
        new_entry(
            "recategorization",
            "success",
            {
                "transactionCount": len(updated),
                "ruleMatched": sum(1 for t in updated if t.categorized_by == "rule"),
                "aiCategorized": sum(1 for t in updated if t.categorized_by == "ai"),
            },
        ),
    )
    return RecategorizeResult(
        sheet=sheet.model_copy(update={"transactions": tuple(updated)}), activity_log=log
    )


# ---- Rule proposals ---------------------------------------------------------


@dataclass(frozen=True, slots=True)
class RuleProposalResult:
    proposals: list[Rule]
    activity_log: list[ActivityLogEntry]


def propose_rules(
    sheet: Sheet,
    api_key: str | None,
    existing_rules: Sequence[Rule] = (),
    activity_log: Sequence[ActivityLogEntry] = (),
    *,
    on_progress: ProgressCallback | None = None,
) -> RuleProposalResult:
    """Generate rule proposals for review; nothing is applied yet."""

    recorder = ProgressRecorder()

    def _progress(stage: str, details: dict) -> None:
        recorder(stage, details)
        if on_progress is not None:
            on_progress(stage, details)

    log = list(activity_log)
    try:
        result = generate_rules(
            sheet.transactions, api_key, existing_rules, on_progress=_progress
        )
    except Exception as e:
        log = append_activity(
            log,
            new_entry(
                "rule_generation",
                "error",
                error_details(e, progress=recorder.events),
            ),
        )
        _attach_log(e, log)
        raise

    log = append_activity(
        log,
        new_entry(
            "rule_generation",
            "success",
            {
                "rulesGenerated": len(result.rules),
                "apiCalls": [c.model_dump(mode="json", by_alias=True) for c in result.api_calls],
                "progress": recorder.events,
            },
        ),
    )
    return RuleProposalResult(proposals=result.rules, activity_log=log)


@dataclass(frozen=True, slots=True)
class AcceptRulesResult:
    rules: list[Rule]
    transactions: list[Transaction]


def accept_rules(
    existing_rules: Sequence[Rule],
    accepted: Sequence[Rule],
    transactions: Sequence[Transaction],
    *,
    revisit_tagged: bool = False,
) -> AcceptRulesResult:
    """Add ``accepted`` to the rule set and apply it.

    By default only rows without a ``rule_id`` are re-evaluated, and only
    against the accepted rules, so earlier rule assignments are kept. With
    ``revisit_tagged=True`` every row is re-evaluated against the full rule
    set, so precedence decides between old and new rules.
    """

    known_ids = {r.id for r in existing_rules}
    fresh = [r for r in accepted if r.id not in known_ids]
    all_rules = [*existing_rules, *fresh]

    if revisit_tagged:
        updated = categorize_transactions_with_rules(transactions, all_rules)
    else:
        updated = [
            categorize_transactions_with_rules([t], fresh)[0] if t.rule_id is None else t
            for t in transactions
        ]

    _logger.info(
        "accept_rules:done accepted=%d total_rules=%d revisit_tagged=%s",
        len(fresh),
        len(all_rules),
        revisit_tagged,
    )
    return AcceptRulesResult(rules=update_rule_stats(all_rules, updated), transactions=updated)


# ---- Insights ---------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class InsightsResult:
    text: str
    activity_log: list[ActivityLogEntry]


def generate_insights(
    sheet: Sheet,
    api_key: str | None,
    activity_log: Sequence[ActivityLogEntry] = (),
    *,
    model: str | None = None,
) -> InsightsResult:
    """Ask the model for 3-4 actionable insights about the sheet's spending."""

    key = llm.resolve_api_key(api_key)
    if not sheet.transactions:
        raise BudgetTrackerError("No transactions to analyze")
    resolved_model = llm.resolve_model(model)
    summary = summarize(sheet.transactions)
    prompt = prompting.build_insights_prompt(
        total_income=summary.total_income,
        total_expenses=summary.total_expenses,
        transaction_count=summary.transaction_count,
        category_totals=summary.category_totals,
    )

    log = list(activity_log)
    try:
        completion = llm.complete(
            llm.create_client(key), prompt, model=resolved_model, max_tokens=_INSIGHTS_MAX_TOKENS
        )
    except Exception as e:
        log = append_activity(log, new_entry("insights", "error", error_details(e)))
        _attach_log(e, log)
        raise

    log = append_activity(
        log,
        new_entry(
            "insights",
            "success",
            {
                "request": {"model": resolved_model, "maxTokens": _INSIGHTS_MAX_TOKENS, "prompt": prompt},
                "response": {"fullText": completion.text, "usage": completion.usage},
            },
        ),
    )
    return InsightsResult(text=completion.text, activity_log=log)


__all__ = [
    "AcceptRulesResult",
    "InsightsResult",
    "RecategorizeResult",
    "RuleProposalResult",
    "UploadResult",
    "accept_rules",
    "generate_insights",
    "propose_rules",
    "recategorize_all",
    "upload_transactions",
]

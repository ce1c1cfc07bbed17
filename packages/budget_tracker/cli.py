"""CLI for the ``budget_tracker`` package.

A Typer console interface over the workflows in
:mod:`budget_tracker.workflows`. Environment variables (``ANTHROPIC_API_KEY``,
``BUDGET_TRACKER_DATABASE_URL``, ``BUDGET_TRACKER_MODEL``,
``BUDGET_TRACKER_LOG_LEVEL``) are loaded from a local ``.env`` using
``python-dotenv`` before any command runs. State (sheets, rules, activity log)
lives in the local database managed by ``budget_db``.
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from budget_db.client import init_schema, session_scope
from budget_db.migrate import upgrade as upgrade_schema

from . import persistence
from .analytics import monthly_totals, subcategory_totals, summarize
from .errors import BudgetTrackerError
from .ingest.csv_import import export_csv
from .logging_setup import configure_logging
from .models import ActivityLogEntry, Rule, Sheet
from .rules import (
    delete_rule,
    detect_conflicts,
    export_rules_to_json,
    import_rules_from_json,
    toggle_rule,
    update_rule_stats,
)
from .workflows import (
    accept_rules,
    generate_insights,
    propose_rules,
    recategorize_all,
    upload_transactions,
)


@dataclass(slots=True)
class _Options:
    database_url: str | None
    sheet_id: str


@dataclass(slots=True)
class _State:
    sheet: Sheet
    rules: list[Rule]
    activity_log: list[ActivityLogEntry]


# ---- Small module-level helpers used by CLI commands -------------------------


def _fail(message: str) -> typer.Exit:
    print(f"Error: {message}", file=sys.stderr)
    return typer.Exit(1)


def _opts(ctx: typer.Context) -> _Options:
    opts = ctx.obj
    if not isinstance(opts, _Options):
        opts = _Options(database_url=None, sheet_id="default")
    return opts


def _load_state(opts: _Options) -> _State:
    try:
        init_schema(database_url=opts.database_url)
        with session_scope(database_url=opts.database_url) as session:
            sheet = persistence.load_sheet(session, opts.sheet_id)
            rules = persistence.load_rules(session)
            log = persistence.load_activity_log(session)
    except Exception as e:
        raise _fail(f"failed to open the local store: {e}") from e
    if sheet is None:
        sheet = Sheet(id=opts.sheet_id, name=opts.sheet_id)
    return _State(sheet=sheet, rules=rules, activity_log=log)


def _save_state(
    opts: _Options,
    *,
    sheet: Sheet | None = None,
    rules: list[Rule] | None = None,
    activity_log: list[ActivityLogEntry] | None = None,
) -> None:
    try:
        with session_scope(database_url=opts.database_url) as session:
            if sheet is not None:
                persistence.save_sheet(session, sheet)
            if rules is not None:
                persistence.save_rules(session, rules)
            if activity_log is not None:
                persistence.save_activity_log(session, activity_log)
    except Exception as e:
        raise _fail(f"failed to save to the local store: {e}") from e


def _save_failure_log(opts: _Options, exc: BaseException) -> None:
    log = getattr(exc, "activity_log", None)
    if log is not None:
        _save_state(opts, activity_log=log)


def _api_key() -> str | None:
    return os.getenv("ANTHROPIC_API_KEY") or None


def _print_progress(stage: str, details: Any) -> None:
    batch = details.get("batch_number") if hasattr(details, "get") else None
    suffix = f" (batch {batch})" if batch else ""
    print(f"... {stage}{suffix}", file=sys.stderr)


def _format_rule(rule: Rule) -> str:
    state = "on " if rule.enabled else "off"
    sub = f"/{rule.subcategory}" if rule.subcategory else ""
    return (
        f"[{state}] {rule.id}\t{rule.name}\t{rule.type}:{rule.pattern}\t"
        f"{rule.category}{sub}\tconf={rule.confidence:.2f}\tby={rule.created_by}\t"
        f"matches={rule.match_count}"
    )


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Categorize bank/card transactions with rules and Claude. "
        "Loads ANTHROPIC_API_KEY and BUDGET_TRACKER_DATABASE_URL from a local .env."
    ),
)
rules_app = typer.Typer(no_args_is_help=True, help="Manage categorization rules.")
app.add_typer(rules_app, name="rules")

CSV_PATH_ARGUMENT = typer.Argument(help="Path to a bank/card CSV export", dir_okay=False)
OUTPUT_OPTION: OptionInfo = typer.Option(
    None, "--output", "-o", help="Write to this file instead of stdout.", dir_okay=False
)


@app.callback()
def _root(
    ctx: typer.Context,
    *,
    database_url: str | None = typer.Option(
        None, help="Override BUDGET_TRACKER_DATABASE_URL (falls back to env vars)."
    ),
    sheet: str = typer.Option("default", "--sheet", help="Budget sheet id to operate on."),
    log_level: str | None = typer.Option(
        None, help="Log level (DEBUG, INFO, ...); overrides BUDGET_TRACKER_LOG_LEVEL."
    ),
) -> None:
    """Load ``.env`` from the current directory and configure logging."""

    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging(log_level)
    ctx.obj = _Options(database_url=database_url, sheet_id=sheet)


@app.command("init-db")
def init_db_cmd(ctx: typer.Context) -> None:
    """Create or upgrade the local store by running the Alembic migrations."""

    opts = _opts(ctx)
    try:
        upgrade_schema(database_url=opts.database_url)
    except Exception as e:
        raise _fail(f"migration failed: {e}") from e
    print("Database is up to date.")


@app.command("import-csv")
def import_csv_cmd(
    ctx: typer.Context,
    csv_path: Annotated[Path, CSV_PATH_ARGUMENT],
) -> None:
    """Import a CSV into the sheet; rules first, then AI (or keyword fallback)."""

    opts = _opts(ctx)
    try:
        content = csv_path.read_text(encoding="utf-8-sig")
    except OSError as e:
        raise _fail(f"cannot read {csv_path}: {e}") from e

    state = _load_state(opts)
    try:
        result = upload_transactions(
            state.sheet,
            content,
            csv_path.name,
            state.rules,
            _api_key(),
            state.activity_log,
            on_progress=_print_progress,
        )
    except ValueError as e:
        raise _fail(f"failed to parse CSV: {e}") from e

    rules = update_rule_stats(state.rules, result.sheet.transactions)
    _save_state(opts, sheet=result.sheet, rules=rules, activity_log=result.activity_log)
    if result.warning:
        print(f"Warning: {result.warning}", file=sys.stderr)
    method = "AI" if result.used_ai else "basic"
    print(
        f"Imported {result.added} transactions ({method} categorization); "
        f"skipped {result.duplicates_in_file} duplicate rows and "
        f"{result.already_present} already in the sheet."
    )


@app.command("recategorize")
def recategorize_cmd(ctx: typer.Context) -> None:
    """Re-run rules and AI over every transaction in the sheet."""

    opts = _opts(ctx)
    state = _load_state(opts)
    try:
        result = recategorize_all(
            state.sheet, state.rules, _api_key(), state.activity_log, on_progress=_print_progress
        )
    except BudgetTrackerError as e:
        _save_failure_log(opts, e)
        raise _fail(str(e)) from e
    except Exception as e:
        _save_failure_log(opts, e)
        raise _fail(f"recategorization failed: {e}") from e

    _save_state(opts, sheet=result.sheet, activity_log=result.activity_log)
    print(f"Re-categorized {len(result.sheet.transactions)} transactions.")


@app.command("generate-rules")
def generate_rules_cmd(
    ctx: typer.Context,
    *,
    accept: bool = typer.Option(False, help="Accept every proposed rule immediately."),
    revisit_tagged: bool = typer.Option(
        False, help="When accepting, re-evaluate rows already tagged by a rule."
    ),
) -> None:
    """Propose new rules from the sheet's categorized transactions."""

    opts = _opts(ctx)
    state = _load_state(opts)
    try:
        result = propose_rules(
            state.sheet,
            _api_key(),
            state.rules,
            state.activity_log,
            on_progress=_print_progress,
        )
    except BudgetTrackerError as e:
        _save_failure_log(opts, e)
        raise _fail(str(e)) from e
    except Exception as e:
        _save_failure_log(opts, e)
        raise _fail(f"rule generation failed: {e}") from e

    for rule in result.proposals:
        print(_format_rule(rule))
    if not result.proposals:
        print("No new rules proposed.")

    if accept and result.proposals:
        accepted = accept_rules(
            state.rules,
            result.proposals,
            state.sheet.transactions,
            revisit_tagged=revisit_tagged,
        )
        sheet = state.sheet.model_copy(update={"transactions": tuple(accepted.transactions)})
        _save_state(opts, sheet=sheet, rules=accepted.rules, activity_log=result.activity_log)
        print(f"Accepted {len(result.proposals)} rules.")
    else:
        _save_state(opts, activity_log=result.activity_log)


@rules_app.command("list")
def rules_list_cmd(ctx: typer.Context) -> None:
    state = _load_state(_opts(ctx))
    for rule in state.rules:
        print(_format_rule(rule))


@rules_app.command("import")
def rules_import_cmd(
    ctx: typer.Context,
    json_path: Annotated[Path, typer.Argument(help="JSON file with an array of rules")],
) -> None:
    """Append rules from a JSON export; invalid entries are reported and skipped."""

    opts = _opts(ctx)
    try:
        text = json_path.read_text(encoding="utf-8")
    except OSError as e:
        raise _fail(f"cannot read {json_path}: {e}") from e
    result = import_rules_from_json(text)
    for err in result.errors:
        where = f"rule {err.index}" if err.index is not None else "file"
        print(f"Warning: {where}: {'; '.join(err.errors)}", file=sys.stderr)

    state = _load_state(opts)
    known = {r.id for r in state.rules}
    merged = state.rules + [r for r in result.rules if r.id not in known]
    _save_state(opts, rules=update_rule_stats(merged, state.sheet.transactions))
    print(f"Imported {len(merged) - len(state.rules)} rules.")
    if not result.success:
        raise typer.Exit(1)


@rules_app.command("export")
def rules_export_cmd(
    ctx: typer.Context,
    output: Path | None = OUTPUT_OPTION,
) -> None:
    state = _load_state(_opts(ctx))
    text = export_rules_to_json(state.rules)
    if output is None:
        print(text)
    else:
        output.write_text(text + "\n", encoding="utf-8")


@rules_app.command("toggle")
def rules_toggle_cmd(
    ctx: typer.Context,
    rule_id: Annotated[str, typer.Argument(help="Rule id")],
) -> None:
    opts = _opts(ctx)
    state = _load_state(opts)
    try:
        rules = toggle_rule(state.rules, rule_id)
    except KeyError as e:
        raise _fail(str(e)) from e
    _save_state(opts, rules=rules)


@rules_app.command("delete")
def rules_delete_cmd(
    ctx: typer.Context,
    rule_id: Annotated[str, typer.Argument(help="Rule id")],
) -> None:
    opts = _opts(ctx)
    state = _load_state(opts)
    try:
        rules = delete_rule(state.rules, rule_id)
    except KeyError as e:
        raise _fail(str(e)) from e
    _save_state(opts, rules=rules)


@app.command("conflicts")
def conflicts_cmd(ctx: typer.Context) -> None:
    """List rules that match the same transactions."""

    state = _load_state(_opts(ctx))
    report = detect_conflicts(state.rules, state.sheet.transactions)
    if not report.has_conflicts:
        print("No rule conflicts.")
        return
    for conflict in report.conflicts:
        print(
            f"{conflict.rule_id}\t{conflict.rule_name}\t"
            f"conflicts_with={','.join(conflict.conflicts_with)}\t"
            f"transactions={conflict.conflict_count}"
        )


@app.command("insights")
def insights_cmd(ctx: typer.Context) -> None:
    """Ask Claude for 3-4 actionable spending insights."""

    opts = _opts(ctx)
    state = _load_state(opts)
    try:
        result = generate_insights(state.sheet, _api_key(), state.activity_log)
    except BudgetTrackerError as e:
        _save_failure_log(opts, e)
        raise _fail(str(e)) from e
    except Exception as e:
        _save_failure_log(opts, e)
        raise _fail(f"insights failed: {e}") from e
    _save_state(opts, activity_log=result.activity_log)
    print(result.text)


@app.command("summary")
def summary_cmd(
    ctx: typer.Context,
    category: str | None = typer.Option(None, help="Break down one category by subcategory."),
) -> None:
    state = _load_state(_opts(ctx))
    summary = summarize(state.sheet.transactions)
    print(f"Transactions:\t{summary.transaction_count}")
    print(f"Income:\t{summary.total_income:.2f}")
    print(f"Expenses:\t{summary.total_expenses:.2f}")
    print(f"Net:\t{summary.net_balance:.2f}")
    for name, amount in summary.category_totals.items():
        print(f"  {name}\t{amount:.2f}")
    if category:
        print(f"{category} by subcategory:")
        for name, amount in subcategory_totals(state.sheet.transactions, category).items():
            print(f"  {name}\t{amount:.2f}")
    for month in monthly_totals(state.sheet.transactions):
        print(f"{month.month}\texpenses={month.expenses:.2f}\tincome={month.income:.2f}")


@app.command("export-csv")
def export_csv_cmd(
    ctx: typer.Context,
    output: Path | None = OUTPUT_OPTION,
) -> None:
    state = _load_state(_opts(ctx))
    text = export_csv(state.sheet.transactions)
    if output is None:
        sys.stdout.write(text)
    else:
        output.write_text(text, encoding="utf-8")


@app.command("activity")
def activity_cmd(
    ctx: typer.Context,
    limit: int = typer.Option(20, min=1, help="Number of entries to show (newest first)."),
) -> None:
    state = _load_state(_opts(ctx))
    for entry in state.activity_log[:limit]:
        print(f"{entry.timestamp}\t{entry.type}\t{entry.status}\t{entry.id}")


if __name__ == "__main__":  # pragma: no cover
    app()

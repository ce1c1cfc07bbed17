"""Remote spreadsheet storage boundary.

Only the row layout the app reads and writes is defined here; the transport
(an authenticated spreadsheet client) is supplied by the caller through the
:class:`SpreadsheetGateway` protocol.

Session lifecycle
-----------------
``RemoteSession`` makes the access-token state explicit::

    initialized --sign_in--> signed_in --(expiry)--> expired
                                 \\--sign_out--> signed_out

Tokens are treated as expired five minutes before their actual expiry, and
every push/pull checks the session first.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Protocol

from pydantic import ValidationError

from .errors import MissingSpreadsheetError, NotSignedInError, SessionExpiredError
from .logging_setup import get_logger
from .models import AmountRangeRule, Rule, Transaction, parse_rule

_logger = get_logger("budget_tracker.remote")

RULES_TAB = "Rules"
TRANSACTIONS_TAB = "Transactions"

RULE_COLUMNS: tuple[str, ...] = (
    "ID",
    "Name",
    "Type",
    "Pattern",
    "Category",
    "Subcategory",
    "Confidence",
    "Match Count",
    "Examples",
    "Created At",
    "Created By",
    "Enabled",
)

TRANSACTION_COLUMNS: tuple[str, ...] = (
    "Date",
    "Description",
    "Amount",
    "Category",
    "Subcategory",
    "Source",
    "AI Categorized",
    "AI Reason",
    "Reference ID",
    "Rule ID",
    "ID",
)

DEFAULT_TOKEN_LIFETIME = timedelta(seconds=3600)
EXPIRY_MARGIN = timedelta(minutes=5)


# ---- Row codecs ---------------------------------------------------------------


def rule_to_row(rule: Rule) -> list[str]:
    pattern = (
        json.dumps(rule.pattern.model_dump()) if isinstance(rule, AmountRangeRule) else rule.pattern
    )
    return [
        rule.id,
        rule.name,
        rule.type,
        pattern,
        rule.category,
        rule.subcategory or "",
        str(rule.confidence),
        str(rule.match_count),
        json.dumps(list(rule.examples)),
        rule.created_at,
        rule.created_by,
        "TRUE" if rule.enabled else "FALSE",
    ]


def _padded(row: Sequence[str], width: int) -> list[str]:
    return [*row, *([""] * (width - len(row)))][:width]


def rule_from_row(row: Sequence[str]) -> Rule:
    """Decode a rules-tab row; raises ``ValueError`` for invalid rows."""

    (
        rule_id,
        name,
        rule_type,
        pattern_cell,
        category,
        subcategory,
        confidence,
        match_count,
        examples_cell,
        created_at,
        created_by,
        enabled,
    ) = _padded(row, len(RULE_COLUMNS))

    pattern: object = pattern_cell
    if rule_type == "amount_range":
        try:
            pattern = json.loads(pattern_cell)
        except json.JSONDecodeError as e:
            raise ValueError(f"amount_range pattern is not JSON: {pattern_cell!r}") from e
    try:
        examples = json.loads(examples_cell or "[]")
    except json.JSONDecodeError:
        examples = []
    try:
        count = int(match_count or 0)
    except ValueError:
        count = 0

    data: dict[str, object] = {
        "id": rule_id,
        "name": name,
        "type": rule_type,
        "pattern": pattern,
        "category": category,
        "subcategory": subcategory or None,
        "confidence": float(confidence) if confidence else 0.9,
        "match_count": count,
        "examples": examples if isinstance(examples, list) else [],
        "created_by": created_by or "user",
        "enabled": enabled.strip().upper() == "TRUE",
    }
    if created_at:
        data["created_at"] = created_at
    return parse_rule(data)


def transaction_to_row(t: Transaction) -> list[str]:
    return [
        t.date,
        t.description,
        str(t.amount),
        t.category,
        t.subcategory or "",
        t.source,
        "Yes" if t.ai_categorized else "No",
        t.ai_reason or "",
        t.reference_id or "",
        t.rule_id or "",
        t.id,
    ]


def transaction_from_row(row: Sequence[str], index: int = 0) -> Transaction:
    """Decode a transactions-tab row; rows without an id get a positional one."""

    (
        date,
        description,
        amount,
        category,
        subcategory,
        source,
        ai_categorized,
        ai_reason,
        reference_id,
        rule_id,
        tx_id,
    ) = _padded(row, len(TRANSACTION_COLUMNS))
    ai = ai_categorized.strip().lower() == "yes"
    return Transaction(
        id=tx_id or reference_id or f"{date}-{description}-{amount}-{index}",
        reference_id=reference_id or None,
        date=date,
        description=description,
        amount=float(amount),
        category=category,
        subcategory=subcategory or None,
        source=source,
        ai_categorized=ai,
        ai_reason=ai_reason or None,
        rule_id=rule_id or None,
        categorized_by="rule" if rule_id else ("ai" if ai else None),
    )


# ---- Session ------------------------------------------------------------------


class SessionState(str, Enum):
    INITIALIZED = "initialized"
    SIGNED_IN = "signed_in"
    EXPIRED = "expired"
    SIGNED_OUT = "signed_out"


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class RemoteSession:
    """Explicit access-token state for the remote spreadsheet."""

    state: SessionState = SessionState.INITIALIZED
    access_token: str | None = None
    expires_at: datetime | None = None

    def sign_in(
        self,
        access_token: str,
        expires_in: timedelta | None = None,
        *,
        now: datetime | None = None,
    ) -> None:
        self.access_token = access_token
        self.expires_at = (now or _utcnow()) + (expires_in or DEFAULT_TOKEN_LIFETIME)
        self.state = SessionState.SIGNED_IN
        _logger.info("remote_session:signed_in expires_at=%s", self.expires_at.isoformat())

    def sign_out(self) -> None:
        self.access_token = None
        self.expires_at = None
        self.state = SessionState.SIGNED_OUT

    def is_signed_in(self, now: datetime | None = None) -> bool:
        """True while the token is usable; moves the session to ``expired`` otherwise."""

        if self.state is not SessionState.SIGNED_IN or self.expires_at is None:
            return False
        if (now or _utcnow()) >= self.expires_at - EXPIRY_MARGIN:
            self.access_token = None
            self.state = SessionState.EXPIRED
            _logger.info("remote_session:expired")
            return False
        return True

    def ensure_valid(self, now: datetime | None = None) -> str:
        """Return the access token or raise when the session cannot be used."""

        if self.is_signed_in(now):
            assert self.access_token is not None
            return self.access_token
        if self.state is SessionState.EXPIRED:
            raise SessionExpiredError("Token expired. Please sign in again.")
        raise NotSignedInError()


# ---- Gateway and push/pull ----------------------------------------------------


class SpreadsheetGateway(Protocol):
    def read_rows(self, spreadsheet_id: str, tab: str, access_token: str) -> list[list[str]]:
        """Return the data rows of ``tab`` (header excluded)."""
        ...

    def write_rows(
        self,
        spreadsheet_id: str,
        tab: str,
        header: Sequence[str],
        rows: Sequence[Sequence[str]],
        access_token: str,
    ) -> None:
        """Replace the contents of ``tab`` with ``header`` plus ``rows``."""
        ...


@dataclass(slots=True)
class InMemoryGateway:
    """Gateway backed by a dict; used for offline runs and tests."""

    tabs: dict[tuple[str, str], list[list[str]]] = field(default_factory=dict)

    def read_rows(self, spreadsheet_id: str, tab: str, access_token: str) -> list[list[str]]:
        return [list(r) for r in self.tabs.get((spreadsheet_id, tab), [])[1:]]

    def write_rows(
        self,
        spreadsheet_id: str,
        tab: str,
        header: Sequence[str],
        rows: Sequence[Sequence[str]],
        access_token: str,
    ) -> None:
        self.tabs[(spreadsheet_id, tab)] = [list(header), *[list(r) for r in rows]]


def _checked(spreadsheet_id: str | None, session: RemoteSession) -> tuple[str, str]:
    if not spreadsheet_id:
        raise MissingSpreadsheetError()
    return spreadsheet_id, session.ensure_valid()


def push_rules(
    gateway: SpreadsheetGateway,
    spreadsheet_id: str | None,
    session: RemoteSession,
    rules: Sequence[Rule],
) -> None:
    sid, token = _checked(spreadsheet_id, session)
    gateway.write_rows(sid, RULES_TAB, RULE_COLUMNS, [rule_to_row(r) for r in rules], token)
    _logger.info("remote:push_rules count=%d", len(rules))


def pull_rules(
    gateway: SpreadsheetGateway, spreadsheet_id: str | None, session: RemoteSession
) -> list[Rule]:
    """Read the rules tab; rows that fail validation are skipped with a warning."""

    sid, token = _checked(spreadsheet_id, session)
    rules: list[Rule] = []
    for i, row in enumerate(gateway.read_rows(sid, RULES_TAB, token)):
        try:
            rules.append(rule_from_row(row))
        except (ValueError, ValidationError) as e:
            _logger.warning("remote:pull_rules_row_invalid row=%d error=%s", i + 2, e)
    return rules


def push_transactions(
    gateway: SpreadsheetGateway,
    spreadsheet_id: str | None,
    session: RemoteSession,
    transactions: Sequence[Transaction],
) -> None:
    sid, token = _checked(spreadsheet_id, session)
    gateway.write_rows(
        sid,
        TRANSACTIONS_TAB,
        TRANSACTION_COLUMNS,
        [transaction_to_row(t) for t in transactions],
        token,
    )
    _logger.info("remote:push_transactions count=%d", len(transactions))


def pull_transactions(
    gateway: SpreadsheetGateway, spreadsheet_id: str | None, session: RemoteSession
) -> list[Transaction]:
    sid, token = _checked(spreadsheet_id, session)
    out: list[Transaction] = []
    for i, row in enumerate(gateway.read_rows(sid, TRANSACTIONS_TAB, token)):
        try:
            out.append(transaction_from_row(row, i))
        except (ValueError, ValidationError) as e:
            _logger.warning("remote:pull_transactions_row_invalid row=%d error=%s", i + 2, e)
    return out


__all__ = [
    "RULE_COLUMNS",
    "TRANSACTION_COLUMNS",
    "InMemoryGateway",
    "RemoteSession",
    "SessionState",
    "SpreadsheetGateway",
    "pull_rules",
    "pull_transactions",
    "push_rules",
    "push_transactions",
    "rule_from_row",
    "rule_to_row",
    "transaction_from_row",
    "transaction_to_row",
]

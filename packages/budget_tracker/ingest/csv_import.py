"""Parse bank/card CSV exports into :class:`~budget_tracker.models.Transaction`.

Column detection
----------------
The first row is the header. Columns are located by keyword (lower-cased,
quotes stripped):

- date: header contains ``date``
- description: ``description``, ``merchant`` or ``name``
- amount: ``amount``, ``debit`` or ``credit``
- reference (optional): ``reference``, ``ref``, ``transaction id``,
  ``trans id``, ``confirmation``, ``check`` or ``id`` (but not ``card``)

When any of date/description/amount is missing, rows are read positionally:
date first, description second (third when the second is blank), amount the
last numeric cell.

Deduplication
-------------
Within one file a row is dropped when its key was already seen. The key is
``ref:<reference>`` when a reference is present, otherwise a SHA-256 digest of
``date|description.lower()|abs(amount) to 2dp``. Transaction ids derive from
the same key so re-importing a file yields the same ids.
"""

from __future__ import annotations

import csv
import hashlib
import io
import re
from collections.abc import Iterable, Sequence
from datetime import datetime
from os import PathLike
from pathlib import Path
from typing import NamedTuple

from .. import basic
from ..logging_setup import get_logger
from ..models import Transaction

_logger = get_logger("budget_tracker.ingest.csv_import")

EXPORT_HEADERS: tuple[str, ...] = (
    "Date",
    "Description",
    "Amount",
    "Category",
    "Subcategory",
    "Source",
    "AI Categorized",
    "AI Reason",
    "Reference ID",
)

_ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_MDY_RE = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})$")
_NON_NUMERIC_RE = re.compile(r"[^0-9.\-]")

_MIN_DATE_CHARS = 6


class ParsedUpload(NamedTuple):
    transactions: list[Transaction]
    duplicate_count: int


class _Columns(NamedTuple):
    date: int
    description: int
    amount: int
    reference: int


def normalize_date(value: str | None) -> str | None:
    """Normalize ``value`` to ``YYYY-MM-DD``.

    Accepts ISO dates, ``M/D/YYYY`` and ``M-D-YYYY``, then ``MM/DD/YY``.
    Unparseable input is returned stripped; blank input yields ``None``.
    """

    if value is None:
        return None
    s = value.strip()
    if not s:
        return None
    if _ISO_DATE_RE.match(s):
        return s
    m = _MDY_RE.match(s)
    if m:
        month, day, year = m.groups()
        return f"{year}-{int(month):02d}-{int(day):02d}"
    try:
        return datetime.strptime(s, "%m/%d/%y").date().isoformat()
    except ValueError:
        return s


def _find(headers: Sequence[str], *keywords: str, exclude: Iterable[int] = ()) -> int:
    skip = set(exclude)
    for i, h in enumerate(headers):
        if i in skip:
            continue
        if any(k in h for k in keywords):
            return i
    return -1


def _detect_columns(header_row: Sequence[str]) -> _Columns:
    headers = [h.strip().strip("'\"").lower() for h in header_row]
    date = _find(headers, "date")
    description = _find(headers, "description", "merchant", "name")
    amount = _find(headers, "amount", "debit", "credit")
    taken = [i for i in (date, description, amount) if i != -1]
    reference = _find(
        headers,
        "reference",
        "ref",
        "transaction id",
        "trans id",
        "confirmation",
        "check",
        exclude=taken,
    )
    if reference == -1:
        reference = next(
            (
                i
                for i, h in enumerate(headers)
                if i not in taken and "id" in h and "card" not in h
            ),
            -1,
        )
    return _Columns(date, description, amount, reference)


def _parse_amount(value: str | None) -> float | None:
    if value is None:
        return None
    cleaned = _NON_NUMERIC_RE.sub("", value)
    if not cleaned:
        return None
    try:
        return float(cleaned)
    except ValueError:
        return None


def _cell(cells: Sequence[str], index: int) -> str | None:
    if 0 <= index < len(cells):
        return cells[index].strip()
    return None


def _content_key(date: str, description: str, amount: float) -> str:
    raw = f"{date}|{description.lower().strip()}|{abs(amount):.2f}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _read_row(
    cells: Sequence[str], cols: _Columns
) -> tuple[str | None, str | None, float | None, str | None]:
    if cols.date != -1 and cols.description != -1 and cols.amount != -1:
        reference = _cell(cells, cols.reference) if cols.reference != -1 else None
        return (
            _cell(cells, cols.date),
            _cell(cells, cols.description),
            _parse_amount(_cell(cells, cols.amount)),
            reference or None,
        )

    description = _cell(cells, 1) or _cell(cells, 2) or "Unknown"
    amount: float | None = None
    for value in reversed(cells):
        amount = _parse_amount(value)
        if amount is not None:
            break
    return _cell(cells, 0), description, amount, None


def parse_csv(content: str, filename: str) -> ParsedUpload:
    """Parse CSV text into transactions classified by the keyword table.

    Raises ``ValueError`` when the file has no data rows or no row yields a
    valid transaction.
    """

    rows = [r for r in csv.reader(io.StringIO(content)) if any(c.strip() for c in r)]
    if len(rows) < 2:
        raise ValueError("CSV file must have at least a header row and one data row")

    cols = _detect_columns(rows[0])
    _logger.info(
        "parse_csv:columns file=%s date=%d description=%d amount=%d reference=%d",
        filename,
        cols.date,
        cols.description,
        cols.amount,
        cols.reference,
    )

    seen: set[str] = set()
    duplicates = 0
    out: list[Transaction] = []
    for cells in rows[1:]:
        if len(cells) < 3:
            continue
        date_raw, description, amount, reference = _read_row(cells, cols)
        if not date_raw or len(date_raw) < _MIN_DATE_CHARS or amount is None:
            continue
        date = normalize_date(date_raw) or date_raw
        description = description or "Unknown Transaction"

        digest = _content_key(date, description, amount)
        key = f"ref:{reference}" if reference else digest
        if key in seen:
            duplicates += 1
            continue
        seen.add(key)

        classification = basic.classify(description)
        out.append(
            Transaction(
                id=reference or f"tx_{digest[:16]}",
                reference_id=reference,
                date=date,
                description=description,
                amount=amount,
                category=classification.category,
                subcategory=classification.subcategory,
                source=filename,
            )
        )

    if duplicates:
        _logger.info("parse_csv:duplicates_skipped file=%s count=%d", filename, duplicates)
    if not out:
        raise ValueError("No valid transactions found in CSV file")
    return ParsedUpload(transactions=out, duplicate_count=duplicates)


def parse_csv_file(path: str | PathLike[str]) -> ParsedUpload:
    p = Path(path)
    with p.open(encoding="utf-8-sig", newline="") as f:
        return parse_csv(f.read(), p.name)


def export_csv(transactions: Iterable[Transaction]) -> str:
    """Render transactions as CSV text with the export column order."""

    buf = io.StringIO()
    writer = csv.writer(buf, lineterminator="\n")
    writer.writerow(EXPORT_HEADERS)
    for t in transactions:
        writer.writerow(
            [
                t.date,
                t.description,
                t.amount,
                t.category,
                t.subcategory or "",
                t.source,
                "Yes" if t.ai_categorized else "No",
                t.ai_reason or "",
                t.reference_id or "",
            ]
        )
    return buf.getvalue()


__all__ = ["EXPORT_HEADERS", "ParsedUpload", "export_csv", "normalize_date", "parse_csv", "parse_csv_file"]

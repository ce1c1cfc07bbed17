"""CSV ingestion and export for bank/card statement files."""

from __future__ import annotations

from .csv_import import (
    EXPORT_HEADERS,
    ParsedUpload,
    export_csv,
    normalize_date,
    parse_csv,
    parse_csv_file,
)

__all__ = [
    "EXPORT_HEADERS",
    "ParsedUpload",
    "export_csv",
    "normalize_date",
    "parse_csv",
    "parse_csv_file",
]

"""Exception types raised by ``budget_tracker``.

Configuration problems (missing credentials or resources) are surfaced
immediately and never retried. Malformed model output is a ``ValueError``
subtype so callers that already guard parsing with ``except ValueError``
keep working. Upstream SDK/network exceptions are not wrapped; they
propagate to the caller as raised by the client library.
"""

from __future__ import annotations


class BudgetTrackerError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(BudgetTrackerError):
    """A required credential or resource was not supplied."""


class MissingApiKeyError(ConfigurationError):
    def __init__(self, message: str = "API key is required") -> None:
        super().__init__(message)


class MissingSpreadsheetError(ConfigurationError):
    def __init__(self, message: str = "No spreadsheet is configured") -> None:
        super().__init__(message)


class NotSignedInError(ConfigurationError):
    def __init__(self, message: str = "Remote storage session is not signed in") -> None:
        super().__init__(message)


class SessionExpiredError(ConfigurationError):
    def __init__(self, message: str = "Remote storage session has expired") -> None:
        super().__init__(message)


class NoCategorizedDataError(BudgetTrackerError, ValueError):
    """Rule generation needs at least one categorized transaction."""

    def __init__(
        self,
        message: str = (
            "No categorized transactions found. Categorize some transactions first "
            "(e.g. re-categorize all)."
        ),
    ) -> None:
        super().__init__(message)


class InvalidAIResponseError(BudgetTrackerError, ValueError):
    """The model response did not contain the JSON array we asked for.

    ``preview`` holds the first characters of the raw response text for
    diagnostics.
    """

    PREVIEW_CHARS = 200

    def __init__(self, reason: str, raw_text: str | None = None) -> None:
        self.reason = reason
        self.preview = (raw_text or "")[: self.PREVIEW_CHARS]
        message = f"Invalid response format from AI: {reason}"
        if raw_text is not None:
            message += f". Response preview: {self.preview}..."
        super().__init__(message)


__all__ = [
    "BudgetTrackerError",
    "ConfigurationError",
    "MissingApiKeyError",
    "MissingSpreadsheetError",
    "NotSignedInError",
    "SessionExpiredError",
    "NoCategorizedDataError",
    "InvalidAIResponseError",
]

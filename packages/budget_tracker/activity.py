"""Activity log of AI interactions (newest first, capped)."""

from __future__ import annotations

import traceback
import uuid
from collections.abc import Mapping, Sequence
from typing import Any

from .models import ActivityLogEntry, ActivityStatus, ActivityType

MAX_ACTIVITY_ENTRIES = 100


def new_entry(
    type: ActivityType,
    status: ActivityStatus,
    details: Mapping[str, Any] | None = None,
) -> ActivityLogEntry:
    return ActivityLogEntry(
        id=f"act_{uuid.uuid4().hex[:12]}",
        type=type,
        status=status,
        details=dict(details or {}),
    )


def error_details(exc: BaseException, **extra: Any) -> dict[str, Any]:
    """Details mapping for a failed operation: message, class and traceback."""

    return {
        **extra,
        "error": str(exc),
        "errorType": exc.__class__.__name__,
        "stack": "".join(traceback.format_exception(exc)),
    }


def append_activity(
    log: Sequence[ActivityLogEntry], entry: ActivityLogEntry
) -> list[ActivityLogEntry]:
    """Return a new log with ``entry`` first, trimmed to the newest 100."""

    return [entry, *log][:MAX_ACTIVITY_ENTRIES]


__all__ = ["MAX_ACTIVITY_ENTRIES", "append_activity", "error_details", "new_entry"]

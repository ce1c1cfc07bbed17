"""Progress reporting for multi-step operations.

Long-running calls accept an optional ``on_progress(stage, details)``
callable and invoke it synchronously between steps. ``stage`` is a short
machine-friendly token (``"batch_request"``); ``details`` is a plain mapping
suitable for JSON serialization so the caller can route it to a UI, a log
file, or the activity log.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from typing import Any

type ProgressCallback = Callable[[str, Mapping[str, Any]], None]


def notify(on_progress: ProgressCallback | None, stage: str, **details: Any) -> None:
    if on_progress is not None:
        on_progress(stage, details)


class ProgressRecorder:
    """Collects progress events in order; handy for tests and audit trails."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def __call__(self, stage: str, details: Mapping[str, Any]) -> None:
        self.events.append((stage, dict(details)))

    def stages(self) -> list[str]:
        return [stage for stage, _ in self.events]


__all__ = ["ProgressCallback", "ProgressRecorder", "notify"]

"""Pytest configuration for test isolation.

Puts the workspace sources (``packages/`` and ``libs/db/src``) and the repo
root on ``sys.path`` so tests run against the working tree without an
install, and strips the environment variables the package reads so a
developer's ``.env`` or shell never leaks into a test run.
"""

from __future__ import annotations

import sys
from pathlib import Path

import pytest

_ROOT = Path(__file__).resolve().parents[1]
_SRC_DIRS = [_ROOT / "packages", _ROOT / "libs" / "db" / "src", _ROOT]
sys.path[:0] = [str(p) for p in _SRC_DIRS if str(p) not in sys.path]

_ENV_VARS = (
    "ANTHROPIC_API_KEY",
    "BUDGET_TRACKER_MODEL",
    "BUDGET_TRACKER_DATABASE_URL",
    "DATABASE_URL",
    "BUDGET_TRACKER_LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)

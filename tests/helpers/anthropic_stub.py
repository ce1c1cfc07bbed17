"""Test helpers to stub the Anthropic Messages client used by ``budget_tracker.llm``.

Install with ``install_anthropic_stub(monkeypatch, respond)``: every
``messages.create(**kwargs)`` call is recorded and answered with the text
returned by ``respond(prompt)``. ``respond`` may raise to simulate SDK
errors.
"""

from __future__ import annotations

import json
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

import pytest

import budget_tracker.llm as llm_mod


@dataclass
class _TextBlock:
    text: str
    type: str = "text"


@dataclass
class _Usage:
    input_tokens: int
    output_tokens: int


@dataclass
class _Message:
    content: list[_TextBlock]
    usage: _Usage


class AnthropicStub:
    """Minimal stand-in for ``anthropic.Anthropic`` (messages API only)."""

    def __init__(self, respond: Callable[[str], str], calls_out: list[dict[str, Any]]) -> None:
        self._respond = respond
        self._calls = calls_out

        class _Messages:
            def __init__(self, outer: AnthropicStub) -> None:
                self._outer = outer

            def create(self, **kwargs: Any) -> _Message:
                self._outer._calls.append(kwargs)
                prompt = kwargs["messages"][0]["content"]
                text = self._outer._respond(prompt)
                return _Message(
                    content=[_TextBlock(text=text)],
                    usage=_Usage(input_tokens=len(prompt) // 4, output_tokens=len(text) // 4),
                )

        self.messages = _Messages(self)


def install_anthropic_stub(
    monkeypatch: pytest.MonkeyPatch, respond: Callable[[str], str]
) -> list[dict[str, Any]]:
    """Swap ``budget_tracker.llm.Anthropic`` for the stub; return the call log."""

    calls: list[dict[str, Any]] = []

    def _factory(*_a: Any, **_kw: Any) -> AnthropicStub:
        return AnthropicStub(respond, calls)

    monkeypatch.setattr(llm_mod, "Anthropic", _factory)
    return calls


_LISTING_RE = re.compile(r"^(\d+)\. (.*) - \$[0-9.]+$", re.MULTILINE)


def numbered_descriptions(prompt: str) -> list[tuple[int, str]]:
    """Parse the ``N. description - $amount`` listing of a categorization prompt."""

    return [(int(n), desc) for n, desc in _LISTING_RE.findall(prompt)]


def categorize_all_as(category: str, subcategory: str | None = None) -> Callable[[str], str]:
    def _respond(prompt: str) -> str:
        return json.dumps(
            [
                {"index": n, "category": category, "subcategory": subcategory, "reason": f"looks like {category}"}
                for n, _ in numbered_descriptions(prompt)
            ]
        )

    return _respond

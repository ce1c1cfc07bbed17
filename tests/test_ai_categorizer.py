import json

import pytest

from budget_tracker.ai_categorizer import NO_REASON_PLACEHOLDER, categorize_with_ai
from budget_tracker.errors import InvalidAIResponseError, MissingApiKeyError
from budget_tracker.llm import DEFAULT_MODEL
from budget_tracker.models import Transaction
from budget_tracker.progress import ProgressRecorder
from tests.helpers.anthropic_stub import (
    categorize_all_as,
    install_anthropic_stub,
    numbered_descriptions,
)


def _txs(n: int, prefix: str = "SHOP") -> list[Transaction]:
    return [
        Transaction(id=f"t{i}", date="2025-03-01", description=f"{prefix} {i}", amount=-(i + 1.5))
        for i in range(n)
    ]


def test_missing_key_raises_before_any_call(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Other"))
    with pytest.raises(MissingApiKeyError, match="API key is required"):
        categorize_with_ai(_txs(2), None)
    with pytest.raises(MissingApiKeyError):
        categorize_with_ai(_txs(2), "   ")
    assert calls == []


def test_happy_path_sets_ai_provenance(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Dining", "Coffee Shops"))
    rule_tagged = _txs(1)[0].replace(
        category="Shopping", rule_id="r1", rule_name="old", categorized_by="rule", confidence=0.8
    )

    out = categorize_with_ai([rule_tagged], "sk-test")

    assert len(calls) == 1
    assert calls[0]["model"] == DEFAULT_MODEL
    assert calls[0]["max_tokens"] == 4096
    assert calls[0]["messages"][0]["role"] == "user"
    t = out[0]
    assert (t.category, t.subcategory) == ("Dining", "Coffee Shops")
    assert t.ai_categorized is True
    assert t.ai_reason == "looks like Dining"
    assert t.categorized_by == "ai"
    assert t.rule_id is None and t.rule_name is None and t.confidence is None
    # Input untouched.
    assert rule_tagged.category == "Shopping"


def test_prompt_numbers_rows_from_one_with_absolute_amounts(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Other"))
    categorize_with_ai(_txs(3), "sk-test")
    prompt = calls[0]["messages"][0]["content"]
    assert numbered_descriptions(prompt) == [(1, "SHOP 0"), (2, "SHOP 1"), (3, "SHOP 2")]
    assert "SHOP 0 - $1.50" in prompt
    assert "Groceries" in prompt and "Coffee Shops" in prompt


def test_batches_of_fifty_preserve_order(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Shopping", "Online"))
    recorder = ProgressRecorder()
    txs = _txs(120)

    out = categorize_with_ai(txs, "sk-test", on_progress=recorder)

    assert len(calls) == 3
    sizes = [len(numbered_descriptions(c["messages"][0]["content"])) for c in calls]
    assert sizes == [50, 50, 20]
    assert [t.id for t in out] == [t.id for t in txs]
    assert all(t.category == "Shopping" for t in out)
    assert recorder.stages().count("ai_batch_done") == 3


def test_invalid_entries_leave_rows_unchanged(monkeypatch: pytest.MonkeyPatch) -> None:
    def respond(_prompt: str) -> str:
        return json.dumps(
            [
                {"index": 1, "category": "Groceries", "subcategory": "Not A Real Sub"},
                {"index": 2, "category": "Pets", "subcategory": "Food"},
                {"index": 99, "category": "Travel"},
                {"category": "Travel"},
                {"index": 3, "category": "Travel", "reason": "  "},
            ]
        )

    install_anthropic_stub(monkeypatch, respond)
    txs = _txs(4)
    out = categorize_with_ai(txs, "sk-test")

    assert out[0].category == "Groceries"
    assert out[0].subcategory == "Other"
    assert out[0].ai_reason == NO_REASON_PLACEHOLDER
    # Unknown category and missing entries leave rows as they were.
    assert out[1] == txs[1]
    assert out[3] == txs[3]
    assert out[2].category == "Travel"
    assert out[2].subcategory == "Other"
    assert out[2].ai_reason == NO_REASON_PLACEHOLDER


def test_response_text_around_the_array_is_ignored(monkeypatch: pytest.MonkeyPatch) -> None:
    install_anthropic_stub(
        monkeypatch,
        lambda _p: 'Sure! Here you go:\n```json\n[{"index": 1, "category": "Income", "reason": "pay"}]\n```',
    )
    out = categorize_with_ai(_txs(1), "sk-test")
    assert out[0].category == "Income"


def test_malformed_response_raises_with_preview(monkeypatch: pytest.MonkeyPatch) -> None:
    text = "I cannot categorize these transactions. " * 20
    install_anthropic_stub(monkeypatch, lambda _p: text)
    with pytest.raises(InvalidAIResponseError) as excinfo:
        categorize_with_ai(_txs(2), "sk-test")
    err = excinfo.value
    assert str(err).startswith("Invalid response format from AI:")
    assert err.preview == text[:200]
    assert "Response preview:" in str(err)


@pytest.mark.parametrize(
    ("text", "reason"),
    [
        ('[{"index": 1, "category": ]', "JSON decode failed"),
        ('{"index": 1, "category": "Dining"}', "no JSON array found"),
    ],
    ids=["undecodable_array", "not_an_array"],
)
def test_unusable_json_raises_with_preview(
    monkeypatch: pytest.MonkeyPatch, text: str, reason: str
) -> None:
    install_anthropic_stub(monkeypatch, lambda _p: text)
    with pytest.raises(InvalidAIResponseError) as excinfo:
        categorize_with_ai(_txs(2), "sk-test")
    assert excinfo.value.reason.startswith(reason)
    assert excinfo.value.preview == text


def test_error_in_later_batch_aborts(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[int] = []

    def respond(prompt: str) -> str:
        seen.append(1)
        if len(seen) == 2:
            raise RuntimeError("rate limited")
        return categorize_all_as("Other")(prompt)

    install_anthropic_stub(monkeypatch, respond)
    with pytest.raises(RuntimeError, match="rate limited"):
        categorize_with_ai(_txs(150), "sk-test")
    assert len(seen) == 2


def test_model_override_from_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BUDGET_TRACKER_MODEL", "claude-test-model")
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Other"))
    categorize_with_ai(_txs(1), "sk-test")
    assert calls[0]["model"] == "claude-test-model"


def test_empty_input_makes_no_call(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Other"))
    assert categorize_with_ai([], "sk-test") == []
    assert calls == []

import pytest

from budget_tracker.models import DescriptionContainsRule, Transaction
from budget_tracker.orchestrator import categorize_basic, categorize_with_rules_and_ai
from budget_tracker.progress import ProgressRecorder
from tests.helpers.anthropic_stub import (
    categorize_all_as,
    install_anthropic_stub,
    numbered_descriptions,
)


def _tx(tx_id: str, description: str, **kw) -> Transaction:
    return Transaction(id=tx_id, date="2025-01-10", description=description, amount=-20.0, **kw)


_RULES = [
    DescriptionContainsRule(
        id="r-coffee", name="Coffee", pattern="BLUE BOTTLE", category="Dining", subcategory="Coffee Shops"
    )
]


def _sample() -> list[Transaction]:
    return [
        _tx("a", "BLUE BOTTLE #12"),
        _tx("b", "SAFEWAY 441"),
        _tx("c", "UNKNOWN VENDOR"),
        _tx("d", "blue bottle oakland"),
    ]


def test_without_key_uses_rules_then_keywords(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ANTHROPIC_API_KEY", "sk-env")
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Other"))
    recorder = ProgressRecorder()

    out = categorize_with_rules_and_ai(_sample(), _RULES, on_progress=recorder)

    # The environment key alone never turns the AI stage on.
    assert calls == []
    assert [t.id for t in out] == ["a", "b", "c", "d"]
    assert out[0].categorized_by == "rule" and out[0].rule_id == "r-coffee"
    assert out[3].categorized_by == "rule"
    assert (out[1].category, out[1].subcategory) == ("Groceries", "Other")
    assert out[1].categorized_by is None and out[1].rule_id is None
    assert (out[2].category, out[2].subcategory) == ("Other", "Miscellaneous")
    assert recorder.events[0][0] == "rules_applied"
    assert recorder.events[0][1]["matched"] == 2


def test_with_key_sends_only_unmatched_rows_to_ai(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Shopping", "Online"))

    out = categorize_with_rules_and_ai(_sample(), _RULES, "sk-test")

    assert len(calls) == 1
    listed = numbered_descriptions(calls[0]["messages"][0]["content"])
    assert listed == [(1, "SAFEWAY 441"), (2, "UNKNOWN VENDOR")]
    assert [t.id for t in out] == ["a", "b", "c", "d"]
    assert out[0].category == "Dining" and out[0].ai_categorized is False
    for t in (out[1], out[2]):
        assert t.category == "Shopping"
        assert t.categorized_by == "ai"
        assert t.ai_categorized is True
        assert t.rule_id is None


def test_all_matched_makes_no_ai_call(monkeypatch: pytest.MonkeyPatch) -> None:
    calls = install_anthropic_stub(monkeypatch, categorize_all_as("Other"))
    txs = [_tx("a", "BLUE BOTTLE 1"), _tx("b", "BLUE BOTTLE 2")]
    out = categorize_with_rules_and_ai(txs, _RULES, "sk-test")
    assert calls == []
    assert all(t.rule_id == "r-coffee" for t in out)


def test_rule_match_clears_previous_ai_provenance() -> None:
    prior = _tx("a", "BLUE BOTTLE", category="Shopping", ai_categorized=True, ai_reason="guess", categorized_by="ai")
    out = categorize_with_rules_and_ai([prior], _RULES)
    t = out[0]
    assert t.categorized_by == "rule"
    assert t.ai_categorized is False
    assert t.ai_reason is None
    assert t.confidence == pytest.approx(0.9)


def test_ai_error_propagates(monkeypatch: pytest.MonkeyPatch) -> None:
    def respond(_prompt: str) -> str:
        raise TimeoutError("upstream timeout")

    install_anthropic_stub(monkeypatch, respond)
    with pytest.raises(TimeoutError):
        categorize_with_rules_and_ai(_sample(), _RULES, "sk-test")


def test_empty_input() -> None:
    assert categorize_with_rules_and_ai([], _RULES) == []


def test_categorize_basic_clears_provenance() -> None:
    tagged = _tx(
        "a",
        "NETFLIX.COM",
        category="Dining",
        rule_id="r",
        rule_name="n",
        categorized_by="rule",
        confidence=0.7,
    )
    out = categorize_basic([tagged])
    t = out[0]
    assert (t.category, t.subcategory) == ("Entertainment", "Other")
    assert t.rule_id is None and t.rule_name is None
    assert t.categorized_by is None and t.confidence is None
    assert t.ai_categorized is False

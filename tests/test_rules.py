import json

import pytest
from pydantic import ValidationError

from budget_tracker.models import (
    AmountRangeRule,
    DescriptionContainsRule,
    DescriptionRegexRule,
    DescriptionStartsWithRule,
    MerchantRule,
    Transaction,
    parse_rule,
)
from budget_tracker.rules import (
    add_rule,
    apply_rule,
    categorize_transactions_with_rules,
    categorize_with_rules,
    delete_rule,
    detect_conflicts,
    export_rules_to_json,
    extract_merchant_name,
    find_rule_conflicts,
    import_rules_from_json,
    toggle_rule,
    update_rule,
    update_rule_stats,
    validate_rule,
)


def _tx(tx_id: str, description: str, amount: float = -10.0, **kw) -> Transaction:
    return Transaction(id=tx_id, date="2025-01-15", description=description, amount=amount, **kw)


def _contains(rule_id: str, pattern: str, category: str, **kw) -> DescriptionContainsRule:
    return DescriptionContainsRule(
        id=rule_id, name=kw.pop("name", rule_id), pattern=pattern, category=category, **kw
    )


# ---- apply_rule ------------------------------------------------------------------


def test_contains_is_case_insensitive() -> None:
    rule = _contains("r1", "starbucks", "Dining", subcategory="Coffee Shops", confidence=0.95)
    match = apply_rule(_tx("t1", "STARBUCKS STORE #1234"), rule)
    assert match is not None
    assert (match.category, match.subcategory, match.confidence) == ("Dining", "Coffee Shops", 0.95)
    assert match.rule_id == "r1"


def test_starts_with() -> None:
    rule = DescriptionStartsWithRule(id="r", name="TST", pattern="tst* ", category="Dining")
    assert apply_rule(_tx("a", "TST* BLUE BOTTLE"), rule) is not None
    assert apply_rule(_tx("b", "SQ *TST* BLUE"), rule) is None


def test_regex_matches_raw_description_case_insensitively() -> None:
    rule = DescriptionRegexRule(id="r", name="amzn", pattern=r"amzn\s+mktp", category="Shopping")
    assert apply_rule(_tx("a", "AMZN Mktp US*2K3"), rule) is not None
    assert apply_rule(_tx("b", "AMAZON PRIME"), rule) is None


def test_invalid_regex_is_a_non_match() -> None:
    rule = DescriptionRegexRule(id="r", name="bad", pattern="(unclosed", category="Other")
    assert apply_rule(_tx("a", "(unclosed"), rule) is None


def test_amount_range_uses_absolute_amount_inclusive() -> None:
    rule = AmountRangeRule(
        id="r", name="small", pattern={"min": 5, "max": 10}, category="Other"
    )
    assert apply_rule(_tx("a", "x", amount=-10.0), rule) is not None
    assert apply_rule(_tx("b", "x", amount=5.0), rule) is not None
    assert apply_rule(_tx("c", "x", amount=-10.01), rule) is None


def test_merchant_rule_uses_extracted_name() -> None:
    rule = MerchantRule(id="r", name="shell", pattern="shell oil", category="Transportation")
    assert apply_rule(_tx("a", "POS DEBIT SHELL OIL #5521 12345678 AT HOUSTON TX"), rule) is not None
    # The location part after " AT " is not considered.
    rule_loc = MerchantRule(id="r2", name="houston", pattern="houston", category="Other")
    assert apply_rule(_tx("b", "SHELL OIL AT HOUSTON TX"), rule_loc) is None


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("POS STARBUCKS #1234", "STARBUCKS"),
        ("DEBIT CARD TARGET 00012345 IN MINNEAPOLIS", "TARGET"),
        ("ATM WITHDRAWAL", "WITHDRAWAL"),
        ("POS DEBIT SHELL OIL", "SHELL OIL"),
        ("Whole Foods", "Whole Foods"),
    ],
)
def test_extract_merchant_name(raw: str, expected: str) -> None:
    assert extract_merchant_name(raw) == expected


def test_disabled_rule_never_matches() -> None:
    rule = _contains("r1", "COFFEE", "Dining", enabled=False)
    assert apply_rule(_tx("t", "COFFEE BAR"), rule) is None


# ---- precedence --------------------------------------------------------------------


def test_user_rule_beats_higher_confidence_ai_rule() -> None:
    ai = _contains("ai1", "AMAZON", "Shopping", confidence=0.99, created_by="ai")
    user = _contains("u1", "AMAZON PRIME", "Entertainment", confidence=0.5, created_by="user")
    match = categorize_with_rules(_tx("t", "AMAZON PRIME VIDEO"), [ai, user])
    assert match is not None
    assert match.rule_id == "u1"
    assert match.category == "Entertainment"


def test_confidence_orders_rules_within_author_tier() -> None:
    low = _contains("low", "UBER", "Transportation", confidence=0.6, created_by="ai")
    high = _contains("high", "UBER EATS", "Dining", confidence=0.9, created_by="ai")
    match = categorize_with_rules(_tx("t", "UBER EATS ORDER"), [low, high])
    assert match is not None and match.rule_id == "high"


def test_ties_keep_rule_list_order() -> None:
    first = _contains("first", "CAFE", "Dining", confidence=0.8)
    second = _contains("second", "CAFE", "Other", confidence=0.8)
    match = categorize_with_rules(_tx("t", "CAFE LUNA"), [first, second])
    assert match is not None and match.rule_id == "first"


def test_no_match_returns_none() -> None:
    assert categorize_with_rules(_tx("t", "NOTHING"), [_contains("r", "X1Y2", "Other")]) is None


# ---- bulk application ----------------------------------------------------------------


def test_bulk_application_sets_rule_provenance_and_clears_ai_fields() -> None:
    rule = _contains("r1", "STARBUCKS", "Dining", subcategory="Coffee Shops")
    t_ai = _tx(
        "t1",
        "STARBUCKS #9",
        category="Other",
        subcategory="Miscellaneous",
        ai_categorized=True,
        ai_reason="guess",
        categorized_by="ai",
    )
    t_other = _tx("t2", "LOCAL SHOP", category="Shopping", subcategory="Other")

    out = categorize_transactions_with_rules([t_ai, t_other], [rule])
    assert out[0].category == "Dining"
    assert out[0].subcategory == "Coffee Shops"
    assert out[0].rule_id == "r1"
    assert out[0].rule_name == "r1"
    assert out[0].categorized_by == "rule"
    assert out[0].ai_categorized is False
    assert out[0].ai_reason is None
    # Unmatched rows are returned unchanged.
    assert out[1] == t_other
    # Inputs are not mutated.
    assert t_ai.category == "Other"


def test_applying_rules_twice_is_idempotent() -> None:
    rules = [
        _contains("r1", "STARBUCKS", "Dining", created_by="ai", confidence=0.7),
        _contains("r2", "STAR", "Entertainment", created_by="user"),
    ]
    txs = [_tx("a", "STARBUCKS"), _tx("b", "STARZ"), _tx("c", "ELSE")]
    once = categorize_transactions_with_rules(txs, rules)
    twice = categorize_transactions_with_rules(once, rules)
    assert once == twice


# ---- stats and conflicts ----------------------------------------------------------------


def test_update_rule_stats_counts_and_caps_examples() -> None:
    rule = _contains("r1", "UBER", "Transportation", match_count=99, examples=("stale",))
    txs = [_tx(str(i), f"UBER TRIP {i}") for i in range(7)] + [_tx("x", "LYFT")]
    (updated,) = update_rule_stats([rule], txs)
    assert updated.match_count == 7
    assert updated.examples == tuple(f"UBER TRIP {i}" for i in range(5))
    assert rule.match_count == 99


def test_detect_conflicts_reports_co_matching_rules() -> None:
    a = _contains("a", "AMAZON", "Shopping")
    b = _contains("b", "PRIME", "Entertainment")
    c = _contains("c", "NOPE", "Other")
    txs = [_tx("1", "AMAZON PRIME"), _tx("2", "AMAZON BOOKS"), _tx("3", "AMAZON PRIME VIDEO")]

    report = detect_conflicts([a, b, c], txs)
    assert report.has_conflicts
    conflict_a = report.for_rule("a")
    assert conflict_a is not None
    assert conflict_a.conflicts_with == ("b",)
    assert conflict_a.conflict_count == 2
    assert conflict_a.conflicting_transactions == ("AMAZON PRIME", "AMAZON PRIME VIDEO")
    assert report.for_rule("c") is None
    assert [ct.transaction.id for ct in report.conflicting_transactions] == ["1", "3"]


def test_detect_conflicts_ignores_disabled_rules() -> None:
    a = _contains("a", "AMAZON", "Shopping")
    b = _contains("b", "AMAZON", "Other", enabled=False)
    assert not detect_conflicts([a, b], [_tx("1", "AMAZON")]).has_conflicts


def test_find_rule_conflicts_reports_overlap_and_winner() -> None:
    edited = _contains("e", "UBER EATS", "Dining", confidence=0.9, created_by="user")
    ai_rule = _contains("ai", "UBER", "Transportation", confidence=0.95, created_by="ai")
    same = _contains("same", "EATS", "Dining", confidence=0.5, created_by="user")
    txs = [_tx("1", "UBER EATS 123"), _tx("2", "UBER TRIP"), _tx("3", "UBER EATS 456")]

    overlaps = find_rule_conflicts(edited, [ai_rule, same], txs)
    by_id = {o.rule_id: o for o in overlaps}
    assert set(by_id) == {"ai", "same"}
    assert by_id["ai"].overlap_count == 2
    assert by_id["ai"].same_category is False
    assert by_id["ai"].wins is True
    assert by_id["same"].same_category is True
    assert by_id["same"].wins is True


def test_find_rule_conflicts_checks_disabled_candidate() -> None:
    edited = _contains("e", "UBER", "Transportation", enabled=False)
    other = _contains("o", "UBER", "Dining", created_by="user", confidence=0.99)
    overlaps = find_rule_conflicts(edited, [other], [_tx("1", "UBER")])
    assert len(overlaps) == 1
    assert overlaps[0].wins is False


# ---- lifecycle ------------------------------------------------------------------------


def test_lifecycle_helpers_return_new_lists() -> None:
    a = _contains("a", "AMAZON", "Shopping")
    b = _contains("b", "UBER", "Transportation")
    rules = add_rule([a], b)
    assert [r.id for r in rules] == ["a", "b"]
    with pytest.raises(ValueError):
        add_rule(rules, b)

    toggled = toggle_rule(rules, "a")
    assert toggled[0].enabled is False and rules[0].enabled is True
    assert toggle_rule(toggled, "a", enabled=False)[0].enabled is False

    remaining = delete_rule(rules, "a")
    assert [r.id for r in remaining] == ["b"]
    with pytest.raises(KeyError):
        delete_rule(remaining, "a")


def test_update_rule_returns_fresh_overlaps() -> None:
    a = _contains("a", "AMAZON", "Shopping")
    b = _contains("b", "UBER", "Transportation")
    edited = a.replace(pattern="UBER")
    rules, overlaps = update_rule([a, b], edited, [_tx("1", "UBER TRIP")])
    assert rules[0].pattern == "UBER"
    assert [o.rule_id for o in overlaps] == ["b"]


# ---- validation and JSON ----------------------------------------------------------------


def test_validate_rule_reports_problems() -> None:
    assert validate_rule(
        {"id": "r", "name": "ok", "type": "merchant", "pattern": "SHELL", "category": "Transportation"}
    ) == []
    errors = validate_rule(
        {"id": "r", "name": "", "type": "description_contains", "pattern": "", "category": "Nope"}
    )
    assert len(errors) >= 3
    assert validate_rule({"id": "r", "name": "x", "type": "bogus", "pattern": "x", "category": "Other"})


def test_amount_range_bounds_must_be_ordered() -> None:
    with pytest.raises(ValidationError):
        parse_rule(
            {"id": "r", "name": "x", "type": "amount_range", "pattern": {"min": 10, "max": 1}, "category": "Other"}
        )


def test_subcategory_outside_category_is_normalized_to_other() -> None:
    rule = _contains("r", "X", "Dining", subcategory="Supermarket")
    assert rule.subcategory == "Other"


def test_json_export_import_round_trip_and_errors() -> None:
    rules = [
        _contains("a", "AMAZON", "Shopping", subcategory="Online"),
        AmountRangeRule(id="b", name="big", pattern={"min": 500, "max": 5000}, category="Other"),
    ]
    text = export_rules_to_json(rules)
    payload = json.loads(text)
    assert payload[0]["matchCount"] == 0
    assert payload[1]["pattern"] == {"min": 500.0, "max": 5000.0}

    result = import_rules_from_json(text)
    assert result.success
    assert result.rules == rules

    payload.append({"id": "bad", "name": "bad", "type": "merchant", "category": "Nope", "pattern": "X"})
    payload.append("not an object")
    partial = import_rules_from_json(json.dumps(payload))
    assert not partial.success
    assert [r.id for r in partial.rules] == ["a", "b"]
    assert [e.index for e in partial.errors] == [2, 3]

    assert not import_rules_from_json("{}").success
    assert not import_rules_from_json("not json").success

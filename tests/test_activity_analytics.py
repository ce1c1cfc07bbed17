import pytest

from budget_tracker.activity import MAX_ACTIVITY_ENTRIES, append_activity, error_details, new_entry
from budget_tracker.analytics import filter_transactions, monthly_totals, subcategory_totals, summarize
from budget_tracker.models import Transaction


def _tx(tx_id: str, date: str, description: str, amount: float, category: str, sub: str | None = None):
    return Transaction(
        id=tx_id, date=date, description=description, amount=amount, category=category, subcategory=sub
    )


_TXS = [
    _tx("1", "2025-01-03", "SAFEWAY", -60.25, "Groceries", "Supermarket"),
    _tx("2", "2025-01-10", "PAYROLL", 2000.0, "Income", "Salary"),
    _tx("3", "2025-01-15", "BLUE BOTTLE", -5.5, "Dining", "Coffee Shops"),
    _tx("4", "2025-02-01", "TRADER JOES", -39.75, "Groceries"),
    _tx("5", "2025-02-02", "Shell Oil", -45.0, "Transportation"),
]


def test_summarize() -> None:
    s = summarize(_TXS)
    assert s.total_expenses == pytest.approx(150.5)
    assert s.total_income == pytest.approx(2000.0)
    assert s.net_balance == pytest.approx(1849.5)
    assert s.transaction_count == 5
    assert list(s.category_totals) == ["Groceries", "Transportation", "Dining"]
    assert s.category_totals["Groceries"] == pytest.approx(100.0)


def test_summarize_empty() -> None:
    s = summarize([])
    assert (s.total_expenses, s.total_income, s.transaction_count) == (0.0, 0.0, 0)
    assert s.category_totals == {}


def test_subcategory_totals_default_to_other() -> None:
    assert subcategory_totals(_TXS, "Groceries") == {"Supermarket": 60.25, "Other": 39.75}
    assert subcategory_totals(_TXS, "Income") == {}


def test_monthly_totals_oldest_first() -> None:
    months = monthly_totals(_TXS)
    assert [m.month for m in months] == ["2025-01", "2025-02"]
    assert months[0].expenses == pytest.approx(65.75)
    assert months[0].income == pytest.approx(2000.0)
    assert months[1].expenses == pytest.approx(84.75)


def test_filter_transactions() -> None:
    assert [t.id for t in filter_transactions(_TXS, category="Groceries")] == ["1", "4"]
    assert [t.id for t in filter_transactions(_TXS, query="  shell ")] == ["5"]
    assert [t.id for t in filter_transactions(_TXS, category="Groceries", query="trader")] == ["4"]
    assert len(filter_transactions(_TXS)) == 5


def test_activity_log_is_newest_first_and_capped() -> None:
    log: list = []
    for i in range(MAX_ACTIVITY_ENTRIES + 5):
        log = append_activity(log, new_entry("categorization", "success", {"n": i}))
    assert len(log) == MAX_ACTIVITY_ENTRIES
    assert log[0].details["n"] == MAX_ACTIVITY_ENTRIES + 4
    assert log[-1].details["n"] == 5
    assert len({e.id for e in log}) == MAX_ACTIVITY_ENTRIES
    assert all(e.id.startswith("act_") for e in log)


def test_error_details_carries_message_type_and_stack() -> None:
    try:
        raise ValueError("bad csv")
    except ValueError as e:
        details = error_details(e, fileName="x.csv")
    assert details["fileName"] == "x.csv"
    assert details["error"] == "bad csv"
    assert details["errorType"] == "ValueError"
    assert "ValueError: bad csv" in details["stack"]

from collections.abc import Iterator
from pathlib import Path

import pytest
from sqlalchemy import inspect

from budget_db.client import dispose_engines, get_engine, session_scope
from budget_db.migrate import downgrade
from budget_tracker import persistence
from budget_tracker.models import Sheet, Transaction
from tests.helpers.db import assert_schema_in_sync, bootstrap_migrated_sqlite_db


@pytest.fixture()
def migrated_url(tmp_path: Path) -> Iterator[str]:
    yield bootstrap_migrated_sqlite_db(tmp_path / "migrated.db")
    dispose_engines()


def test_migrations_match_orm_models(migrated_url: str) -> None:
    assert_schema_in_sync(migrated_url)


def test_store_works_on_migrated_schema(migrated_url: str) -> None:
    sheet = Sheet(
        id="s",
        name="Main",
        transactions=(Transaction(id="t", date="2025-01-01", description="X", amount=-2.0),),
    )
    with session_scope(database_url=migrated_url) as s:
        persistence.save_sheet(s, sheet)
    with session_scope(database_url=migrated_url) as s:
        loaded = persistence.load_sheet(s, "s")
    assert loaded == sheet


def test_downgrade_drops_tables(migrated_url: str) -> None:
    downgrade(database_url=migrated_url)
    tables = set(inspect(get_engine(database_url=migrated_url)).get_table_names())
    assert not tables & {"budget_sheets", "budget_transactions", "budget_rules", "budget_activity_log"}

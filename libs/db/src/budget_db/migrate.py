"""Run the Alembic migrations under ``libs/db/alembic`` from Python.

``init_schema`` in :mod:`budget_db.client` creates tables straight from the ORM
metadata (handy for throwaway SQLite files); long-lived databases should be
created and upgraded through these migrations instead.
"""

from __future__ import annotations

from pathlib import Path

from alembic import command
from alembic.config import Config

from .client import _database_url

# libs/db/src/budget_db/migrate.py -> libs/db
_DB_ROOT = Path(__file__).resolve().parents[2]
ALEMBIC_DIR = _DB_ROOT / "alembic"


def alembic_config(*, database_url: str | None = None) -> Config:
    cfg = Config()
    cfg.set_main_option("script_location", str(ALEMBIC_DIR))
    # ConfigParser interpolation treats '%' specially.
    cfg.set_main_option("sqlalchemy.url", _database_url(database_url).replace("%", "%%"))
    return cfg


def upgrade(*, database_url: str | None = None, revision: str = "head") -> None:
    command.upgrade(alembic_config(database_url=database_url), revision)


def downgrade(*, database_url: str | None = None, revision: str = "base") -> None:
    command.downgrade(alembic_config(database_url=database_url), revision)


__all__ = ["ALEMBIC_DIR", "alembic_config", "downgrade", "upgrade"]

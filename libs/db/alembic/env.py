"""
Alembic environment for the ``budget_db`` store.

The database URL comes from the Alembic config when a caller set it
programmatically (``budget_db.migrate``), otherwise from
``BUDGET_TRACKER_DATABASE_URL`` / ``DATABASE_URL`` after loading a ``.env``
found from the current directory. SQLite runs in batch mode so ALTERs work.
"""

from __future__ import annotations

import logging
import os
from logging.config import fileConfig

from alembic import context
from dotenv import find_dotenv, load_dotenv
from sqlalchemy import engine_from_config, pool

from budget_db import metadata as target_metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

logger = logging.getLogger("alembic.env")

dotenv_path = find_dotenv(usecwd=True)
if dotenv_path:
    load_dotenv(dotenv_path=dotenv_path, override=False)

db_url = (
    config.get_main_option("sqlalchemy.url")
    or os.getenv("BUDGET_TRACKER_DATABASE_URL")
    or os.getenv("DATABASE_URL")
)
if not db_url:
    raise RuntimeError(
        "BUDGET_TRACKER_DATABASE_URL (or DATABASE_URL) is not set. Provide it via "
        "environment or set 'sqlalchemy.url' in alembic.ini."
    )

_render_as_batch = db_url.startswith("sqlite")


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of connecting."""
    context.configure(
        url=db_url,
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        render_as_batch=_render_as_batch,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = db_url
    connectable = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=_render_as_batch,
        )
        with context.begin_transaction():
            context.run_migrations()
    logger.info("migrations applied url=%s", connectable.url.render_as_string(hide_password=True))


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

"""Alembic environment for the Sprkz schema.

The database URL is injected by ``sprkz.factory._migrate_db`` (or an
``alembic.ini`` passed on the command line); ``DATABASE_URL`` is the fallback.
"""
import os

from alembic import context
from sqlalchemy import engine_from_config, pool

from sprkz.factory import _normalize_db_url
from sprkz.infra.db import db
import sprkz.models  # noqa: F401

config = context.config

if not config.get_main_option("sqlalchemy.url") and os.environ.get("DATABASE_URL"):
    config.set_main_option("sqlalchemy.url", _normalize_db_url(os.environ["DATABASE_URL"]))

target_metadata = db.metadata


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

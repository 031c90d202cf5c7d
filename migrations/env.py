"""Alembic environment for the Detailers University purchase schema.

The database URL comes from the Alembic config (set by the application
factory) or, when run from the command line, from DATABASE_URL.
"""
import os

from alembic import context
from sqlalchemy import engine_from_config, pool

from detailers.config import _normalize_db_url
from detailers.database import db
import detailers.models  # noqa: F401  registers the tables on db.metadata

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
        context.configure(connection=connection, target_metadata=target_metadata)
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

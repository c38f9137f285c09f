"""
studybuddy/migrations/env.py — Alembic environment.

The database URL is taken from DATABASE_URL, or TEST_DATABASE_URL when
TEST_RUN is set. Importing studybuddy.config loads the .env files first.
"""

from __future__ import annotations

import os
from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from studybuddy.config import normalise_database_url
from studybuddy.app.extensions import db
from studybuddy.app.models import (  # noqa: F401
    group,
    group_file,
    join_request,
    membership,
    study_session,
    user,
)

target_metadata = db.metadata

_url_var = "TEST_DATABASE_URL" if os.getenv("TEST_RUN") else "DATABASE_URL"
database_url = normalise_database_url(os.environ[_url_var])

config = context.config
config.set_main_option("sqlalchemy.url", database_url)

if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def run_migrations_offline() -> None:
    """Emit SQL to stdout instead of touching a database."""
    context.configure(
        url=database_url,
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
    )
    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    engine = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )
    with engine.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=connection.dialect.name == "sqlite",
        )
        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

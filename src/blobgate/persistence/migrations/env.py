"""Alembic environment configuration for Blobgate migrations.

Loaded by Alembic only. Programmatic entry points live in
blobgate.persistence.migrate, which passes its connection through
config.attributes; the alembic CLI falls back to BLOBGATE_DATABASE_URL.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from alembic import context

from blobgate.persistence.db import create_index_engine, get_database_url

if TYPE_CHECKING:
    from sqlalchemy import Connection

target_metadata = None


def run_migrations_offline() -> None:
    """Run migrations in 'offline' mode.

    Configures the context with just a URL; context.execute() emits SQL to
    stdout.
    """
    context.configure(
        url=get_database_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_with_connection(connection: Connection) -> None:
    """Run migrations using an existing connection."""
    context.configure(connection=connection, target_metadata=target_metadata)

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    """Run migrations in 'online' mode.

    Uses the connection handed over through config.attributes when present,
    otherwise opens one from BLOBGATE_DATABASE_URL.
    """
    connection = context.config.attributes.get("connection")
    if connection is not None:
        run_migrations_with_connection(connection)
        return

    engine = create_index_engine()
    with engine.connect() as conn:
        run_migrations_with_connection(conn)
        conn.commit()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()

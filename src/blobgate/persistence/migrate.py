"""Programmatic Alembic migrations for the tag index.

Runs the scripts under persistence/migrations without the alembic CLI or an
alembic.ini file. The migration connection is handed to env.py through
config.attributes.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from alembic import command
from alembic.config import Config
from alembic.runtime.migration import MigrationContext
from alembic.script import ScriptDirectory

from blobgate.persistence.db import create_index_engine

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"


def get_alembic_config() -> Config:
    """Create an Alembic config pointing to the migrations directory."""
    config = Config()
    config.set_main_option("script_location", str(MIGRATIONS_DIR))
    return config


def get_current_revision(engine: Engine) -> str | None:
    """Get the current migration revision from the database.

    Returns:
        Current revision string or None if no migrations applied.
    """
    with engine.connect() as conn:
        ctx = MigrationContext.configure(conn)
        return ctx.get_current_revision()


def get_head_revision() -> str | None:
    """Get the head revision from the migration scripts."""
    script = ScriptDirectory.from_config(get_alembic_config())
    return script.get_current_head()


def run_upgrade(engine: Engine | None = None, revision: str = "head") -> None:
    """Run migrations up to the specified revision.

    Args:
        engine: SQLAlchemy engine to use. If None, built from BLOBGATE_DATABASE_URL.
        revision: Target revision (default: "head").
    """
    if engine is None:
        engine = create_index_engine()

    config = get_alembic_config()

    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.upgrade(config, revision)

    logger.info("Migrations upgraded to %s", revision)


def run_downgrade(engine: Engine | None = None, revision: str = "base") -> None:
    """Run migrations down to the specified revision."""
    if engine is None:
        engine = create_index_engine()

    config = get_alembic_config()

    with engine.begin() as conn:
        config.attributes["connection"] = conn
        command.downgrade(config, revision)

    logger.info("Migrations downgraded to %s", revision)

"""Tag index database connectivity.

Provides engine creation for the tag index backend. Engines are created once
per process by the gateway context and passed explicitly to repositories.

Environment Variables:
    BLOBGATE_DATABASE_URL: SQLAlchemy URL of the tag index database
        (PostgreSQL in production, SQLite for development and tests)

Design Requirements:
    - Fail closed on missing configuration
    - Reuse pooled connections across operations
"""

from __future__ import annotations

import logging
import os
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING, Any

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from blobgate.errors import ConfigurationError
from blobgate.observability.tracing import instrument_sqlalchemy

if TYPE_CHECKING:
    from sqlalchemy import Connection, Engine

logger = logging.getLogger(__name__)

BLOBGATE_DATABASE_URL_ENV = "BLOBGATE_DATABASE_URL"


def _normalize_url(url: str) -> str:
    """Map the legacy postgres:// scheme to the SQLAlchemy dialect name."""
    if url.startswith("postgres://"):
        return url.replace("postgres://", "postgresql://", 1)
    return url


def get_database_url(url: str | None = None) -> str:
    """Resolve the tag index database URL.

    Args:
        url: Explicit URL. If None, read BLOBGATE_DATABASE_URL.

    Raises:
        ConfigurationError: If no URL is configured.
    """
    resolved = url or os.environ.get(BLOBGATE_DATABASE_URL_ENV)
    if not resolved:
        raise ConfigurationError(
            f"Tag index database not configured. Set {BLOBGATE_DATABASE_URL_ENV}."
        )
    return _normalize_url(resolved)


def create_index_engine(url: str | None = None) -> Engine:
    """Create the tag index engine.

    SQLite URLs get a thread-agnostic connection; in-memory SQLite shares a
    single connection so every session sees the same database.

    Raises:
        ConfigurationError: If no URL is configured.
    """
    resolved = get_database_url(url)

    if resolved.startswith("sqlite"):
        kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
        if resolved in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        engine = create_engine(resolved, echo=False, **kwargs)
    else:
        engine = create_engine(
            resolved,
            pool_size=5,
            max_overflow=10,
            pool_pre_ping=True,
            echo=False,
        )

    instrument_sqlalchemy(engine)
    logger.info("Created tag index engine (dialect=%s)", engine.dialect.name)
    return engine


@contextmanager
def begin_conn(engine: Engine) -> Generator[Connection, None, None]:
    """Open a connection and transaction; commit on success, roll back on error."""
    with engine.connect() as conn, conn.begin():
        yield conn

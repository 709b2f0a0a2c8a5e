"""Tag index repository.

Append-only catalog of (dataitem_id, content_type, created_at, tag_key,
tag_value) rows with a tag-equality query engine on top.

Rows are never updated or deleted. Re-indexing an item inserts new rows; for
each (tag_key, tag_value, dataitem_id) triple the row with the latest
created_at is authoritative. Queries aggregate per item, so duplicate rows
never change which items match.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import (
    Column,
    DateTime,
    Index,
    MetaData,
    String,
    Table,
    bindparam,
    text,
)
from sqlalchemy.exc import SQLAlchemyError

from blobgate.errors import BackendError
from blobgate.persistence.cursor import QueryCursor, encode_cursor
from blobgate.persistence.db import begin_conn
from blobgate.tagging import Tag, normalize_tag_pairs

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 100

metadata = MetaData()

dataitem_tags = Table(
    "dataitem_tags",
    metadata,
    Column("dataitem_id", String, nullable=False),
    Column("content_type", String, nullable=False),
    Column("created_at", DateTime(timezone=True), nullable=False),
    Column("tag_key", String, nullable=False),
    Column("tag_value", String, nullable=False),
    Index("ix_dataitem_tags_tag_lookup", "tag_key", "tag_value", "dataitem_id"),
    Index("ix_dataitem_tags_recency", "created_at", "dataitem_id"),
)

_TIMESTAMP = DateTime(timezone=True)

_INSERT_SQL = text(
    """
    INSERT INTO dataitem_tags (dataitem_id, content_type, created_at, tag_key, tag_value)
    VALUES (:dataitem_id, :content_type, :created_at, :tag_key, :tag_value)
    """
).bindparams(bindparam("created_at", type_=_TIMESTAMP))

_TAGS_FOR_SQL = (
    text(
        """
        SELECT tag_key, tag_value, MAX(created_at) AS created_at
        FROM dataitem_tags
        WHERE dataitem_id = :dataitem_id
        GROUP BY tag_key, tag_value
        ORDER BY tag_key, tag_value
        """
    )
    .columns(tag_key=String, tag_value=String, created_at=_TIMESTAMP)
)


@dataclass(frozen=True)
class DataitemRecord:
    """One item matched by a tag query."""

    dataitem_id: str
    content_type: str
    created_at: datetime


@dataclass(frozen=True)
class IndexedTag:
    """Authoritative (latest) row for one tag pair of an item."""

    tag_key: str
    tag_value: str
    created_at: datetime


@dataclass(frozen=True)
class TagQueryPage:
    """One page of tag query results."""

    items: list[DataitemRecord]
    has_more: bool
    next_cursor: str | None

    @classmethod
    def empty(cls) -> TagQueryPage:
        return cls(items=[], has_more=False, next_cursor=None)


def _as_utc(value: datetime) -> datetime:
    """Attach UTC to naive timestamps (SQLite) and convert aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def _build_query(
    filters: Sequence[tuple[str, str]],
    limit: int,
    after: QueryCursor | None,
) -> tuple[Any, dict[str, Any]]:
    """Build the AND-filter keyset query and its parameters.

    An item matches when it has at least one row for every distinct filter
    pair. Each pair contributes a 0/1 term to the HAVING sum.
    """
    params: dict[str, Any] = {}
    match_terms: list[str] = []
    presence_terms: list[str] = []
    for i, (key, value) in enumerate(filters):
        params[f"k{i}"] = key
        params[f"v{i}"] = value
        match_terms.append(f"(tag_key = :k{i} AND tag_value = :v{i})")
        presence_terms.append(
            f"MAX(CASE WHEN tag_key = :k{i} AND tag_value = :v{i} THEN 1 ELSE 0 END)"
        )
    params["expected"] = len(filters)
    params["limit"] = limit

    keyset = ""
    if after is not None:
        keyset = (
            "WHERE created_at < :after_created_at "
            "OR (created_at = :after_created_at AND dataitem_id < :after_id)"
        )
        params["after_created_at"] = after.created_at.astimezone(UTC)
        params["after_id"] = after.dataitem_id

    sql = f"""
        SELECT dataitem_id, content_type, created_at
        FROM (
            SELECT dataitem_id,
                   MAX(content_type) AS content_type,
                   MAX(created_at) AS created_at
            FROM dataitem_tags
            WHERE {" OR ".join(match_terms)}
            GROUP BY dataitem_id
            HAVING {" + ".join(presence_terms)} = :expected
        ) AS aggregated
        {keyset}
        ORDER BY created_at DESC, dataitem_id DESC
        LIMIT :limit
    """

    clause = text(sql)
    if after is not None:
        clause = clause.bindparams(bindparam("after_created_at", type_=_TIMESTAMP))
    stmt = clause.columns(dataitem_id=String, content_type=String, created_at=_TIMESTAMP)
    return stmt, params


class TagIndex:
    """Repository for tag index ingestion and queries.

    The schema is created lazily on first use (development and SQLite);
    PostgreSQL deployments create it through the Alembic migrations.
    """

    def __init__(self, engine: Engine) -> None:
        self._engine = engine
        self._schema_ready = False
        self._schema_lock = threading.Lock()

    @property
    def engine(self) -> Engine:
        return self._engine

    def ensure_schema(self) -> None:
        """Create the dataitem_tags table and indexes if missing.

        Raises:
            BackendError: If the DDL cannot be executed.
        """
        if self._schema_ready:
            return
        with self._schema_lock:
            if self._schema_ready:
                return
            try:
                metadata.create_all(self._engine, checkfirst=True)
            except SQLAlchemyError as e:
                raise BackendError(
                    f"Failed to create tag index schema: {e}",
                    sub_write="index",
                    cause=e,
                ) from e
            self._schema_ready = True

    def index(
        self,
        dataitem_id: str,
        content_type: str,
        tags: Iterable[Tag | Sequence[str]],
        *,
        observed_at: datetime | None = None,
    ) -> int:
        """Record one row per normalized tag pair of an item.

        All rows of one call share a single created_at. Calling again for the
        same item appends newer rows that supersede the older ones.

        Args:
            dataitem_id: Item identifier.
            content_type: Item content type.
            tags: Canonical tags; normalized again before insertion.
            observed_at: Row timestamp. Defaults to now (UTC).

        Returns:
            Number of rows inserted (0 when nothing survives normalization).

        Raises:
            BackendError: If the insert fails.
        """
        normalized = normalize_tag_pairs(tags)
        if not normalized:
            return 0

        self.ensure_schema()
        created_at = _as_utc(observed_at) if observed_at is not None else datetime.now(UTC)
        rows = [
            {
                "dataitem_id": dataitem_id,
                "content_type": content_type,
                "created_at": created_at,
                "tag_key": key,
                "tag_value": value,
            }
            for key, value in normalized
        ]

        try:
            with begin_conn(self._engine) as conn:
                conn.execute(_INSERT_SQL, rows)
        except SQLAlchemyError as e:
            raise BackendError(
                f"Failed to index tags: {e}",
                sub_write="index",
                item_id=dataitem_id,
                cause=e,
            ) from e

        logger.debug("Indexed %d tags for dataitem %s", len(rows), dataitem_id)
        return len(rows)

    def query(
        self,
        filters: Iterable[Tag | Sequence[str]],
        *,
        first: int = DEFAULT_PAGE_SIZE,
        after: QueryCursor | None = None,
    ) -> TagQueryPage:
        """Find items carrying every filter pair, newest first.

        Results are ordered by (created_at DESC, dataitem_id DESC) and paged
        by keyset: only items strictly after the cursor are returned.

        Args:
            filters: Tag equality filters, ANDed together.
            first: Page size; clamped to [1, MAX_PAGE_SIZE].
            after: Cursor of the last item of the previous page.

        Returns:
            TagQueryPage. Empty (without a backend call) when no filter
            survives normalization.

        Raises:
            BackendError: If the backend query fails.
        """
        normalized = normalize_tag_pairs(filters)
        if not normalized:
            return TagQueryPage.empty()

        self.ensure_schema()
        limit = min(max(1, first), MAX_PAGE_SIZE)
        stmt, params = _build_query(normalized, limit + 1, after)

        try:
            with self._engine.connect() as conn:
                result = conn.execute(stmt, params).fetchall()
        except SQLAlchemyError as e:
            raise BackendError(
                f"Tag query failed: {e}",
                sub_write="read",
                cause=e,
            ) from e

        records = [
            DataitemRecord(
                dataitem_id=row.dataitem_id,
                content_type=row.content_type,
                created_at=_as_utc(row.created_at),
            )
            for row in result
        ]

        has_more = len(records) > limit
        if has_more:
            records = records[:limit]

        next_cursor = None
        if has_more:
            last = records[-1]
            next_cursor = encode_cursor(
                QueryCursor(created_at=last.created_at, dataitem_id=last.dataitem_id)
            )

        return TagQueryPage(items=records, has_more=has_more, next_cursor=next_cursor)

    def tags_for(self, dataitem_id: str) -> list[IndexedTag]:
        """Return the authoritative row per tag pair of one item.

        Raises:
            BackendError: If the backend query fails.
        """
        self.ensure_schema()
        try:
            with self._engine.connect() as conn:
                result = conn.execute(_TAGS_FOR_SQL, {"dataitem_id": dataitem_id}).fetchall()
        except SQLAlchemyError as e:
            raise BackendError(
                f"Tag lookup failed: {e}",
                sub_write="read",
                item_id=dataitem_id,
                cause=e,
            ) from e

        return [
            IndexedTag(
                tag_key=row.tag_key,
                tag_value=row.tag_value,
                created_at=_as_utc(row.created_at),
            )
            for row in result
        ]

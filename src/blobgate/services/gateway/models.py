"""Result types returned by the object gateway."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from blobgate.tagging import Tag


@dataclass(frozen=True)
class IndexOutcome:
    """Outcome of the secondary tag-index write of a store.

    The primary write never depends on this; a failed index write leaves the
    item stored and resolvable by id but not yet discoverable by tags.

    Attributes:
        indexed: True if tag rows were written (or there were none to write).
        rows: Number of rows inserted.
        error: Failure description when indexed is False.
    """

    indexed: bool
    rows: int = 0
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"indexed": self.indexed, "rows": self.rows, "error": self.error}


@dataclass(frozen=True)
class StoreResult:
    """Result of a successful store operation.

    Attributes:
        item_id: Content-derived id of the stored envelope.
        content_type: Content type recorded for the item.
        tags: Tags embedded in the envelope.
        owner: Owner address of the envelope signer.
        envelope_key: Blob key of the envelope copy.
        raw_key: Blob key of the raw copy (None for private items).
        raw_stored: True if the raw copy was written.
        raw_error: Failure description when the raw write failed.
        index: Outcome of the tag-index write.
        registered_name: Name recorded in the collection registry, if any.
    """

    item_id: str
    content_type: str
    tags: tuple[Tag, ...]
    owner: str
    envelope_key: str
    raw_key: str | None
    raw_stored: bool
    index: IndexOutcome
    raw_error: str | None = None
    registered_name: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "id": self.item_id,
            "content_type": self.content_type,
            "tags": [{"key": t.key, "value": t.value} for t in self.tags],
            "owner": self.owner,
            "envelope_key": self.envelope_key,
            "raw_key": self.raw_key,
            "raw_stored": self.raw_stored,
            "raw_error": self.raw_error,
            "index": self.index.to_dict(),
            "registered_name": self.registered_name,
        }


@dataclass(frozen=True)
class ItemDescriptor:
    """Which representations of an item exist in the blob store."""

    item_id: str
    envelope_key: str
    raw_key: str
    envelope_stored: bool
    raw_stored: bool
    content_type: str | None = None
    size_bytes: int | None = None
    tags: list[tuple[str, str]] = field(default_factory=list)

    @property
    def exists(self) -> bool:
        return self.envelope_stored or self.raw_stored

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.item_id,
            "envelope_key": self.envelope_key,
            "raw_key": self.raw_key,
            "envelope_stored": self.envelope_stored,
            "raw_stored": self.raw_stored,
            "content_type": self.content_type,
            "size_bytes": self.size_bytes,
            "tags": [{"key": k, "value": v} for k, v in self.tags],
        }

"""Persistence repositories for Blobgate."""

from blobgate.persistence.repositories.tag_index import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    DataitemRecord,
    IndexedTag,
    TagIndex,
    TagQueryPage,
    dataitem_tags,
)

__all__ = [
    "DEFAULT_PAGE_SIZE",
    "MAX_PAGE_SIZE",
    "DataitemRecord",
    "IndexedTag",
    "TagIndex",
    "TagQueryPage",
    "dataitem_tags",
]

"""Blobgate object storage abstraction.

Provides keyed blob storage with SHA256 tracking, time-limited download URLs
and observability hooks.

Backends:
- FilesystemObjectStore: Local filesystem (dev/test)
- S3ObjectStore: AWS S3 compatible (production)

Environment Variables:
    BLOBGATE_OBJECT_STORE_BACKEND: "filesystem" or "s3" (default: "filesystem")
    BLOBGATE_OBJECT_STORE_BASE_DIR: Base directory for filesystem backend
"""

from blobgate.storage.errors import (
    ObjectNotFoundError,
    ObjectStorageError,
    PathTraversalError,
    StorageBackendError,
)
from blobgate.storage.models import StoredObject, StoredObjectMetadata
from blobgate.storage.object_store import ObjectStore, validate_key

__all__ = [
    "ObjectStore",
    "StoredObject",
    "StoredObjectMetadata",
    "ObjectStorageError",
    "ObjectNotFoundError",
    "PathTraversalError",
    "StorageBackendError",
    "validate_key",
]

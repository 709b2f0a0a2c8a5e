"""Blobgate object storage interface definition.

Provides the ObjectStore interface that all storage backends must implement.
"""

from __future__ import annotations

import re
from abc import ABC, abstractmethod

from blobgate.storage.errors import ObjectNotFoundError, PathTraversalError
from blobgate.storage.models import StoredObject, StoredObjectMetadata

_SAFE_KEY_PATTERN = re.compile(r"^[a-zA-Z0-9_\-./]+$")


def _is_path_traversal(key: str) -> bool:
    """Check if a key contains path traversal sequences or unsafe characters.

    Detects:
    - Empty keys
    - Null bytes and backslashes
    - Absolute paths (leading "/" or "~", drive letters like C:)
    - ".." or "." segments and empty segments
    """
    if not key:
        return True
    if "\x00" in key or "\\" in key:
        return True
    if key.startswith("/") or key.startswith("~"):
        return True
    if len(key) >= 2 and key[1] == ":":
        return True
    segments = key.split("/")
    if any(segment in ("", ".", "..") for segment in segments):
        return True
    return not bool(_SAFE_KEY_PATTERN.match(key))


def validate_key(key: str) -> None:
    """Validate an object key and raise if unsafe.

    Raises:
        PathTraversalError: If the key is empty, absolute, or escapes its root.
    """
    if _is_path_traversal(key):
        raise PathTraversalError(
            message="Invalid key: path traversal or unsafe characters detected",
            key=key,
        )


class ObjectStore(ABC):
    """Abstract base class for object storage backends.

    Keys are flat logical paths such as "envelopes/<id>". Writing an existing
    key overwrites it; the gateway only writes content-addressed keys, so an
    overwrite stores identical bytes.

    Implementations:
    - FilesystemObjectStore: Local filesystem (dev/test)
    - S3ObjectStore: AWS S3 compatible (production)
    """

    @property
    @abstractmethod
    def backend_name(self) -> str:
        """Return the backend identifier for observability (e.g. "s3")."""
        ...

    @abstractmethod
    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        """Store an object.

        Raises:
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If the backend cannot complete the write.
        """
        ...

    @abstractmethod
    def get(self, key: str) -> StoredObject:
        """Retrieve an object.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If the backend cannot complete the read.
        """
        ...

    @abstractmethod
    def head(self, key: str) -> StoredObjectMetadata:
        """Get object metadata without retrieving content.

        Raises:
            ObjectNotFoundError: If the object does not exist.
            StorageBackendError: If the backend cannot complete the operation.
        """
        ...

    @abstractmethod
    def list_keys(self, prefix: str = "") -> list[str]:
        """List object keys starting with prefix, sorted ascending.

        Raises:
            StorageBackendError: If the backend cannot complete the listing.
        """
        ...

    @abstractmethod
    def presigned_url(self, key: str, *, expires_in: int) -> str:
        """Return a time-limited URL for downloading an object.

        Does not check existence; callers that need it call head() first.

        Raises:
            PathTraversalError: If key contains traversal sequences.
            StorageBackendError: If a URL cannot be produced.
        """
        ...

    def exists(self, key: str) -> bool:
        """Return True if the object exists."""
        try:
            self.head(key)
        except ObjectNotFoundError:
            return False
        return True

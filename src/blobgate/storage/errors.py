"""Blobgate object storage error types.

All errors are fail-closed: operations that cannot complete safely raise errors.
"""

from __future__ import annotations


class ObjectStorageError(Exception):
    """Base exception for object storage operations.

    Attributes:
        message: Human-readable error message.
        key: Object key associated with the operation (if applicable).
    """

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.key = key

    def __str__(self) -> str:
        if self.key:
            return f"{self.message} key={self.key}"
        return self.message


class ObjectNotFoundError(ObjectStorageError):
    """Raised when an object does not exist in storage."""

    def __init__(self, message: str = "Object not found", *, key: str | None = None) -> None:
        super().__init__(message, key=key)


class PathTraversalError(ObjectStorageError):
    """Raised when an object key contains path traversal sequences.

    Keys like "../", absolute paths or backslashes would escape the storage
    root on the filesystem backend and are rejected on every backend.
    """

    def __init__(
        self,
        message: str = "Invalid key: path traversal detected",
        *,
        key: str | None = None,
    ) -> None:
        super().__init__(message, key=key)


class StorageBackendError(ObjectStorageError):
    """Raised when the storage backend cannot complete an operation.

    This error indicates the backend itself failed (disk full, permission
    denied, network error) rather than a logical error like object not found.
    """

    def __init__(
        self,
        message: str = "Storage backend error",
        *,
        key: str | None = None,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message, key=key)
        self.cause = cause

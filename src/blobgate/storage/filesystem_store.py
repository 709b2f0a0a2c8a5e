"""Blobgate filesystem object storage backend.

Provides local filesystem storage for development and testing with:
- Path traversal protection
- SHA256 content hashing
- Atomic writes (write to temp file, then replace)
- HMAC-signed download URLs served by the gateway's /blobs route

Environment Variables:
    BLOBGATE_OBJECT_STORE_BASE_DIR: Base directory for storage
        (default: tempfile.gettempdir() / blobgate_objects)
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
import tempfile
import uuid
from datetime import UTC, datetime
from pathlib import Path

from blobgate.storage.errors import (
    ObjectNotFoundError,
    PathTraversalError,
    StorageBackendError,
)
from blobgate.storage.models import StoredObject, StoredObjectMetadata
from blobgate.storage.object_store import ObjectStore, validate_key
from blobgate.storage.presign import UrlSigner
from blobgate.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

BLOBGATE_OBJECT_STORE_BASE_DIR_ENV = "BLOBGATE_OBJECT_STORE_BASE_DIR"

_CONTENT_FILE = "_object.data"
_METADATA_FILE = "_object.meta.json"
_RESERVED_SEGMENT_PREFIX = "_object."


def _compute_sha256(data: bytes) -> str:
    """Compute SHA256 hash of data and return as hex string."""
    return hashlib.sha256(data).hexdigest()


class FilesystemObjectStore(ObjectStore):
    """Filesystem-based object storage implementation.

    Each key maps to a directory holding the content and its metadata:
        {base_dir}/{key}/
            _object.data        # content
            _object.meta.json   # metadata

    Nested keys ("a/b" and "a/b/c") coexist because content lives in
    reserved file names rather than at the key path itself.
    """

    def __init__(
        self,
        base_dir: str | Path | None = None,
        *,
        url_signer: UrlSigner | None = None,
    ) -> None:
        """Initialize filesystem storage.

        Args:
            base_dir: Base directory for storage. If None, uses
                BLOBGATE_OBJECT_STORE_BASE_DIR env var or OS temp directory.
            url_signer: Signer for download URLs. Without one,
                presigned_url() raises StorageBackendError.
        """
        if base_dir is None:
            base_dir = os.environ.get(BLOBGATE_OBJECT_STORE_BASE_DIR_ENV)

        if base_dir is None:
            base_dir = Path(tempfile.gettempdir()) / "blobgate_objects"
        else:
            base_dir = Path(base_dir)

        self._base_dir = base_dir.resolve()
        self._url_signer = url_signer
        logger.debug("FilesystemObjectStore initialized with base_dir=%s", self._base_dir)

    @property
    def backend_name(self) -> str:
        return "filesystem"

    @property
    def base_dir(self) -> Path:
        """Return the base directory path."""
        return self._base_dir

    def _get_object_dir(self, key: str) -> Path:
        """Get the directory for an object, validating the key."""
        validate_key(key)
        if any(segment.startswith(_RESERVED_SEGMENT_PREFIX) for segment in key.split("/")):
            raise PathTraversalError(message="Invalid key: reserved segment name", key=key)

        obj_dir = self._base_dir / key
        resolved = obj_dir.resolve()
        try:
            resolved.relative_to(self._base_dir)
        except ValueError as e:
            raise PathTraversalError(
                message="Path resolves outside storage base directory",
                key=key,
            ) from e
        return resolved

    def _write_atomic(self, target: Path, data: bytes, key: str) -> None:
        """Write a file atomically via a temp file in the same directory."""
        tmp_file = target.parent / f"{target.name}.{uuid.uuid4().hex}.tmp"
        try:
            tmp_file.write_bytes(data)
            tmp_file.replace(target)
        except OSError as e:
            if tmp_file.exists():
                tmp_file.unlink(missing_ok=True)
            raise StorageBackendError(
                message=f"Failed to write {target.name}: {e}",
                key=key,
                cause=e,
            ) from e

    def _read_metadata(self, obj_dir: Path, key: str) -> StoredObjectMetadata:
        meta_file = obj_dir / _METADATA_FILE
        if not meta_file.exists():
            raise ObjectNotFoundError(key=key)
        try:
            data = json.loads(meta_file.read_text(encoding="utf-8"))
            return StoredObjectMetadata.from_dict(data)
        except (OSError, json.JSONDecodeError, KeyError) as e:
            raise StorageBackendError(
                message=f"Failed to read metadata: {e}",
                key=key,
                cause=e,
            ) from e

    @traced_storage_operation("put")
    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        """Store an object, replacing any existing content at key."""
        obj_dir = self._get_object_dir(key)

        try:
            obj_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to create object directory: {e}",
                key=key,
                cause=e,
            ) from e

        metadata = StoredObjectMetadata(
            key=key,
            sha256=_compute_sha256(data),
            size_bytes=len(data),
            content_type=content_type,
            created_at=datetime.now(UTC),
        )

        # Content first: metadata presence marks the object as readable.
        self._write_atomic(obj_dir / _CONTENT_FILE, data, key)
        self._write_atomic(
            obj_dir / _METADATA_FILE,
            json.dumps(metadata.to_dict(), indent=2).encode("utf-8"),
            key,
        )

        logger.debug("Stored object: key=%s sha256=%s", key, metadata.sha256)
        return metadata

    @traced_storage_operation("get")
    def get(self, key: str) -> StoredObject:
        obj_dir = self._get_object_dir(key)
        metadata = self._read_metadata(obj_dir, key)

        content_file = obj_dir / _CONTENT_FILE
        try:
            content = content_file.read_bytes()
        except FileNotFoundError as e:
            raise ObjectNotFoundError(message="Object content not found", key=key) from e
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to read content: {e}",
                key=key,
                cause=e,
            ) from e

        return StoredObject(metadata=metadata, body=content)

    @traced_storage_operation("head")
    def head(self, key: str) -> StoredObjectMetadata:
        obj_dir = self._get_object_dir(key)
        return self._read_metadata(obj_dir, key)

    def list_keys(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        if not self._base_dir.exists():
            return keys
        try:
            for meta_file in self._base_dir.rglob(_METADATA_FILE):
                key = meta_file.parent.relative_to(self._base_dir).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        except OSError as e:
            raise StorageBackendError(
                message=f"Failed to list objects: {e}",
                key=prefix or None,
                cause=e,
            ) from e
        return sorted(keys)

    def presigned_url(self, key: str, *, expires_in: int) -> str:
        self._get_object_dir(key)
        if self._url_signer is None:
            raise StorageBackendError(
                message="Presigned URLs are not configured for the filesystem backend",
                key=key,
            )
        return self._url_signer.sign(key, expires_in=expires_in)

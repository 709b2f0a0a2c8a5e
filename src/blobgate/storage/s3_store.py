"""Blobgate S3 object storage backend.

Stores objects in one S3-compatible bucket. Download URLs are native
presigned GET URLs.

Environment Variables (read through GatewaySettings):
    BLOBGATE_S3_BUCKET: Bucket name (required for this backend)
    BLOBGATE_S3_ENDPOINT_URL: Endpoint for S3-compatible services (optional)
    BLOBGATE_S3_REGION: Region name (optional)
"""

from __future__ import annotations

import hashlib
import logging
from datetime import UTC, datetime
from typing import Any

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from blobgate.storage.errors import ObjectNotFoundError, StorageBackendError
from blobgate.storage.models import StoredObject, StoredObjectMetadata
from blobgate.storage.object_store import ObjectStore, validate_key
from blobgate.storage.tracing import traced_storage_operation

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})
_SHA256_METADATA_KEY = "sha256"


def _is_not_found(error: ClientError) -> bool:
    code = error.response.get("Error", {}).get("Code", "")
    return code in _NOT_FOUND_CODES


def create_s3_client(
    *,
    region: str | None = None,
    endpoint_url: str | None = None,
    timeout_s: float = 30.0,
) -> Any:
    """Create a boto3 S3 client with bounded timeouts and standard retries."""
    session = boto3.Session(region_name=region)
    return session.client(
        "s3",
        region_name=region,
        endpoint_url=endpoint_url,
        config=BotoConfig(
            connect_timeout=timeout_s,
            read_timeout=timeout_s,
            retries={"max_attempts": 5, "mode": "standard"},
        ),
    )


class S3ObjectStore(ObjectStore):
    """S3-backed object storage implementation."""

    def __init__(self, bucket: str, *, client: Any | None = None) -> None:
        """Initialize S3 storage.

        Args:
            bucket: Bucket holding every object.
            client: Preconfigured boto3 S3 client. Created from defaults if None.
        """
        self._bucket = bucket
        self._s3 = client if client is not None else create_s3_client()

    @property
    def backend_name(self) -> str:
        return "s3"

    @property
    def bucket(self) -> str:
        return self._bucket

    def _metadata_from_response(self, key: str, response: dict[str, Any]) -> StoredObjectMetadata:
        user_meta = response.get("Metadata") or {}
        last_modified = response.get("LastModified")
        return StoredObjectMetadata(
            key=key,
            sha256=str(user_meta.get(_SHA256_METADATA_KEY, "")),
            size_bytes=int(response.get("ContentLength", 0)),
            content_type=response.get("ContentType"),
            created_at=last_modified if isinstance(last_modified, datetime) else datetime.now(UTC),
        )

    @traced_storage_operation("put")
    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        validate_key(key)
        sha256 = hashlib.sha256(data).hexdigest()
        params: dict[str, Any] = {
            "Bucket": self._bucket,
            "Key": key,
            "Body": data,
            "Metadata": {_SHA256_METADATA_KEY: sha256},
        }
        if content_type:
            params["ContentType"] = content_type

        try:
            self._s3.put_object(**params)
        except (ClientError, BotoCoreError) as e:
            raise StorageBackendError(
                message=f"S3 put_object failed: {e}",
                key=key,
                cause=e,
            ) from e

        logger.debug("Stored object: bucket=%s key=%s sha256=%s", self._bucket, key, sha256)
        return StoredObjectMetadata(
            key=key,
            sha256=sha256,
            size_bytes=len(data),
            content_type=content_type,
            created_at=datetime.now(UTC),
        )

    @traced_storage_operation("get")
    def get(self, key: str) -> StoredObject:
        validate_key(key)
        try:
            response = self._s3.get_object(Bucket=self._bucket, Key=key)
            body = response["Body"].read()
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(key=key) from e
            raise StorageBackendError(
                message=f"S3 get_object failed: {e}",
                key=key,
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise StorageBackendError(
                message=f"S3 get_object failed: {e}",
                key=key,
                cause=e,
            ) from e

        return StoredObject(metadata=self._metadata_from_response(key, response), body=body)

    @traced_storage_operation("head")
    def head(self, key: str) -> StoredObjectMetadata:
        validate_key(key)
        try:
            response = self._s3.head_object(Bucket=self._bucket, Key=key)
        except ClientError as e:
            if _is_not_found(e):
                raise ObjectNotFoundError(key=key) from e
            raise StorageBackendError(
                message=f"S3 head_object failed: {e}",
                key=key,
                cause=e,
            ) from e
        except BotoCoreError as e:
            raise StorageBackendError(
                message=f"S3 head_object failed: {e}",
                key=key,
                cause=e,
            ) from e

        return self._metadata_from_response(key, response)

    def list_keys(self, prefix: str = "") -> list[str]:
        keys: list[str] = []
        try:
            paginator = self._s3.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self._bucket, Prefix=prefix):
                keys.extend(entry["Key"] for entry in page.get("Contents", []))
        except (ClientError, BotoCoreError) as e:
            raise StorageBackendError(
                message=f"S3 list_objects_v2 failed: {e}",
                key=prefix or None,
                cause=e,
            ) from e
        return sorted(keys)

    def presigned_url(self, key: str, *, expires_in: int) -> str:
        validate_key(key)
        try:
            url: str = self._s3.generate_presigned_url(
                "get_object",
                Params={"Bucket": self._bucket, "Key": key},
                ExpiresIn=expires_in,
            )
        except (ClientError, BotoCoreError) as e:
            raise StorageBackendError(
                message=f"S3 presign failed: {e}",
                key=key,
                cause=e,
            ) from e
        return url

"""Blobgate process configuration.

All configuration is read once at process start by GatewaySettings.from_env()
and handed to GatewayContext. Missing or malformed required values raise
ConfigurationError (fail closed).

Environment Variables:
    BLOBGATE_DATABASE_URL: Tag index database URL (required)
    BLOBGATE_OBJECT_STORE_BACKEND: "filesystem" or "s3" (default: "filesystem")
    BLOBGATE_OBJECT_STORE_BASE_DIR: Base directory for the filesystem backend
    BLOBGATE_S3_BUCKET: Bucket for the s3 backend (required for s3)
    BLOBGATE_S3_ENDPOINT_URL: Endpoint for S3-compatible services
    BLOBGATE_S3_REGION: S3 region name
    BLOBGATE_KEY_PREFIX: Root under which every blob key is placed
    BLOBGATE_SIGNER_KEY: Hex-encoded 32-byte Ed25519 seed for envelope signing
    BLOBGATE_URL_SIGNING_SECRET: HMAC secret for filesystem download URLs
    BLOBGATE_PUBLIC_BASE_URL: Externally visible base URL of this service
    BLOBGATE_PRESIGNED_URL_EXPIRY: Download URL lifetime in seconds (default: 3600)
    BLOBGATE_RESERVED_TAGS: Comma-separated tag keys callers may not set
    BLOBGATE_DATA_PROTOCOL: Value of the Data-Protocol tag (default: "Blobgate")
    BLOBGATE_OBJECT_SIZE_LIMIT: Largest accepted payload in bytes (default: 1 GiB)
    BLOBGATE_REGISTRY_DIR: Directory of the private-collection name registry
    BLOBGATE_OWNERS_JSON: Static collection ownership mapping (JSON)
    BLOBGATE_OWNERSHIP_URL: External ownership authority base URL
    BLOBGATE_BUNDLER_URL: Bundler base URL for envelope publishing
    BLOBGATE_WRITE_WORKERS: Thread pool size for concurrent blob writes (default: 8)

SECURITY: The signer key, URL signing secret and owner credentials are never
logged or included in repr().
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from blobgate.errors import ConfigurationError
from blobgate.services.gateway import DEFAULT_OBJECT_SIZE_LIMIT, DEFAULT_PRESIGNED_URL_EXPIRY
from blobgate.tagging import DEFAULT_DATA_PROTOCOL, DEFAULT_RESERVED_TAGS

ENV_PREFIX = "BLOBGATE_"
DEFAULT_PUBLIC_BASE_URL = "http://localhost:8000"
DEFAULT_WRITE_WORKERS = 8


class ObjectStoreBackend(StrEnum):
    """Supported blob store backends."""

    FILESYSTEM = "filesystem"
    S3 = "s3"


class GatewaySettings(BaseModel):
    """Validated gateway configuration."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    database_url: str = Field(min_length=1)
    object_store_backend: ObjectStoreBackend = ObjectStoreBackend.FILESYSTEM
    object_store_base_dir: str | None = None
    s3_bucket: str | None = None
    s3_endpoint_url: str | None = None
    s3_region: str | None = None
    key_prefix: str = ""
    signer_key: str | None = Field(default=None, repr=False)
    url_signing_secret: str | None = Field(default=None, repr=False)
    public_base_url: str = DEFAULT_PUBLIC_BASE_URL
    presigned_url_expiry: int = Field(default=DEFAULT_PRESIGNED_URL_EXPIRY, gt=0)
    reserved_tags: frozenset[str] = DEFAULT_RESERVED_TAGS
    data_protocol: str = Field(default=DEFAULT_DATA_PROTOCOL, min_length=1)
    object_size_limit: int = Field(default=DEFAULT_OBJECT_SIZE_LIMIT, gt=0)
    registry_dir: str | None = None
    owners_json: str | None = Field(default=None, repr=False)
    ownership_url: str | None = None
    bundler_url: str | None = None
    write_workers: int = Field(default=DEFAULT_WRITE_WORKERS, ge=2)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> GatewaySettings:
        """Load settings from BLOBGATE_* environment variables.

        Args:
            environ: Mapping to read instead of os.environ (testing).

        Raises:
            ConfigurationError: If a required variable is missing or a value
                does not validate.
        """
        env = os.environ if environ is None else environ

        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is None or raw.strip() == "":
                continue
            values[name] = raw.strip()

        if "database_url" not in values:
            raise ConfigurationError(
                f"Tag index database not configured. Set {ENV_PREFIX}DATABASE_URL."
            )

        reserved = values.get("reserved_tags")
        if isinstance(reserved, str):
            values["reserved_tags"] = frozenset(
                part.strip().lower() for part in reserved.split(",") if part.strip()
            )

        try:
            settings = cls.model_validate(values)
        except ValidationError as e:
            fields = sorted({".".join(str(p) for p in err["loc"]) for err in e.errors()})
            names = ", ".join(f"{ENV_PREFIX}{f.upper()}" for f in fields)
            raise ConfigurationError(f"Invalid configuration for: {names}") from e

        settings.check_backend()
        return settings

    def check_backend(self) -> None:
        """Validate backend-specific requirements.

        Raises:
            ConfigurationError: If the s3 backend has no bucket.
        """
        if self.object_store_backend == ObjectStoreBackend.S3 and not self.s3_bucket:
            raise ConfigurationError(f"{ENV_PREFIX}S3_BUCKET is required for the s3 backend")

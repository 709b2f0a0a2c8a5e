"""Process-wide gateway context.

Builds every backend handle once (tag index engine, blob store client, HTTP
clients, write thread pool) and passes them explicitly to the gateway. Tests
construct their own context around temporary stores instead of patching
globals.
"""

from __future__ import annotations

import logging
import secrets
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from blobgate.envelope import Ed25519EnvelopeCodec
from blobgate.ownership import HttpOwnershipGate, OwnershipGate, StaticOwnershipGate
from blobgate.persistence.db import create_index_engine
from blobgate.persistence.repositories.tag_index import TagIndex
from blobgate.registry import FileNameRegistry
from blobgate.services.gateway import ObjectGateway
from blobgate.services.publish import BundlerPublisher
from blobgate.settings import GatewaySettings, ObjectStoreBackend
from blobgate.storage import ObjectStore
from blobgate.storage.filesystem_store import FilesystemObjectStore
from blobgate.storage.presign import UrlSigner
from blobgate.storage.s3_store import S3ObjectStore, create_s3_client

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass
class GatewayContext:
    """Everything a running gateway needs, built once per process."""

    settings: GatewaySettings
    gateway: ObjectGateway
    store: ObjectStore
    engine: Engine
    executor: ThreadPoolExecutor
    url_signer: UrlSigner | None = None
    closeables: list[object] = field(default_factory=list, repr=False)

    @classmethod
    def from_settings(cls, settings: GatewaySettings) -> GatewayContext:
        """Build the context from validated settings.

        Raises:
            ConfigurationError: If the signer key or owners mapping is invalid,
                or the database URL is missing.
        """
        url_signer: UrlSigner | None = None
        store: ObjectStore
        if settings.object_store_backend == ObjectStoreBackend.S3:
            client = create_s3_client(
                region=settings.s3_region,
                endpoint_url=settings.s3_endpoint_url,
            )
            store = S3ObjectStore(settings.s3_bucket or "", client=client)
        else:
            secret = settings.url_signing_secret
            if not secret:
                logger.warning(
                    "BLOBGATE_URL_SIGNING_SECRET not set; download URLs will not "
                    "survive a restart or work across replicas"
                )
                secret = secrets.token_hex(32)
            url_signer = UrlSigner(secret, settings.public_base_url)
            store = FilesystemObjectStore(settings.object_store_base_dir, url_signer=url_signer)

        engine = create_index_engine(settings.database_url)
        codec = Ed25519EnvelopeCodec.from_seed_hex(settings.signer_key)
        if codec.owner_address is None:
            logger.warning("BLOBGATE_SIGNER_KEY not set; unsigned stores will be rejected")

        closeables: list[object] = []
        ownership_gate: OwnershipGate | None = None
        if settings.ownership_url:
            http_gate = HttpOwnershipGate(settings.ownership_url)
            closeables.append(http_gate)
            ownership_gate = http_gate
        elif settings.owners_json:
            ownership_gate = StaticOwnershipGate.from_json(settings.owners_json)

        registry = FileNameRegistry(settings.registry_dir) if settings.registry_dir else None

        publisher: BundlerPublisher | None = None
        if settings.bundler_url:
            publisher = BundlerPublisher(settings.bundler_url)
            closeables.append(publisher)

        executor = ThreadPoolExecutor(
            max_workers=settings.write_workers,
            thread_name_prefix="blobgate-write",
        )

        gateway = ObjectGateway(
            store=store,
            codec=codec,
            tag_index=TagIndex(engine),
            executor=executor,
            ownership_gate=ownership_gate,
            registry=registry,
            publisher=publisher,
            key_prefix=settings.key_prefix,
            reserved_tags=settings.reserved_tags,
            data_protocol=settings.data_protocol,
            object_size_limit=settings.object_size_limit,
            presigned_url_expiry=settings.presigned_url_expiry,
        )

        logger.info(
            "Gateway context ready (store=%s, index=%s, signer=%s)",
            store.backend_name,
            engine.dialect.name,
            codec.owner_address or "none",
        )
        return cls(
            settings=settings,
            gateway=gateway,
            store=store,
            engine=engine,
            executor=executor,
            url_signer=url_signer,
            closeables=closeables,
        )

    @classmethod
    def from_env(cls) -> GatewayContext:
        """Build the context from BLOBGATE_* environment variables."""
        return cls.from_settings(GatewaySettings.from_env())

    def close(self) -> None:
        """Release pooled resources."""
        self.executor.shutdown(wait=True)
        for closeable in self.closeables:
            close = getattr(closeable, "close", None)
            if close is not None:
                close()
        self.engine.dispose()

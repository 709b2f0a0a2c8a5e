"""Pytest configuration and fixtures for Blobgate tests.

Every fixture builds real components around temporary resources: a
filesystem blob store under tmp_path, an in-memory SQLite tag index and an
Ed25519 signer with a fixed seed.
"""

from __future__ import annotations

from collections.abc import Iterator
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import pytest
from fastapi.testclient import TestClient

from blobgate.api.main import create_app
from blobgate.context import GatewayContext
from blobgate.envelope import Ed25519EnvelopeCodec
from blobgate.ownership import StaticOwnershipGate
from blobgate.persistence.db import create_index_engine
from blobgate.persistence.repositories.tag_index import TagIndex
from blobgate.registry import FileNameRegistry
from blobgate.services.gateway import ObjectGateway
from blobgate.settings import GatewaySettings
from blobgate.storage.filesystem_store import FilesystemObjectStore
from blobgate.storage.presign import UrlSigner

TEST_SIGNER_SEED = "07" * 32
TEST_URL_SECRET = "test-url-signing-secret"
TEST_BASE_URL = "http://testserver"
OWNED_COLLECTION = "vault"
OWNER_CREDENTIAL = "owner-token-123"


@pytest.fixture
def url_signer() -> UrlSigner:
    return UrlSigner(TEST_URL_SECRET, TEST_BASE_URL)


@pytest.fixture
def object_store(tmp_path: Path, url_signer: UrlSigner) -> FilesystemObjectStore:
    """Filesystem blob store under a temporary directory."""
    return FilesystemObjectStore(base_dir=tmp_path / "objects", url_signer=url_signer)


@pytest.fixture
def index_engine() -> Iterator[Any]:
    """In-memory SQLite engine shared by every connection of one test."""
    engine = create_index_engine("sqlite://")
    yield engine
    engine.dispose()


@pytest.fixture
def tag_index(index_engine: Any) -> TagIndex:
    index = TagIndex(index_engine)
    index.ensure_schema()
    return index


@pytest.fixture
def codec() -> Ed25519EnvelopeCodec:
    return Ed25519EnvelopeCodec.from_seed_hex(TEST_SIGNER_SEED)


@pytest.fixture
def write_pool() -> Iterator[ThreadPoolExecutor]:
    pool = ThreadPoolExecutor(max_workers=4, thread_name_prefix="test-write")
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def registry(tmp_path: Path) -> FileNameRegistry:
    return FileNameRegistry(tmp_path / "registry")


@pytest.fixture
def gateway(
    object_store: FilesystemObjectStore,
    codec: Ed25519EnvelopeCodec,
    tag_index: TagIndex,
    write_pool: ThreadPoolExecutor,
    registry: FileNameRegistry,
) -> ObjectGateway:
    """Fully wired gateway with a static owner for the "vault" collection."""
    return ObjectGateway(
        store=object_store,
        codec=codec,
        tag_index=tag_index,
        executor=write_pool,
        ownership_gate=StaticOwnershipGate({OWNED_COLLECTION: [OWNER_CREDENTIAL]}),
        registry=registry,
    )


@pytest.fixture
def gateway_context(
    gateway: ObjectGateway,
    object_store: FilesystemObjectStore,
    index_engine: Any,
    write_pool: ThreadPoolExecutor,
    url_signer: UrlSigner,
) -> GatewayContext:
    return GatewayContext(
        settings=GatewaySettings(database_url="sqlite://", public_base_url=TEST_BASE_URL),
        gateway=gateway,
        store=object_store,
        engine=index_engine,
        executor=write_pool,
        url_signer=url_signer,
    )


@pytest.fixture
def client(gateway_context: GatewayContext) -> TestClient:
    """Test client for an app bound to the test context."""
    app = create_app(gateway_context)
    return TestClient(app, raise_server_exceptions=False, follow_redirects=False)

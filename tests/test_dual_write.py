"""Tests for concurrent envelope/raw writes and the store failure contract.

- Both copies written: id returned, raw_stored=True
- Raw write failed: id still returned, raw_stored=False, envelope parses back
- Envelope write failed: BackendError(sub_write="envelope"), no id
- Index write failed: item stored, IndexOutcome(indexed=False), WARNING logged
- No compensation: a completed sibling write is never rolled back
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any

import pytest

from blobgate.errors import BackendError
from blobgate.persistence.repositories.tag_index import TagIndex
from blobgate.services.gateway import ObjectGateway
from blobgate.services.gateway.dual_write import (
    ENVELOPE_STEP,
    RAW_STEP,
    BlobWriteStep,
    DualWriteExecutor,
    WriteStepStatus,
)
from blobgate.storage.errors import StorageBackendError
from blobgate.storage.filesystem_store import FilesystemObjectStore
from blobgate.storage.models import StoredObjectMetadata
from blobgate.tagging import Tag


class FailingStore(FilesystemObjectStore):
    """Filesystem store whose puts fail for keys under given prefixes."""

    def __init__(self, base_dir: Path, failing_prefixes: tuple[str, ...]) -> None:
        super().__init__(base_dir=base_dir)
        self.failing_prefixes = failing_prefixes

    def put(
        self,
        key: str,
        data: bytes,
        *,
        content_type: str | None = None,
    ) -> StoredObjectMetadata:
        if key.startswith(self.failing_prefixes):
            raise StorageBackendError("simulated outage", key=key)
        return super().put(key, data, content_type=content_type)


class BrokenTagIndex(TagIndex):
    def index(self, dataitem_id: str, *args: Any, **kwargs: Any) -> int:
        raise BackendError("index unavailable", sub_write="index", item_id=dataitem_id)


def make_gateway(
    store: FilesystemObjectStore,
    index: TagIndex,
    pool: ThreadPoolExecutor,
    codec: Any,
) -> ObjectGateway:
    return ObjectGateway(store=store, codec=codec, tag_index=index, executor=pool)


class TestDualWriteExecutor:
    def test_all_steps_reported(
        self, object_store: FilesystemObjectStore, write_pool: ThreadPoolExecutor
    ) -> None:
        executor = DualWriteExecutor(object_store, write_pool)

        outcome = executor.execute(
            "item",
            [
                BlobWriteStep(ENVELOPE_STEP, "envelopes/item", b"env"),
                BlobWriteStep(RAW_STEP, "raw/item", b"raw", "text/plain"),
            ],
        )

        assert outcome.succeeded(ENVELOPE_STEP)
        assert outcome.succeeded(RAW_STEP)
        assert outcome.failed_steps == []
        assert object_store.get("raw/item").metadata.content_type == "text/plain"

    def test_failed_step_does_not_undo_sibling(
        self, tmp_path: Path, write_pool: ThreadPoolExecutor
    ) -> None:
        store = FailingStore(tmp_path, ("raw/",))
        executor = DualWriteExecutor(store, write_pool)

        outcome = executor.execute(
            "item",
            [
                BlobWriteStep(ENVELOPE_STEP, "envelopes/item", b"env"),
                BlobWriteStep(RAW_STEP, "raw/item", b"raw"),
            ],
        )

        raw = outcome.step(RAW_STEP)
        assert raw is not None
        assert raw.status == WriteStepStatus.FAILED
        assert isinstance(raw.error, StorageBackendError)
        assert outcome.failed_steps == [RAW_STEP]
        assert store.get("envelopes/item").body == b"env"

    def test_steps_run_concurrently(self, tmp_path: Path) -> None:
        barrier = threading.Barrier(2, timeout=5)

        class BarrierStore(FilesystemObjectStore):
            def put(
                self, key: str, data: bytes, *, content_type: str | None = None
            ) -> StoredObjectMetadata:
                # Both writes must be in flight at once to pass the barrier.
                barrier.wait()
                return super().put(key, data, content_type=content_type)

        with ThreadPoolExecutor(max_workers=2) as pool:
            outcome = DualWriteExecutor(BarrierStore(base_dir=tmp_path), pool).execute(
                "item",
                [
                    BlobWriteStep(ENVELOPE_STEP, "envelopes/item", b"env"),
                    BlobWriteStep(RAW_STEP, "raw/item", b"raw"),
                ],
            )

        assert outcome.failed_steps == []

    def test_unexpected_exception_propagates_after_all_steps(
        self, tmp_path: Path, write_pool: ThreadPoolExecutor
    ) -> None:
        class ExplodingStore(FilesystemObjectStore):
            def put(
                self, key: str, data: bytes, *, content_type: str | None = None
            ) -> StoredObjectMetadata:
                if key.startswith("raw/"):
                    raise RuntimeError("bug")
                return super().put(key, data, content_type=content_type)

        store = ExplodingStore(base_dir=tmp_path)

        with pytest.raises(RuntimeError):
            DualWriteExecutor(store, write_pool).execute(
                "item",
                [
                    BlobWriteStep(ENVELOPE_STEP, "envelopes/item", b"env"),
                    BlobWriteStep(RAW_STEP, "raw/item", b"raw"),
                ],
            )

        assert store.exists("envelopes/item")


class TestStoreFailureContract:
    def test_both_copies_written(
        self, gateway: ObjectGateway, object_store: FilesystemObjectStore
    ) -> None:
        result = gateway.store(b"hello", "text/plain", [("App", "demo")])

        assert result.raw_stored is True
        assert result.raw_error is None
        assert result.index.indexed is True
        assert object_store.get(result.raw_key or "").body == b"hello"
        assert object_store.exists(result.envelope_key)

    def test_raw_failure_still_returns_id(
        self,
        tmp_path: Path,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
        codec: Any,
    ) -> None:
        store = FailingStore(tmp_path, ("raw/",))
        gateway = make_gateway(store, tag_index, write_pool, codec)

        result = gateway.store(b"payload", "text/plain", [("App", "demo")])

        assert result.item_id
        assert result.raw_stored is False
        assert result.raw_error is not None
        assert not store.exists(gateway.raw_key(result.item_id))

        parsed = codec.parse(store.get(result.envelope_key).body)
        assert parsed.item_id == result.item_id
        assert parsed.body == b"payload"
        assert Tag("App", "demo") in parsed.tags

    def test_raw_failure_body_served_from_envelope(
        self,
        tmp_path: Path,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
        codec: Any,
    ) -> None:
        gateway = make_gateway(FailingStore(tmp_path, ("raw/",)), tag_index, write_pool, codec)
        result = gateway.store(b"payload", "image/png")

        body, content_type = gateway.fetch_body(result.item_id)

        assert body == b"payload"
        assert content_type == "image/png"

    def test_envelope_failure_raises(
        self,
        tmp_path: Path,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
        codec: Any,
    ) -> None:
        store = FailingStore(tmp_path, ("envelopes/",))
        gateway = make_gateway(store, tag_index, write_pool, codec)

        with pytest.raises(BackendError) as exc_info:
            gateway.store(b"payload", "text/plain", [("App", "demo")])

        assert exc_info.value.sub_write == "envelope"
        # No compensation: the raw copy written concurrently stays.
        assert len(store.list_keys("raw/")) == 1
        assert tag_index.query([("App", "demo")]).items == []

    def test_index_failure_returns_outcome(
        self,
        object_store: FilesystemObjectStore,
        index_engine: Any,
        write_pool: ThreadPoolExecutor,
        codec: Any,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        gateway = make_gateway(object_store, BrokenTagIndex(index_engine), write_pool, codec)

        with caplog.at_level(logging.WARNING, logger="blobgate.services.gateway.service"):
            result = gateway.store(b"payload", "text/plain")

        assert result.index.indexed is False
        assert result.index.error is not None
        assert result.raw_stored is True
        assert gateway.fetch_body(result.item_id)[0] == b"payload"
        assert any("Tag indexing failed" in r.getMessage() for r in caplog.records)

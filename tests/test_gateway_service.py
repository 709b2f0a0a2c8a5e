"""Tests for the object gateway service.

Covers store/resolve/describe, tag discovery through the service layer,
private collections with the ownership gate and name registry, and
envelope publishing.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from typing import Any
from unittest.mock import MagicMock

import pytest

from blobgate.envelope import Ed25519EnvelopeCodec
from blobgate.errors import (
    BackendError,
    ConfigurationError,
    InvalidCursorError,
    InvalidInputError,
    ItemNotFoundError,
    UnauthorizedError,
)
from blobgate.ownership import OwnershipCheckError, OwnershipGate
from blobgate.persistence.repositories.tag_index import TagIndex
from blobgate.registry import FileNameRegistry
from blobgate.services.gateway import ObjectGateway
from blobgate.services.gateway.service import MAX_QUERY_FILTERS
from blobgate.services.publish import PublishReceipt
from blobgate.storage.filesystem_store import FilesystemObjectStore
from blobgate.tagging import CONTENT_TYPE_TAG, DATA_PROTOCOL_TAG, Tag, compose_tags

OWNED_COLLECTION = "vault"
OWNER_CREDENTIAL = "owner-token-123"


class RaisingGate(OwnershipGate):
    def is_owner(self, collection: str, credential: str) -> bool:
        raise OwnershipCheckError("authority down")


class TestStore:
    def test_store_returns_content_derived_id(self, gateway: ObjectGateway) -> None:
        first = gateway.store(b"same", "text/plain", [("App", "x")])
        second = gateway.store(b"same", "text/plain", [("App", "x")])

        assert first.item_id == second.item_id
        assert first.envelope_key == f"envelopes/{first.item_id}"
        assert first.raw_key == f"raw/{first.item_id}"

    def test_store_composes_tags(self, gateway: ObjectGateway) -> None:
        result = gateway.store(
            b"img",
            "image/png",
            [("content-type", "image/webp"), ("Data-Protocol", "x"), ("App", "photos")],
        )

        assert result.tags == (
            Tag("content-type", "image/webp"),
            Tag(DATA_PROTOCOL_TAG, "Blobgate"),
            Tag("App", "photos"),
        )
        assert result.content_type == "image/webp"
        assert result.owner == gateway.owner_address

    def test_raw_copy_carries_content_type(
        self, gateway: ObjectGateway, object_store: FilesystemObjectStore
    ) -> None:
        result = gateway.store(b"img", "image/png")

        assert object_store.head(gateway.raw_key(result.item_id)).content_type == "image/png"

    def test_empty_payload_accepted(self, gateway: ObjectGateway) -> None:
        result = gateway.store(b"", "text/plain")

        assert gateway.fetch_body(result.item_id) == (b"", "text/plain")

    def test_payload_over_limit_rejected(
        self,
        object_store: FilesystemObjectStore,
        codec: Ed25519EnvelopeCodec,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
    ) -> None:
        gateway = ObjectGateway(
            store=object_store,
            codec=codec,
            tag_index=tag_index,
            executor=write_pool,
            object_size_limit=4,
        )

        with pytest.raises(InvalidInputError) as exc_info:
            gateway.store(b"12345", "text/plain")

        assert exc_info.value.reason == "payload_too_large"
        assert object_store.list_keys() == []

    def test_key_prefix_applied(
        self,
        object_store: FilesystemObjectStore,
        codec: Ed25519EnvelopeCodec,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
    ) -> None:
        gateway = ObjectGateway(
            store=object_store,
            codec=codec,
            tag_index=tag_index,
            executor=write_pool,
            key_prefix="/tenant-a/",
        )

        result = gateway.store(b"x", "text/plain")

        assert result.envelope_key == f"tenant-a/envelopes/{result.item_id}"
        assert object_store.exists(f"tenant-a/raw/{result.item_id}")

    def test_unsigned_gateway_rejects_store(
        self,
        object_store: FilesystemObjectStore,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
    ) -> None:
        gateway = ObjectGateway(
            store=object_store,
            codec=Ed25519EnvelopeCodec.from_seed_hex(None),
            tag_index=tag_index,
            executor=write_pool,
        )

        with pytest.raises(ConfigurationError):
            gateway.store(b"x", "text/plain")


class TestStoreSigned:
    def test_signed_envelope_tags_used_unchanged(
        self, gateway: ObjectGateway, codec: Ed25519EnvelopeCodec
    ) -> None:
        tags = (Tag(CONTENT_TYPE_TAG, "text/csv"), Tag("Data-Protocol", "Other"), Tag("a", "1"))
        signed = codec.sign(b"a,b\n1,2\n", tags)

        result = gateway.store_signed(signed.data)

        assert result.item_id == signed.item_id
        assert result.tags == tags
        assert result.content_type == "text/csv"
        assert gateway.fetch_body(result.item_id) == (b"a,b\n1,2\n", "text/csv")

    def test_foreign_signer_accepted(self, gateway: ObjectGateway) -> None:
        foreign = Ed25519EnvelopeCodec.from_seed_hex("11" * 32)
        signed = foreign.sign(b"x", compose_tags([], "text/plain"))

        result = gateway.store_signed(signed.data)

        assert result.owner == foreign.owner_address

    def test_invalid_envelope_rejected(self, gateway: ObjectGateway) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            gateway.store_signed(b"garbage")

        assert exc_info.value.reason == "invalid_envelope"


class TestReads:
    def test_resolve_returns_signed_url(self, gateway: ObjectGateway) -> None:
        result = gateway.store(b"x", "text/plain")

        url = gateway.resolve(result.item_id, expires_in=60)

        assert url.startswith(f"http://testserver/blobs/raw/{result.item_id}?")
        assert "signature=" in url

    def test_resolve_unknown_item(self, gateway: ObjectGateway) -> None:
        with pytest.raises(ItemNotFoundError):
            gateway.resolve("unknownid")

    @pytest.mark.parametrize("item_id", ["../etc", "a/b", "", "x" * 129])
    def test_malformed_id_rejected(self, gateway: ObjectGateway, item_id: str) -> None:
        with pytest.raises(InvalidInputError):
            gateway.resolve(item_id)

    def test_non_positive_expiry_rejected(self, gateway: ObjectGateway) -> None:
        result = gateway.store(b"x", "text/plain")

        with pytest.raises(InvalidInputError):
            gateway.resolve(result.item_id, expires_in=0)

    def test_retrieve_envelope_bytes_parse(
        self, gateway: ObjectGateway, codec: Ed25519EnvelopeCodec
    ) -> None:
        result = gateway.store(b"x", "text/plain", [("k", "v")])

        parsed = codec.parse(gateway.retrieve_envelope_bytes(result.item_id))

        assert parsed.item_id == result.item_id
        assert parsed.tags == result.tags

    def test_fetch_body_unknown_item(self, gateway: ObjectGateway) -> None:
        with pytest.raises(ItemNotFoundError):
            gateway.fetch_body("unknownid")

    def test_describe_reports_copies_and_tags(self, gateway: ObjectGateway) -> None:
        result = gateway.store(b"hello", "text/plain", [("App", "x")])

        descriptor = gateway.describe(result.item_id)

        assert descriptor.exists
        assert descriptor.envelope_stored and descriptor.raw_stored
        assert descriptor.size_bytes == 5
        assert descriptor.content_type == "text/plain"
        assert ("App", "x") in descriptor.tags

    def test_describe_envelope_only(
        self, gateway: ObjectGateway, object_store: FilesystemObjectStore
    ) -> None:
        result = gateway.store(b"hello", "text/plain")
        raw_dir = object_store.base_dir / gateway.raw_key(result.item_id)
        for child in raw_dir.iterdir():
            child.unlink()

        descriptor = gateway.describe(result.item_id)

        assert descriptor.envelope_stored is True
        assert descriptor.raw_stored is False
        assert descriptor.size_bytes is None

    def test_describe_unknown_item(self, gateway: ObjectGateway) -> None:
        with pytest.raises(ItemNotFoundError):
            gateway.describe("unknownid")


class TestQueryByTags:
    def test_stored_items_discoverable(self, gateway: ObjectGateway) -> None:
        first = gateway.store(b"1", "text/plain", [("App", "x")])
        second = gateway.store(b"2", "text/plain", [("App", "x"), ("Kind", "b")])

        page = gateway.query_by_tags([("App", "x"), ("Kind", "b")])

        assert [r.dataitem_id for r in page.items] == [second.item_id]
        all_ids = {r.dataitem_id for r in gateway.query_by_tags([("App", "x")]).items}
        assert all_ids == {first.item_id, second.item_id}

    def test_system_tags_are_indexed(self, gateway: ObjectGateway) -> None:
        result = gateway.store(b"1", "image/png")

        page = gateway.query_by_tags([(CONTENT_TYPE_TAG, "image/png")])

        assert [r.dataitem_id for r in page.items] == [result.item_id]
        assert page.items[0].content_type == "image/png"

    def test_empty_filters_skip_backend(self, gateway: ObjectGateway) -> None:
        gateway._tag_index = MagicMock()

        page = gateway.query_by_tags([])

        assert page.items == []
        assert page.has_more is False
        gateway._tag_index.query.assert_not_called()

    def test_filters_normalized_to_nothing_skip_backend(self, gateway: ObjectGateway) -> None:
        gateway._tag_index = MagicMock()

        page = gateway.query_by_tags([("  ", "x"), ("k", "")])

        assert page.items == []
        gateway._tag_index.query.assert_not_called()

    @pytest.mark.parametrize("first", [0, -1, 101])
    def test_page_size_out_of_range(self, gateway: ObjectGateway, first: int) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            gateway.query_by_tags([("a", "b")], first=first)

        assert exc_info.value.reason == "page_size_out_of_range"

    def test_invalid_cursor(self, gateway: ObjectGateway) -> None:
        with pytest.raises(InvalidCursorError):
            gateway.query_by_tags([("a", "b")], after="not-a-cursor!!")

    def test_invalid_cursor_reported_even_without_filters(self, gateway: ObjectGateway) -> None:
        with pytest.raises(InvalidCursorError):
            gateway.query_by_tags([], after="not-a-cursor!!")

    def test_too_many_filters(self, gateway: ObjectGateway) -> None:
        filters = [(f"k{i}", "v") for i in range(MAX_QUERY_FILTERS + 1)]

        with pytest.raises(InvalidInputError) as exc_info:
            gateway.query_by_tags(filters)

        assert exc_info.value.reason == "too_many_filters"

    def test_pagination_through_service(self, gateway: ObjectGateway) -> None:
        ids = {
            gateway.store(f"{i}".encode(), "text/plain", [("Batch", "1")]).item_id
            for i in range(5)
        }

        seen: list[str] = []
        after = None
        while True:
            page = gateway.query_by_tags([("Batch", "1")], first=2, after=after)
            seen.extend(r.dataitem_id for r in page.items)
            if not page.has_more:
                break
            after = page.next_cursor

        assert len(seen) == len(ids)
        assert set(seen) == ids


class TestPrivateCollections:
    def test_owner_can_store(
        self, gateway: ObjectGateway, object_store: FilesystemObjectStore
    ) -> None:
        result = gateway.store_private(
            b"secret",
            OWNED_COLLECTION,
            OWNER_CREDENTIAL,
            folder="docs/2026",
            declared_content_type="text/plain",
        )

        assert result.envelope_key == f"{OWNED_COLLECTION}/docs/2026/{result.item_id}"
        assert result.raw_key is None
        assert result.raw_stored is False
        assert object_store.exists(result.envelope_key)
        assert not object_store.exists(gateway.raw_key(result.item_id))

    def test_private_item_is_indexed(self, gateway: ObjectGateway) -> None:
        result = gateway.store_private(
            b"secret", OWNED_COLLECTION, OWNER_CREDENTIAL, extra_tags=[("Project", "p1")]
        )

        page = gateway.query_by_tags([("Project", "p1")])

        assert [r.dataitem_id for r in page.items] == [result.item_id]

    def test_non_owner_rejected_before_write(
        self, gateway: ObjectGateway, object_store: FilesystemObjectStore
    ) -> None:
        with pytest.raises(UnauthorizedError):
            gateway.store_private(b"x", OWNED_COLLECTION, "wrong-token")

        assert object_store.list_keys() == []

    def test_missing_credential_rejected(self, gateway: ObjectGateway) -> None:
        with pytest.raises(UnauthorizedError):
            gateway.store_private(b"x", OWNED_COLLECTION, None)

    def test_unknown_collection_rejected(self, gateway: ObjectGateway) -> None:
        with pytest.raises(UnauthorizedError):
            gateway.store_private(b"x", "someone-else", OWNER_CREDENTIAL)

    def test_gate_error_is_unauthorized(
        self,
        object_store: FilesystemObjectStore,
        codec: Ed25519EnvelopeCodec,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
    ) -> None:
        gateway = ObjectGateway(
            store=object_store,
            codec=codec,
            tag_index=tag_index,
            executor=write_pool,
            ownership_gate=RaisingGate(),
        )

        with pytest.raises(UnauthorizedError):
            gateway.store_private(b"x", OWNED_COLLECTION, OWNER_CREDENTIAL)

    def test_no_gate_is_configuration_error(
        self,
        object_store: FilesystemObjectStore,
        codec: Ed25519EnvelopeCodec,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
    ) -> None:
        gateway = ObjectGateway(
            store=object_store, codec=codec, tag_index=tag_index, executor=write_pool
        )

        with pytest.raises(ConfigurationError):
            gateway.store_private(b"x", OWNED_COLLECTION, OWNER_CREDENTIAL)

    @pytest.mark.parametrize("collection", ["envelopes", "raw", "../x", "", "-leading"])
    def test_invalid_collection_rejected(self, gateway: ObjectGateway, collection: str) -> None:
        with pytest.raises(InvalidInputError):
            gateway.store_private(b"x", collection, OWNER_CREDENTIAL)

    def test_traversal_folder_rejected(self, gateway: ObjectGateway) -> None:
        with pytest.raises(InvalidInputError) as exc_info:
            gateway.store_private(b"x", OWNED_COLLECTION, OWNER_CREDENTIAL, folder="../../etc")

        assert exc_info.value.reason == "invalid_folder"

    def test_declared_name_registered(
        self, gateway: ObjectGateway, registry: FileNameRegistry
    ) -> None:
        result = gateway.store_private(
            b"x", OWNED_COLLECTION, OWNER_CREDENTIAL, declared_name="  report.pdf "
        )

        assert result.registered_name == "report.pdf"
        entries = gateway.list_named(OWNED_COLLECTION)
        assert [(e.dataitem_id, e.dataitem_name) for e in entries] == [
            (result.item_id, "report.pdf")
        ]
        assert registry.list_entries(OWNED_COLLECTION) == entries

    def test_signed_private_item(self, gateway: ObjectGateway, codec: Ed25519EnvelopeCodec) -> None:
        signed = codec.sign(b"x", (Tag(CONTENT_TYPE_TAG, "text/csv"),))

        result = gateway.store_private(
            signed.data, OWNED_COLLECTION, OWNER_CREDENTIAL, is_signed=True
        )

        assert result.item_id == signed.item_id
        assert result.content_type == "text/csv"

    def test_resolve_private(self, gateway: ObjectGateway) -> None:
        result = gateway.store_private(b"x", OWNED_COLLECTION, OWNER_CREDENTIAL, folder="f")

        url = gateway.resolve_private(OWNED_COLLECTION, result.item_id, folder="f")

        assert f"/blobs/{OWNED_COLLECTION}/f/{result.item_id}?" in url
        with pytest.raises(ItemNotFoundError):
            gateway.resolve_private(OWNED_COLLECTION, result.item_id)

    def test_registry_write_failure(
        self,
        gateway: ObjectGateway,
        object_store: FilesystemObjectStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def fail(*args: Any, **kwargs: Any) -> None:
            raise BackendError("disk full", sub_write="registry")

        monkeypatch.setattr(FileNameRegistry, "set_name", fail)

        with pytest.raises(BackendError) as exc_info:
            gateway.store_private(b"x", OWNED_COLLECTION, OWNER_CREDENTIAL, declared_name="n")

        assert exc_info.value.sub_write == "registry"
        assert len(object_store.list_keys(f"{OWNED_COLLECTION}/")) == 1


class TestPublish:
    def test_publish_without_bundler(self, gateway: ObjectGateway) -> None:
        with pytest.raises(ConfigurationError):
            gateway.publish("anything")

    def test_publish_forwards_envelope(
        self,
        object_store: FilesystemObjectStore,
        codec: Ed25519EnvelopeCodec,
        tag_index: TagIndex,
        write_pool: ThreadPoolExecutor,
    ) -> None:
        publisher = MagicMock()
        publisher.publish.return_value = PublishReceipt(item_id="x", status_code=200)
        gateway = ObjectGateway(
            store=object_store,
            codec=codec,
            tag_index=tag_index,
            executor=write_pool,
            publisher=publisher,
        )
        result = gateway.store(b"x", "text/plain")

        gateway.publish(result.item_id)

        publisher.publish.assert_called_once_with(
            result.item_id, object_store.get(result.envelope_key).body
        )

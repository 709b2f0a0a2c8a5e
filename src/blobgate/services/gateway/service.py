"""Object gateway service: store, resolve and discover content-addressed items.

Orchestrates a store operation:
1. Validate inputs (size ceiling, collection/folder names)
2. Compose the canonical tag set (or take the tags of a pre-signed envelope)
3. Sign the envelope; its id is derived from the signed bytes
4. Write the envelope and raw copies concurrently (no rollback)
5. Record the tags in the tag index as a secondary outcome

Failure contract:
- Envelope write failed: BackendError(sub_write="envelope"), no id returned
- Raw write failed: id returned with raw_stored=False; the item exists
- Index write failed: id returned with index.indexed=False; logged at WARNING
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence
from concurrent.futures import Executor
from typing import TYPE_CHECKING

from blobgate.envelope import EnvelopeCodec, EnvelopeError, ParsedEnvelope
from blobgate.errors import (
    BackendError,
    ConfigurationError,
    InvalidInputError,
    ItemNotFoundError,
    UnauthorizedError,
)
from blobgate.ownership import OwnershipCheckError, OwnershipGate
from blobgate.persistence.cursor import decode_cursor
from blobgate.persistence.repositories.tag_index import (
    DEFAULT_PAGE_SIZE,
    MAX_PAGE_SIZE,
    TagIndex,
    TagQueryPage,
)
from blobgate.registry import FileNameRegistry, RegistryEntry
from blobgate.services.gateway.dual_write import (
    ENVELOPE_STEP,
    RAW_STEP,
    BlobWriteStep,
    DualWriteExecutor,
)
from blobgate.services.gateway.models import IndexOutcome, ItemDescriptor, StoreResult
from blobgate.storage import (
    ObjectNotFoundError,
    ObjectStorageError,
    ObjectStore,
    PathTraversalError,
    validate_key,
)
from blobgate.tagging import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_DATA_PROTOCOL,
    DEFAULT_RESERVED_TAGS,
    Tag,
    compose_tags,
    content_type_of,
    normalize_tag_pairs,
)

if TYPE_CHECKING:
    from blobgate.services.publish import BundlerPublisher, PublishReceipt

logger = logging.getLogger(__name__)

ENVELOPE_NAMESPACE = "envelopes"
RAW_NAMESPACE = "raw"
DEFAULT_OBJECT_SIZE_LIMIT = 1024 * 1024 * 1024  # 1 GiB
DEFAULT_PRESIGNED_URL_EXPIRY = 3600
MAX_QUERY_FILTERS = 100

_ITEM_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]{1,128}$")
_COLLECTION_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_.-]{0,254}$")
_RESERVED_COLLECTIONS = frozenset({ENVELOPE_NAMESPACE, RAW_NAMESPACE})


def _normalize_prefix(prefix: str) -> str:
    prefix = prefix.strip().strip("/")
    return f"{prefix}/" if prefix else ""


class ObjectGateway:
    """Content-addressed object gateway.

    All collaborators are injected; the gateway holds no global state and can
    be shared across request threads.
    """

    def __init__(
        self,
        *,
        store: ObjectStore,
        codec: EnvelopeCodec,
        tag_index: TagIndex,
        executor: Executor,
        ownership_gate: OwnershipGate | None = None,
        registry: FileNameRegistry | None = None,
        publisher: BundlerPublisher | None = None,
        key_prefix: str = "",
        reserved_tags: Iterable[str] = DEFAULT_RESERVED_TAGS,
        data_protocol: str = DEFAULT_DATA_PROTOCOL,
        object_size_limit: int = DEFAULT_OBJECT_SIZE_LIMIT,
        presigned_url_expiry: int = DEFAULT_PRESIGNED_URL_EXPIRY,
    ) -> None:
        """Initialize the gateway.

        Args:
            store: Blob store holding envelope and raw copies.
            codec: Envelope signer/parser.
            tag_index: Tag index repository.
            executor: Shared pool for concurrent blob writes.
            ownership_gate: Ownership oracle for private collections.
            registry: Name registry for private collections.
            publisher: Bundler publisher for envelopes.
            key_prefix: Root under which every blob key is placed.
            reserved_tags: Tag keys callers may not set.
            data_protocol: Value of the Data-Protocol tag.
            object_size_limit: Largest accepted payload in bytes.
            presigned_url_expiry: Default lifetime of download URLs in seconds.
        """
        self._store = store
        self._codec = codec
        self._tag_index = tag_index
        self._writer = DualWriteExecutor(store, executor)
        self._ownership_gate = ownership_gate
        self._registry = registry
        self._publisher = publisher
        self._key_prefix = _normalize_prefix(key_prefix)
        self._reserved_tags = frozenset(name.strip().lower() for name in reserved_tags)
        self._data_protocol = data_protocol
        self._object_size_limit = object_size_limit
        self._presigned_url_expiry = presigned_url_expiry

    @property
    def owner_address(self) -> str | None:
        return self._codec.owner_address

    @property
    def tag_index(self) -> TagIndex:
        return self._tag_index

    # --- Key layout ---

    def envelope_key(self, item_id: str) -> str:
        return f"{self._key_prefix}{ENVELOPE_NAMESPACE}/{item_id}"

    def raw_key(self, item_id: str) -> str:
        return f"{self._key_prefix}{RAW_NAMESPACE}/{item_id}"

    def private_key(self, collection: str, item_id: str, folder: str | None = None) -> str:
        """Key of a private item: {collection}/{folder}/{id}, folder optional."""
        parts = [collection]
        if folder:
            parts.append(folder.strip("/"))
        parts.append(item_id)
        key = f"{self._key_prefix}{'/'.join(parts)}"
        try:
            validate_key(key)
        except PathTraversalError as e:
            raise InvalidInputError(
                "Folder contains unsupported characters",
                reason="invalid_folder",
            ) from e
        return key

    # --- Validation ---

    def _check_item_id(self, item_id: str) -> None:
        if not _ITEM_ID_PATTERN.match(item_id):
            raise InvalidInputError(f"Malformed item id: {item_id!r}", reason="invalid_item_id")

    def _check_size(self, data: bytes) -> None:
        if len(data) > self._object_size_limit:
            raise InvalidInputError(
                f"Payload of {len(data)} bytes exceeds limit of {self._object_size_limit}",
                reason="payload_too_large",
            )

    def _check_collection(self, collection: str) -> None:
        if not _COLLECTION_PATTERN.match(collection) or collection in _RESERVED_COLLECTIONS:
            raise InvalidInputError(
                f"Invalid collection name: {collection!r}",
                reason="invalid_collection",
            )

    # --- Envelope construction ---

    def _parse_signed(self, envelope: bytes) -> ParsedEnvelope:
        try:
            return self._codec.parse(envelope)
        except EnvelopeError as e:
            raise InvalidInputError(str(e), reason="invalid_envelope") from e

    def _build(
        self,
        body: bytes,
        declared_content_type: str,
        extra_tags: Iterable[Tag | Sequence[str]],
    ) -> tuple[bytes, ParsedEnvelope]:
        tags = compose_tags(
            extra_tags,
            declared_content_type,
            self._reserved_tags,
            data_protocol=self._data_protocol,
        )
        try:
            signed = self._codec.sign(body, tags)
        except EnvelopeError as e:
            raise InvalidInputError(str(e), reason="invalid_tags") from e
        parsed = ParsedEnvelope(
            item_id=signed.item_id,
            tags=signed.tags,
            body=body,
            owner=signed.owner,
        )
        return signed.data, parsed

    # --- Secondary index write ---

    def _index(self, item_id: str, content_type: str, tags: Sequence[Tag]) -> IndexOutcome:
        try:
            rows = self._tag_index.index(item_id, content_type, tags)
        except BackendError as e:
            logger.warning(
                "Tag indexing failed for %s; item stored but not discoverable: %s", item_id, e
            )
            return IndexOutcome(indexed=False, error=str(e))
        return IndexOutcome(indexed=True, rows=rows)

    # --- Public store operations ---

    def store(
        self,
        body: bytes,
        declared_content_type: str,
        extra_tags: Iterable[Tag | Sequence[str]] = (),
    ) -> StoreResult:
        """Sign and store a payload with composed tags.

        Args:
            body: Raw payload.
            declared_content_type: Content type from transport metadata.
            extra_tags: Caller tags, subject to composition rules.

        Returns:
            StoreResult; raw_stored and index report the secondary outcomes.

        Raises:
            InvalidInputError: If the payload is too large.
            ConfigurationError: If no signing key is configured.
            BackendError: If the envelope write fails (sub_write="envelope").
        """
        self._check_size(body)
        envelope_data, parsed = self._build(body, declared_content_type, extra_tags)
        return self._persist(envelope_data, parsed)

    def store_signed(self, envelope: bytes) -> StoreResult:
        """Store a pre-signed envelope using its own tags.

        No tag composition happens; the envelope is verified and its tags and
        content type are taken as-is.

        Raises:
            InvalidInputError: If the envelope is malformed, fails
                verification, or exceeds the size ceiling.
            BackendError: If the envelope write fails (sub_write="envelope").
        """
        self._check_size(envelope)
        parsed = self._parse_signed(envelope)
        return self._persist(envelope, parsed)

    def _persist(self, envelope_data: bytes, parsed: ParsedEnvelope) -> StoreResult:
        item_id = parsed.item_id
        content_type = content_type_of(parsed.tags)
        envelope_key = self.envelope_key(item_id)
        raw_key = self.raw_key(item_id)

        outcome = self._writer.execute(
            item_id,
            [
                BlobWriteStep(ENVELOPE_STEP, envelope_key, envelope_data),
                BlobWriteStep(RAW_STEP, raw_key, parsed.body, content_type),
            ],
        )

        envelope_result = outcome.step(ENVELOPE_STEP)
        if envelope_result is None or not envelope_result.succeeded:
            cause = envelope_result.error if envelope_result else None
            raise BackendError(
                f"Envelope write failed: {cause}",
                sub_write="envelope",
                item_id=item_id,
                cause=cause,
            )

        raw_result = outcome.step(RAW_STEP)
        raw_stored = raw_result is not None and raw_result.succeeded
        raw_error = None
        if not raw_stored:
            raw_error = "raw write failed"
            if raw_result is not None and raw_result.error is not None:
                raw_error = str(raw_result.error)
            logger.warning("Raw copy of %s not stored; envelope copy is authoritative", item_id)

        index_outcome = self._index(item_id, content_type, parsed.tags)

        logger.info(
            "Stored item %s (content_type=%s, raw_stored=%s, indexed=%s)",
            item_id,
            content_type,
            raw_stored,
            index_outcome.indexed,
        )
        return StoreResult(
            item_id=item_id,
            content_type=content_type,
            tags=parsed.tags,
            owner=parsed.owner,
            envelope_key=envelope_key,
            raw_key=raw_key,
            raw_stored=raw_stored,
            raw_error=raw_error,
            index=index_outcome,
        )

    # --- Reads ---

    def _get_bytes(self, key: str, item_id: str) -> tuple[bytes, str | None]:
        try:
            obj = self._store.get(key)
        except ObjectNotFoundError as e:
            raise ItemNotFoundError(item_id) from e
        except ObjectStorageError as e:
            raise BackendError(
                f"Blob read failed: {e}",
                sub_write="read",
                item_id=item_id,
                cause=e,
            ) from e
        return obj.body, obj.metadata.content_type

    def _presign(self, key: str, item_id: str, expires_in: int | None) -> str:
        lifetime = expires_in if expires_in is not None else self._presigned_url_expiry
        if lifetime <= 0:
            raise InvalidInputError("URL lifetime must be positive", reason="invalid_expiry")
        try:
            if not self._store.exists(key):
                raise ItemNotFoundError(item_id)
            return self._store.presigned_url(key, expires_in=lifetime)
        except ObjectStorageError as e:
            raise BackendError(
                f"Could not issue download URL: {e}",
                sub_write="read",
                item_id=item_id,
                cause=e,
            ) from e

    def resolve(self, item_id: str, expires_in: int | None = None) -> str:
        """Return a time-limited download URL for the raw copy.

        Raises:
            InvalidInputError: If the id is malformed.
            ItemNotFoundError: If no raw copy exists.
            BackendError: If the URL cannot be issued.
        """
        self._check_item_id(item_id)
        return self._presign(self.raw_key(item_id), item_id, expires_in)

    def retrieve_envelope_bytes(self, item_id: str) -> bytes:
        """Return the stored envelope bytes.

        Raises:
            ItemNotFoundError: If no envelope copy exists.
        """
        self._check_item_id(item_id)
        data, _ = self._get_bytes(self.envelope_key(item_id), item_id)
        return data

    def fetch_body(self, item_id: str) -> tuple[bytes, str]:
        """Return the payload and its content type.

        Reads the raw copy; when it is absent, extracts the body from the
        envelope copy.

        Raises:
            ItemNotFoundError: If neither copy exists.
        """
        self._check_item_id(item_id)
        try:
            body, content_type = self._get_bytes(self.raw_key(item_id), item_id)
            return body, content_type or DEFAULT_CONTENT_TYPE
        except ItemNotFoundError:
            logger.debug("Raw copy of %s missing; falling back to envelope", item_id)

        envelope, _ = self._get_bytes(self.envelope_key(item_id), item_id)
        try:
            parsed = self._codec.parse(envelope)
        except EnvelopeError as e:
            raise BackendError(
                f"Stored envelope is unreadable: {e}",
                sub_write="read",
                item_id=item_id,
                cause=e,
            ) from e
        return parsed.body, content_type_of(parsed.tags)

    def describe(self, item_id: str) -> ItemDescriptor:
        """Report which representations of an item exist.

        Raises:
            ItemNotFoundError: If neither copy exists.
            BackendError: If the blob store or tag index cannot be read.
        """
        self._check_item_id(item_id)
        envelope_key = self.envelope_key(item_id)
        raw_key = self.raw_key(item_id)

        heads = {}
        for key in (envelope_key, raw_key):
            try:
                heads[key] = self._store.head(key)
            except ObjectNotFoundError:
                heads[key] = None
            except ObjectStorageError as e:
                raise BackendError(
                    f"Blob head failed: {e}",
                    sub_write="read",
                    item_id=item_id,
                    cause=e,
                ) from e

        envelope_meta = heads[envelope_key]
        raw_meta = heads[raw_key]
        if envelope_meta is None and raw_meta is None:
            raise ItemNotFoundError(item_id)

        tags = [(t.tag_key, t.tag_value) for t in self._tag_index.tags_for(item_id)]
        return ItemDescriptor(
            item_id=item_id,
            envelope_key=envelope_key,
            raw_key=raw_key,
            envelope_stored=envelope_meta is not None,
            raw_stored=raw_meta is not None,
            content_type=raw_meta.content_type if raw_meta else None,
            size_bytes=raw_meta.size_bytes if raw_meta else None,
            tags=tags,
        )

    # --- Discovery ---

    def query_by_tags(
        self,
        filters: Iterable[Tag | Sequence[str]],
        first: int = DEFAULT_PAGE_SIZE,
        after: str | None = None,
    ) -> TagQueryPage:
        """Find items carrying every filter tag, newest first.

        Args:
            filters: Tag equality filters (AND).
            first: Page size in [1, MAX_PAGE_SIZE].
            after: Cursor from a previous page's next_cursor.

        Returns:
            TagQueryPage. Empty filters give an empty page without touching
            the index backend.

        Raises:
            InvalidInputError: For a page size out of range, too many
                filters, or a malformed cursor.
            BackendError: If the index backend fails.
        """
        if not 1 <= first <= MAX_PAGE_SIZE:
            raise InvalidInputError(
                f"Page size must be between 1 and {MAX_PAGE_SIZE}",
                reason="page_size_out_of_range",
            )

        cursor = decode_cursor(after) if after else None

        normalized = normalize_tag_pairs(filters)
        if len(normalized) > MAX_QUERY_FILTERS:
            raise InvalidInputError(
                f"At most {MAX_QUERY_FILTERS} filters are allowed",
                reason="too_many_filters",
            )
        if not normalized:
            return TagQueryPage.empty()

        return self._tag_index.query(normalized, first=first, after=cursor)

    # --- Private collections ---

    def _require_owner(self, collection: str, credential: str | None) -> None:
        if self._ownership_gate is None:
            raise ConfigurationError("No ownership gate configured for private collections")
        if not credential:
            raise UnauthorizedError("Missing collection credential", collection=collection)
        try:
            allowed = self._ownership_gate.is_owner(collection, credential)
        except OwnershipCheckError as e:
            logger.warning("Ownership check failed for collection %s: %s", collection, e)
            raise UnauthorizedError(
                "Ownership could not be verified",
                collection=collection,
            ) from e
        if not allowed:
            raise UnauthorizedError(collection=collection)

    def _require_registry(self) -> FileNameRegistry:
        if self._registry is None:
            raise ConfigurationError("No name registry configured")
        return self._registry

    def store_private(
        self,
        body: bytes,
        collection: str,
        credential: str | None,
        *,
        folder: str | None = None,
        declared_name: str | None = None,
        is_signed: bool = False,
        declared_content_type: str = "",
        extra_tags: Iterable[Tag | Sequence[str]] = (),
    ) -> StoreResult:
        """Store an item in a caller-owned collection.

        The ownership check runs before any side effect. The envelope is the
        only copy, at {collection}/{folder}/{id}.

        Args:
            body: Payload, or a complete envelope when is_signed is set.
            collection: Target collection name.
            credential: Caller credential checked by the ownership gate.
            folder: Optional sub-path inside the collection.
            declared_name: Human-readable name to record in the registry.
            is_signed: body is a pre-signed envelope.
            declared_content_type: Content type for unsigned payloads.
            extra_tags: Caller tags for unsigned payloads.

        Raises:
            UnauthorizedError: If the credential does not own the collection.
            InvalidInputError: For malformed names, payloads or envelopes.
            ConfigurationError: If the gate, registry or signer is missing.
            BackendError: If the envelope or registry write fails.
        """
        self._check_collection(collection)
        self._require_owner(collection, credential)
        name = declared_name.strip() if declared_name else None
        if name:
            self._require_registry()
        self._check_size(body)

        if is_signed:
            envelope_data, parsed = body, self._parse_signed(body)
        else:
            envelope_data, parsed = self._build(body, declared_content_type, extra_tags)

        item_id = parsed.item_id
        key = self.private_key(collection, item_id, folder)
        content_type = content_type_of(parsed.tags)

        outcome = self._writer.execute(item_id, [BlobWriteStep(ENVELOPE_STEP, key, envelope_data)])
        envelope_result = outcome.step(ENVELOPE_STEP)
        if envelope_result is None or not envelope_result.succeeded:
            cause = envelope_result.error if envelope_result else None
            raise BackendError(
                f"Private envelope write failed: {cause}",
                sub_write="envelope",
                item_id=item_id,
                cause=cause,
            )

        index_outcome = self._index(item_id, content_type, parsed.tags)

        if name:
            self._require_registry().set_name(collection, item_id, name)

        logger.info("Stored private item %s in collection %s", item_id, collection)
        return StoreResult(
            item_id=item_id,
            content_type=content_type,
            tags=parsed.tags,
            owner=parsed.owner,
            envelope_key=key,
            raw_key=None,
            raw_stored=False,
            index=index_outcome,
            registered_name=name,
        )

    def list_named(self, collection: str) -> list[RegistryEntry]:
        """Return the named items of a collection.

        Raises:
            InvalidInputError: If the collection name is malformed.
            ConfigurationError: If no registry is configured.
        """
        self._check_collection(collection)
        return self._require_registry().list_entries(collection)

    def resolve_private(
        self,
        collection: str,
        item_id: str,
        folder: str | None = None,
        expires_in: int | None = None,
    ) -> str:
        """Return a download URL for a private item's envelope.

        Raises:
            ItemNotFoundError: If the item is not in the collection/folder.
        """
        self._check_collection(collection)
        self._check_item_id(item_id)
        return self._presign(self.private_key(collection, item_id, folder), item_id, expires_in)

    # --- Publishing ---

    def publish(self, item_id: str) -> PublishReceipt:
        """Forward a stored envelope to the bundler.

        Raises:
            ConfigurationError: If no bundler is configured.
            ItemNotFoundError: If no envelope copy exists.
            BackendError: If the bundler rejects the envelope.
        """
        if self._publisher is None:
            raise ConfigurationError("No bundler configured")
        envelope = self.retrieve_envelope_bytes(item_id)
        return self._publisher.publish(item_id, envelope)

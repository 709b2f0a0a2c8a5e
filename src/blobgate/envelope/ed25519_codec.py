"""Ed25519 envelope codec.

Binary layout (all integers big-endian):

    magic        4 bytes   b"BGE1"
    owner       32 bytes   raw Ed25519 public key
    signature   64 bytes   Ed25519 signature over magic|owner|tags_block|body
    tags_len     4 bytes   length of tags_block
    tags_block             u16 count, then per tag: u16 klen, key, u16 vlen, value
    body                   remaining bytes

The item id is the unpadded urlsafe base64 of SHA256(signature). Ed25519
signatures are deterministic, so the same key, tags and body always produce
the same id.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import struct
from collections.abc import Sequence

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)

from blobgate.envelope.codec import (
    EnvelopeCodec,
    EnvelopeFormatError,
    EnvelopeSignatureError,
    ParsedEnvelope,
    SignedEnvelope,
)
from blobgate.errors import ConfigurationError
from blobgate.tagging import MAX_TAG_BYTES, Tag

logger = logging.getLogger(__name__)

MAGIC = b"BGE1"
_OWNER_LEN = 32
_SIGNATURE_LEN = 64
_HEADER_LEN = len(MAGIC) + _OWNER_LEN + _SIGNATURE_LEN + 4
_MAX_TAG_COUNT = 0xFFFF


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def envelope_id(signature: bytes) -> str:
    """Derive the item id from an envelope signature."""
    return _b64url(hashlib.sha256(signature).digest())


def owner_address(public_key_bytes: bytes) -> str:
    """Derive the owner address from a raw public key."""
    return _b64url(hashlib.sha256(public_key_bytes).digest())


def _encode_tags(tags: Sequence[Tag]) -> bytes:
    if len(tags) > _MAX_TAG_COUNT:
        raise EnvelopeFormatError(f"Too many tags: {len(tags)}")
    parts = [struct.pack(">H", len(tags))]
    for tag in tags:
        key = tag.key.encode("utf-8")
        value = tag.value.encode("utf-8")
        if len(key) > MAX_TAG_BYTES or len(value) > MAX_TAG_BYTES:
            raise EnvelopeFormatError(f"Tag exceeds {MAX_TAG_BYTES} bytes: {tag.key[:32]!r}")
        parts.append(struct.pack(">H", len(key)) + key)
        parts.append(struct.pack(">H", len(value)) + value)
    return b"".join(parts)


def _read_field(block: bytes, offset: int) -> tuple[str, int]:
    if offset + 2 > len(block):
        raise EnvelopeFormatError("Truncated tag block")
    (length,) = struct.unpack_from(">H", block, offset)
    offset += 2
    end = offset + length
    if end > len(block):
        raise EnvelopeFormatError("Truncated tag block")
    try:
        return block[offset:end].decode("utf-8"), end
    except UnicodeDecodeError as e:
        raise EnvelopeFormatError("Tag is not valid UTF-8") from e


def _decode_tags(block: bytes) -> tuple[Tag, ...]:
    if len(block) < 2:
        raise EnvelopeFormatError("Truncated tag block")
    (count,) = struct.unpack_from(">H", block, 0)
    offset = 2
    tags: list[Tag] = []
    for _ in range(count):
        key, offset = _read_field(block, offset)
        value, offset = _read_field(block, offset)
        tags.append(Tag(key, value))
    if offset != len(block):
        raise EnvelopeFormatError("Trailing bytes in tag block")
    return tuple(tags)


class Ed25519EnvelopeCodec(EnvelopeCodec):
    """Envelope codec signing with an Ed25519 key.

    A codec without a private key can still parse and verify envelopes,
    since each envelope carries its owner's public key.
    """

    def __init__(self, private_key: Ed25519PrivateKey | None = None) -> None:
        self._private_key = private_key
        self._public_bytes: bytes | None = None
        if private_key is not None:
            self._public_bytes = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.Raw,
                format=serialization.PublicFormat.Raw,
            )

    @classmethod
    def from_seed_hex(cls, seed_hex: str | None) -> Ed25519EnvelopeCodec:
        """Build a codec from a hex-encoded 32-byte seed.

        An empty or missing seed yields a verify-only codec.

        Raises:
            ConfigurationError: If the seed is not 32 bytes of hex.
        """
        if not seed_hex:
            return cls(None)
        try:
            seed = bytes.fromhex(seed_hex.strip())
        except ValueError as e:
            raise ConfigurationError("Signer key is not valid hex") from e
        if len(seed) != 32:
            raise ConfigurationError("Signer key must be a 32-byte Ed25519 seed")
        return cls(Ed25519PrivateKey.from_private_bytes(seed))

    @property
    def owner_address(self) -> str | None:
        if self._public_bytes is None:
            return None
        return owner_address(self._public_bytes)

    def sign(self, body: bytes, tags: Sequence[Tag]) -> SignedEnvelope:
        if self._private_key is None or self._public_bytes is None:
            raise ConfigurationError("Envelope signer key is not configured")

        tag_block = _encode_tags(tags)
        message = MAGIC + self._public_bytes + tag_block + body
        signature = self._private_key.sign(message)

        data = b"".join(
            [
                MAGIC,
                self._public_bytes,
                signature,
                struct.pack(">I", len(tag_block)),
                tag_block,
                body,
            ]
        )
        item_id = envelope_id(signature)
        logger.debug("Signed envelope %s (%d tags, %d body bytes)", item_id, len(tags), len(body))
        return SignedEnvelope(
            item_id=item_id,
            data=data,
            tags=tuple(tags),
            owner=owner_address(self._public_bytes),
        )

    def parse(self, data: bytes, *, verify: bool = True) -> ParsedEnvelope:
        if len(data) < _HEADER_LEN or not data.startswith(MAGIC):
            raise EnvelopeFormatError("Not a blobgate envelope")

        offset = len(MAGIC)
        owner = data[offset : offset + _OWNER_LEN]
        offset += _OWNER_LEN
        signature = data[offset : offset + _SIGNATURE_LEN]
        offset += _SIGNATURE_LEN
        (tags_len,) = struct.unpack_from(">I", data, offset)
        offset += 4
        if offset + tags_len > len(data):
            raise EnvelopeFormatError("Tag block exceeds envelope length")
        tag_block = data[offset : offset + tags_len]
        body = data[offset + tags_len :]
        tags = _decode_tags(tag_block)

        if verify:
            try:
                public_key = Ed25519PublicKey.from_public_bytes(owner)
            except ValueError as e:
                raise EnvelopeFormatError("Invalid owner public key") from e
            try:
                public_key.verify(signature, MAGIC + owner + tag_block + body)
            except InvalidSignature as e:
                raise EnvelopeSignatureError("Envelope signature does not verify") from e

        return ParsedEnvelope(
            item_id=envelope_id(signature),
            tags=tags,
            body=body,
            owner=owner_address(owner),
        )

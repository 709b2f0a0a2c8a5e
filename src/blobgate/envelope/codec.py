"""Envelope codec interface.

An envelope is the signed, tagged, serialized wrapper around a raw payload.
Its identifier is a deterministic function of the signed envelope bytes,
never randomly generated.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass

from blobgate.tagging import Tag


class EnvelopeError(Exception):
    """Base exception for envelope encoding and decoding."""

    pass


class EnvelopeFormatError(EnvelopeError):
    """Raised when envelope bytes are truncated or structurally invalid."""

    pass


class EnvelopeSignatureError(EnvelopeError):
    """Raised when an envelope signature does not verify."""

    pass


@dataclass(frozen=True)
class SignedEnvelope:
    """Result of signing a payload.

    Attributes:
        item_id: Content-derived identifier of the envelope.
        data: Serialized envelope bytes.
        tags: Tags embedded in the envelope, in order.
        owner: Owner address of the signing key.
    """

    item_id: str
    data: bytes
    tags: tuple[Tag, ...]
    owner: str


@dataclass(frozen=True)
class ParsedEnvelope:
    """Envelope decoded back into its parts."""

    item_id: str
    tags: tuple[Tag, ...]
    body: bytes
    owner: str


class EnvelopeCodec(ABC):
    """Abstract signer/serializer for envelopes.

    Implementations:
    - Ed25519EnvelopeCodec: Ed25519 signatures via the cryptography package
    """

    @property
    @abstractmethod
    def owner_address(self) -> str | None:
        """Return the address of the configured signing key, if any."""
        ...

    @abstractmethod
    def sign(self, body: bytes, tags: Sequence[Tag]) -> SignedEnvelope:
        """Sign and serialize a payload with its tags.

        Raises:
            ConfigurationError: If no signing key is configured.
            EnvelopeFormatError: If a tag cannot be represented.
        """
        ...

    @abstractmethod
    def parse(self, data: bytes, *, verify: bool = True) -> ParsedEnvelope:
        """Decode envelope bytes.

        Raises:
            EnvelopeFormatError: If the bytes are not a valid envelope.
            EnvelopeSignatureError: If verify is set and the signature fails.
        """
        ...

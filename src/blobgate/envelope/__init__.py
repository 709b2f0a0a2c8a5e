"""Blobgate envelope signing and serialization."""

from blobgate.envelope.codec import (
    EnvelopeCodec,
    EnvelopeError,
    EnvelopeFormatError,
    EnvelopeSignatureError,
    ParsedEnvelope,
    SignedEnvelope,
)
from blobgate.envelope.ed25519_codec import Ed25519EnvelopeCodec

__all__ = [
    "Ed25519EnvelopeCodec",
    "EnvelopeCodec",
    "EnvelopeError",
    "EnvelopeFormatError",
    "EnvelopeSignatureError",
    "ParsedEnvelope",
    "SignedEnvelope",
]

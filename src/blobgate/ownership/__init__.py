"""Blobgate ownership gate for private collections."""

from blobgate.ownership.gate import (
    HttpOwnershipGate,
    OwnershipCheckError,
    OwnershipGate,
    StaticOwnershipGate,
)

__all__ = [
    "HttpOwnershipGate",
    "OwnershipCheckError",
    "OwnershipGate",
    "StaticOwnershipGate",
]

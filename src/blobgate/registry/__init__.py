"""Blobgate name registry for private collections."""

from blobgate.registry.name_registry import FileNameRegistry, RegistryEntry

__all__ = ["FileNameRegistry", "RegistryEntry"]

"""Side registry of human-readable names for private-collection items.

One JSON document per collection:

    {"collection": "<name>", "data": [{"dataitem_id": "...", "dataitem_name": "..."}]}

Lookups are by exact collection name only. Writes replace the document
atomically (temp file + rename) and are serialized per process.

Environment Variables (read through GatewaySettings):
    BLOBGATE_REGISTRY_DIR: Directory holding registry documents
"""

from __future__ import annotations

import json
import logging
import re
import threading
import uuid
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any

from blobgate.errors import BackendError

logger = logging.getLogger(__name__)

_UNSAFE_FILENAME_CHARS = re.compile(r'[/\\:*?"<>|]')


@dataclass(frozen=True)
class RegistryEntry:
    """Named item within a collection."""

    dataitem_id: str
    dataitem_name: str


def _registry_filename(collection: str) -> str:
    return f"{_UNSAFE_FILENAME_CHARS.sub('_', collection)}.json"


class FileNameRegistry:
    """File-backed name registry."""

    def __init__(self, base_dir: str | Path) -> None:
        self._base_dir = Path(base_dir)
        self._lock = threading.Lock()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    def _path_for(self, collection: str) -> Path:
        return self._base_dir / _registry_filename(collection)

    def _load(self, collection: str) -> list[RegistryEntry]:
        path = self._path_for(collection)
        if not path.exists():
            return []
        try:
            document: Any = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise BackendError(
                f"Failed to read registry for collection {collection!r}: {e}",
                sub_write="read",
                cause=e,
            ) from e

        if not isinstance(document, dict):
            raise BackendError(
                f"Registry for collection {collection!r} is not a JSON object",
                sub_write="read",
            )

        try:
            return [
                RegistryEntry(
                    dataitem_id=str(entry["dataitem_id"]),
                    dataitem_name=str(entry["dataitem_name"]),
                )
                for entry in document.get("data", [])
            ]
        except (KeyError, TypeError) as e:
            raise BackendError(
                f"Malformed registry entry in collection {collection!r}: {e}",
                sub_write="read",
                cause=e,
            ) from e

    def _save(self, collection: str, entries: list[RegistryEntry]) -> None:
        path = self._path_for(collection)
        document = {"collection": collection, "data": [asdict(e) for e in entries]}
        tmp_file = path.parent / f"{path.name}.{uuid.uuid4().hex}.tmp"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_file.write_text(json.dumps(document, indent=2), encoding="utf-8")
            tmp_file.replace(path)
        except OSError as e:
            if tmp_file.exists():
                tmp_file.unlink(missing_ok=True)
            raise BackendError(
                f"Failed to write registry for collection {collection!r}: {e}",
                sub_write="registry",
                cause=e,
            ) from e

    def set_name(self, collection: str, dataitem_id: str, dataitem_name: str) -> RegistryEntry:
        """Upsert the name of an item in a collection.

        Raises:
            BackendError: If the registry document cannot be read or written.
        """
        entry = RegistryEntry(dataitem_id=dataitem_id, dataitem_name=dataitem_name)
        with self._lock:
            entries = self._load(collection)
            for i, existing in enumerate(entries):
                if existing.dataitem_id == dataitem_id:
                    entries[i] = entry
                    break
            else:
                entries.append(entry)
            self._save(collection, entries)

        logger.debug("Registered name for %s in collection %s", dataitem_id, collection)
        return entry

    def list_entries(self, collection: str) -> list[RegistryEntry]:
        """Return every named item of a collection in insertion order."""
        return self._load(collection)

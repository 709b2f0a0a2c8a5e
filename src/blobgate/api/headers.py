"""Parsing of Blobgate request headers."""

from __future__ import annotations

import json

from blobgate.api.errors import BlobgateHttpError

TAGS_HEADER = "X-Blobgate-Tags"
FOLDER_HEADER = "X-Blobgate-Folder"
NAME_HEADER = "X-Blobgate-Name"
SIGNED_HEADER = "X-Blobgate-Signed"

_TRUE_VALUES = frozenset({"1", "true", "yes"})


def parse_tags_header(raw: str | None) -> list[tuple[str, str]]:
    """Parse X-Blobgate-Tags.

    Accepts a JSON list whose entries are {"key": ..., "value": ...} objects
    or [key, value] pairs. Composition rules (trimming, limits, reserved
    keys) are applied later by the tag composer, not here.

    Raises:
        BlobgateHttpError: 400 INVALID_TAGS if the header is not such a list.
    """
    if raw is None or not raw.strip():
        return []
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as e:
        raise BlobgateHttpError(400, "INVALID_TAGS", f"{TAGS_HEADER} is not valid JSON") from e

    if not isinstance(parsed, list):
        raise BlobgateHttpError(400, "INVALID_TAGS", f"{TAGS_HEADER} must be a JSON list")

    tags: list[tuple[str, str]] = []
    for index, entry in enumerate(parsed):
        if isinstance(entry, dict):
            key, value = entry.get("key"), entry.get("value")
        elif isinstance(entry, list) and len(entry) == 2:
            key, value = entry
        else:
            key = value = None
        if not isinstance(key, str) or not isinstance(value, str):
            raise BlobgateHttpError(
                400,
                "INVALID_TAGS",
                f"{TAGS_HEADER} entry {index} must be a key/value pair of strings",
            )
        tags.append((key, value))
    return tags


def parse_flag(raw: str | None) -> bool:
    return raw is not None and raw.strip().lower() in _TRUE_VALUES


def parse_bearer(raw: str | None) -> str | None:
    """Extract the credential from an "Authorization: Bearer <token>" header."""
    if not raw:
        return None
    scheme, _, token = raw.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        return None
    return token.strip()

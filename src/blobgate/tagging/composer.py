"""Canonical tag composition for envelopes.

Builds the ordered tag list attached to a stored item:

- Content-Type always occupies the first slot, followed by Data-Protocol
- Caller tags are trimmed; empty or oversized (> 1024 bytes) tags are dropped
- Keys are compared case-insensitively but stored with their original casing
- Reserved keys supplied by the caller are dropped, except that the first
  caller-supplied Content-Type tag replaces the system one in place
- A key already present is not added again (first occurrence wins)

Composition never fails; malformed candidates are silently dropped.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

MAX_TAG_BYTES = 1024
CONTENT_TYPE_TAG = "Content-Type"
DATA_PROTOCOL_TAG = "Data-Protocol"
DEFAULT_DATA_PROTOCOL = "Blobgate"
DEFAULT_CONTENT_TYPE = "application/octet-stream"
DEFAULT_RESERVED_TAGS = frozenset({"content-type", "data-protocol"})

_CONTENT_TYPE_KEY = CONTENT_TYPE_TAG.lower()


@dataclass(frozen=True)
class Tag:
    """A single (key, value) tag."""

    key: str
    value: str

    def as_pair(self) -> tuple[str, str]:
        return (self.key, self.value)


def _within_limits(key: str, value: str) -> bool:
    """Check the emptiness and size ceiling for a trimmed tag."""
    if not key or not value:
        return False
    return (
        len(key.encode("utf-8")) <= MAX_TAG_BYTES
        and len(value.encode("utf-8")) <= MAX_TAG_BYTES
    )


def _as_pair(candidate: Tag | Sequence[str]) -> tuple[str, str]:
    if isinstance(candidate, Tag):
        return candidate.key, candidate.value
    key, value = candidate
    return str(key), str(value)


def compose_tags(
    extra_tags: Iterable[Tag | Sequence[str]],
    declared_content_type: str,
    reserved_names: Iterable[str] = DEFAULT_RESERVED_TAGS,
    *,
    data_protocol: str = DEFAULT_DATA_PROTOCOL,
) -> tuple[Tag, ...]:
    """Compose the canonical tag set for a new envelope.

    Args:
        extra_tags: Caller-supplied candidates as Tags or (key, value) pairs.
        declared_content_type: Content type inferred from transport metadata.
        reserved_names: Keys (any casing) a caller may not set.
        data_protocol: Value of the Data-Protocol marker tag.

    Returns:
        Tuple of Tags: Content-Type first, Data-Protocol second, then accepted
        caller tags in input order.
    """
    reserved = {name.strip().lower() for name in reserved_names}
    tags: list[Tag] = [
        Tag(CONTENT_TYPE_TAG, declared_content_type.strip() or DEFAULT_CONTENT_TYPE),
        Tag(DATA_PROTOCOL_TAG, data_protocol),
    ]
    seen = {tag.key.lower() for tag in tags}
    content_type_overridden = False

    for candidate in extra_tags:
        raw_key, raw_value = _as_pair(candidate)
        key = raw_key.strip()
        value = raw_value.strip()
        if not _within_limits(key, value):
            continue

        key_lower = key.lower()
        if key_lower == _CONTENT_TYPE_KEY:
            if not content_type_overridden:
                tags[0] = Tag(key, value)
                content_type_overridden = True
            continue
        if key_lower in reserved:
            continue
        if key_lower in seen:
            continue

        seen.add(key_lower)
        tags.append(Tag(key, value))

    return tuple(tags)


def normalize_tag_pairs(pairs: Iterable[Tag | Sequence[str]]) -> list[tuple[str, str]]:
    """Trim, bound and deduplicate (key, value) pairs.

    Applied to tag-index ingestion and to query filters. Exact duplicate pairs
    collapse to their first occurrence; order is otherwise preserved.
    """
    seen: set[tuple[str, str]] = set()
    normalized: list[tuple[str, str]] = []
    for candidate in pairs:
        raw_key, raw_value = _as_pair(candidate)
        key = raw_key.strip()
        value = raw_value.strip()
        if not _within_limits(key, value):
            continue
        pair = (key, value)
        if pair in seen:
            continue
        seen.add(pair)
        normalized.append(pair)
    return normalized


def content_type_of(
    tags: Iterable[Tag | Sequence[str]],
    default: str = DEFAULT_CONTENT_TYPE,
) -> str:
    """Return the value of the first Content-Type tag (any key casing)."""
    for candidate in tags:
        key, value = _as_pair(candidate)
        if key.strip().lower() == _CONTENT_TYPE_KEY and value.strip():
            return value.strip()
    return default

"""Blobgate tag composition.

Builds canonical, deduplicated tag sets for envelopes and normalizes tag
pairs for indexing and querying.
"""

from blobgate.tagging.composer import (
    CONTENT_TYPE_TAG,
    DATA_PROTOCOL_TAG,
    DEFAULT_CONTENT_TYPE,
    DEFAULT_DATA_PROTOCOL,
    DEFAULT_RESERVED_TAGS,
    MAX_TAG_BYTES,
    Tag,
    compose_tags,
    content_type_of,
    normalize_tag_pairs,
)

__all__ = [
    "CONTENT_TYPE_TAG",
    "DATA_PROTOCOL_TAG",
    "DEFAULT_CONTENT_TYPE",
    "DEFAULT_DATA_PROTOCOL",
    "DEFAULT_RESERVED_TAGS",
    "MAX_TAG_BYTES",
    "Tag",
    "compose_tags",
    "content_type_of",
    "normalize_tag_pairs",
]

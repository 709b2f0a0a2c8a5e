"""Keyset pagination cursor for tag queries.

Wire format: unpadded standard base64 of the JSON object
{"created_at": "<RFC3339>", "dataitem_id": "<id>"}.

A cursor is only meaningful for the (created_at DESC, dataitem_id DESC)
ordering used by the tag query engine.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import UTC, datetime

from blobgate.errors import InvalidCursorError


@dataclass(frozen=True)
class QueryCursor:
    """Sort key of the last row returned on a page."""

    created_at: datetime
    dataitem_id: str


def encode_cursor(cursor: QueryCursor) -> str:
    """Encode a cursor into its opaque token."""
    payload = {
        "created_at": cursor.created_at.astimezone(UTC).isoformat(),
        "dataitem_id": cursor.dataitem_id,
    }
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.b64encode(raw).rstrip(b"=").decode("ascii")


def decode_cursor(token: str) -> QueryCursor:
    """Decode an opaque token back into a cursor.

    Raises:
        InvalidCursorError: If the token is not base64, not a JSON object with
            both fields, or carries a timestamp without a UTC offset or outside
            the representable UTC range.
    """
    padded = token.strip() + "=" * (-len(token.strip()) % 4)
    try:
        raw = base64.b64decode(padded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise InvalidCursorError("Invalid pagination cursor encoding") from e

    try:
        payload = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InvalidCursorError("Invalid pagination cursor payload") from e

    if not isinstance(payload, dict):
        raise InvalidCursorError("Invalid pagination cursor payload")
    created_at_raw = payload.get("created_at")
    dataitem_id = payload.get("dataitem_id")
    if not isinstance(created_at_raw, str) or not isinstance(dataitem_id, str):
        raise InvalidCursorError("Invalid pagination cursor payload")

    try:
        created_at = datetime.fromisoformat(created_at_raw)
        if created_at.tzinfo is None:
            raise InvalidCursorError("Invalid pagination cursor timestamp")
        created_at = created_at.astimezone(UTC)
    except (ValueError, OverflowError) as e:
        raise InvalidCursorError("Invalid pagination cursor timestamp") from e

    return QueryCursor(created_at=created_at, dataitem_id=dataitem_id)

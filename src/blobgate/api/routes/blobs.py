"""Download route for filesystem-backed signed URLs.

- GET /blobs/{key} ?expires=<epoch>&signature=<hex>

Only active when the blob store issues HMAC-signed URLs (filesystem
backend); S3 URLs point at S3 directly.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Query, Request, Response

from blobgate.api.deps import get_context
from blobgate.api.errors import BlobgateHttpError
from blobgate.storage import ObjectNotFoundError, ObjectStorageError, PathTraversalError
from blobgate.storage.presign import BLOB_ROUTE_PREFIX

router = APIRouter(prefix=BLOB_ROUTE_PREFIX, tags=["Blobs"])


@router.get("/{key:path}")
def download_blob(
    request: Request,
    key: str,
    expires: Annotated[int, Query()],
    signature: Annotated[str, Query()],
) -> Response:
    """Serve a blob after checking its URL signature and expiry."""
    context = get_context(request)
    if context.url_signer is None:
        raise BlobgateHttpError(404, "NOT_FOUND", "Signed downloads are not enabled")
    if not context.url_signer.verify(key, expires, signature):
        raise BlobgateHttpError(403, "FORBIDDEN", "Download URL is invalid or expired")

    try:
        obj = context.store.get(key)
    except (ObjectNotFoundError, PathTraversalError) as e:
        raise BlobgateHttpError(404, "NOT_FOUND", "Blob not found") from e
    except ObjectStorageError as e:
        raise BlobgateHttpError(
            502, "BACKEND_ERROR", "Blob read failed", {"sub_write": "read"}
        ) from e

    return Response(
        content=obj.body,
        media_type=obj.metadata.content_type or "application/octet-stream",
    )

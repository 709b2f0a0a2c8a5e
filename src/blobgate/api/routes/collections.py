"""Private collection routes for the Blobgate API.

- POST /v1/collections/{collection}/items (store_private)
- GET /v1/collections/{collection}/items/{item_id} (redirect to the envelope)
- GET /v1/collections/{collection}/registry (named items)

Writes require "Authorization: Bearer <credential>"; the ownership gate
decides whether the credential owns the collection.
"""

from __future__ import annotations

from typing import Annotated, Any

from fastapi import APIRouter, Header, Query, Request
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from blobgate.api.deps import get_gateway
from blobgate.api.errors import BlobgateHttpError
from blobgate.api.headers import (
    FOLDER_HEADER,
    NAME_HEADER,
    SIGNED_HEADER,
    TAGS_HEADER,
    parse_bearer,
    parse_flag,
    parse_tags_header,
)
from blobgate.tagging import DEFAULT_CONTENT_TYPE

router = APIRouter(prefix="/v1/collections", tags=["Collections"])


@router.post("/{collection}/items", status_code=201)
async def store_private_item(
    request: Request,
    collection: str,
    authorization: Annotated[str | None, Header()] = None,
    content_type: Annotated[str | None, Header()] = None,
    x_blobgate_folder: Annotated[str | None, Header(alias=FOLDER_HEADER)] = None,
    x_blobgate_name: Annotated[str | None, Header(alias=NAME_HEADER)] = None,
    x_blobgate_signed: Annotated[str | None, Header(alias=SIGNED_HEADER)] = None,
    x_blobgate_tags: Annotated[str | None, Header(alias=TAGS_HEADER)] = None,
) -> dict[str, Any]:
    """Store an item in a collection owned by the caller."""
    credential = parse_bearer(authorization)
    if credential is None:
        raise BlobgateHttpError(401, "UNAUTHORIZED", "Missing or malformed bearer credential")

    gateway = get_gateway(request)
    tags = parse_tags_header(x_blobgate_tags)
    body = await request.body()

    def _store() -> Any:
        return gateway.store_private(
            body,
            collection,
            credential,
            folder=x_blobgate_folder,
            declared_name=x_blobgate_name,
            is_signed=parse_flag(x_blobgate_signed),
            declared_content_type=content_type or DEFAULT_CONTENT_TYPE,
            extra_tags=tags,
        )

    result = await run_in_threadpool(_store)
    return result.to_dict()


@router.get("/{collection}/items/{item_id}")
def get_private_item(
    request: Request,
    collection: str,
    item_id: str,
    folder: Annotated[str | None, Query()] = None,
) -> RedirectResponse:
    """Redirect to a download URL of a private item's envelope."""
    url = get_gateway(request).resolve_private(collection, item_id, folder)
    return RedirectResponse(url=url, status_code=307)


@router.get("/{collection}/registry")
def get_registry(request: Request, collection: str) -> dict[str, Any]:
    """List the named items of a collection."""
    entries = get_gateway(request).list_named(collection)
    return {
        "collection": collection,
        "data": [
            {"dataitem_id": e.dataitem_id, "dataitem_name": e.dataitem_name} for e in entries
        ],
    }

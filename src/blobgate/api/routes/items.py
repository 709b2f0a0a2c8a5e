"""Item routes for the Blobgate API.

- POST /v1/items (store)
- POST /v1/items/signed (store a pre-signed envelope)
- GET /v1/items/{item_id} (redirect to the raw copy, or serve the body)
- GET /v1/items/{item_id}/envelope (envelope bytes)
- GET /v1/items/{item_id}/describe (stored representations and tags)
- POST /v1/items/{item_id}/publish (forward the envelope to the bundler)
"""

from __future__ import annotations

import logging
from typing import Annotated, Any

from fastapi import APIRouter, Header, Request, Response
from fastapi.responses import RedirectResponse
from starlette.concurrency import run_in_threadpool

from blobgate.api.deps import get_gateway
from blobgate.api.headers import TAGS_HEADER, parse_tags_header
from blobgate.errors import ItemNotFoundError
from blobgate.tagging import DEFAULT_CONTENT_TYPE

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/items", tags=["Items"])

ENVELOPE_MEDIA_TYPE = "application/octet-stream"


@router.post("", status_code=201)
async def store_item(
    request: Request,
    content_type: Annotated[str | None, Header()] = None,
    x_blobgate_tags: Annotated[str | None, Header(alias=TAGS_HEADER)] = None,
) -> dict[str, Any]:
    """Sign and store the request body.

    The Content-Type header is the declared content type; caller tags come
    from X-Blobgate-Tags.
    """
    gateway = get_gateway(request)
    tags = parse_tags_header(x_blobgate_tags)
    body = await request.body()
    result = await run_in_threadpool(
        gateway.store, body, content_type or DEFAULT_CONTENT_TYPE, tags
    )
    return result.to_dict()


@router.post("/signed", status_code=201)
async def store_signed_item(request: Request) -> dict[str, Any]:
    """Store a pre-signed envelope; its own tags are used unchanged."""
    gateway = get_gateway(request)
    envelope = await request.body()
    result = await run_in_threadpool(gateway.store_signed, envelope)
    return result.to_dict()


@router.get("/{item_id}")
def get_item(request: Request, item_id: str) -> Response:
    """Redirect to a download URL of the raw copy.

    When the raw copy is missing, the body is extracted from the envelope
    copy and served directly.
    """
    gateway = get_gateway(request)
    try:
        url = gateway.resolve(item_id)
    except ItemNotFoundError:
        body, content_type = gateway.fetch_body(item_id)
        logger.debug("Serving %s from envelope copy", item_id)
        return Response(content=body, media_type=content_type)
    return RedirectResponse(url=url, status_code=307)


@router.get("/{item_id}/envelope")
def get_item_envelope(request: Request, item_id: str) -> Response:
    """Return the stored envelope bytes."""
    envelope = get_gateway(request).retrieve_envelope_bytes(item_id)
    return Response(content=envelope, media_type=ENVELOPE_MEDIA_TYPE)


@router.get("/{item_id}/describe")
def describe_item(request: Request, item_id: str) -> dict[str, Any]:
    """Report which representations of an item exist, with its indexed tags."""
    return get_gateway(request).describe(item_id).to_dict()


@router.post("/{item_id}/publish")
def publish_item(request: Request, item_id: str) -> dict[str, Any]:
    """Forward the stored envelope to the configured bundler."""
    return get_gateway(request).publish(item_id).to_dict()

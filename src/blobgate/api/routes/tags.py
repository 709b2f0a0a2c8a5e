"""Tag query routes for the Blobgate API.

- POST /v1/tags/query (find items carrying every filter tag, newest first)
"""

from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field

from blobgate.api.deps import get_gateway
from blobgate.persistence.repositories.tag_index import DEFAULT_PAGE_SIZE

router = APIRouter(prefix="/v1/tags", tags=["Tags"])


class TagFilter(BaseModel):
    """One tag equality filter."""

    model_config = ConfigDict(extra="forbid")

    key: str
    value: str


class TagQueryRequest(BaseModel):
    """Request body for POST /v1/tags/query."""

    model_config = ConfigDict(extra="forbid")

    filters: list[TagFilter] = Field(default_factory=list)
    first: int = DEFAULT_PAGE_SIZE
    after: str | None = None


class TaggedItem(BaseModel):
    """One matched item."""

    id: str
    content_type: str
    created_at: str


class TagQueryResponse(BaseModel):
    """One page of matched items."""

    items: list[TaggedItem]
    has_more: bool
    next_cursor: str | None = None


@router.post("/query", response_model=TagQueryResponse)
def query_tags(request: Request, body: TagQueryRequest) -> TagQueryResponse:
    """Run a keyset-paginated AND-filter tag query.

    Page size and cursor are validated by the gateway so out-of-range values
    surface as INVALID_INPUT / INVALID_CURSOR.
    """
    page = get_gateway(request).query_by_tags(
        [(f.key, f.value) for f in body.filters],
        first=body.first,
        after=body.after,
    )
    return TagQueryResponse(
        items=[
            TaggedItem(
                id=record.dataitem_id,
                content_type=record.content_type,
                created_at=record.created_at.isoformat(),
            )
            for record in page.items
        ],
        has_more=page.has_more,
        next_cursor=page.next_cursor,
    )

"""Health check endpoints for the Blobgate API."""

from datetime import UTC, datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel

router = APIRouter(tags=["Health"])

BLOBGATE_VERSION = "0.1.0"


class HealthResponse(BaseModel):
    """Health check response schema."""

    status: str
    time: str
    version: str
    signer: str | None = None
    store_backend: str | None = None


@router.get("/", response_model=HealthResponse)
@router.get("/health", response_model=HealthResponse)
def get_health(request: Request) -> HealthResponse:
    """Report liveness, version and the configured signer address.

    Does not touch any backend; the signer and store fields are omitted when
    the app runs without a context.
    """
    context = getattr(request.app.state, "context", None)
    return HealthResponse(
        status="ok",
        time=datetime.now(UTC).isoformat(),
        version=BLOBGATE_VERSION,
        signer=context.gateway.owner_address if context else None,
        store_backend=context.store.backend_name if context else None,
    )

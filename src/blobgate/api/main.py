"""Blobgate FastAPI application factory.

This module provides the create_app() factory for bootstrapping the API.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException

from blobgate.api.errors import (
    BlobgateHttpError,
    blobgate_http_error_handler,
    gateway_error_handler,
    generic_exception_handler,
    http_exception_handler,
    request_validation_error_handler,
)
from blobgate.api.middleware.request_id import RequestIdMiddleware
from blobgate.api.routes.blobs import router as blobs_router
from blobgate.api.routes.collections import router as collections_router
from blobgate.api.routes.health import BLOBGATE_VERSION
from blobgate.api.routes.health import router as health_router
from blobgate.api.routes.items import router as items_router
from blobgate.api.routes.tags import router as tags_router
from blobgate.context import GatewayContext
from blobgate.errors import GatewayError
from blobgate.observability.tracing import configure_tracing, instrument_fastapi, instrument_httpx

logger = logging.getLogger(__name__)


def create_app(context: GatewayContext | None = None) -> FastAPI:
    """Create and configure the Blobgate FastAPI application.

    This factory:
    - Attaches the gateway context (built from the environment at startup
      when none is given)
    - Registers the request ID middleware
    - Registers exception handlers for the gateway error taxonomy
    - Mounts the health, item, tag, collection and blob routers

    Args:
        context: Prebuilt GatewayContext, typically from tests. The app does
            not close a context it was given.

    Returns:
        Configured FastAPI application instance.
    """
    owns_context = context is None

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if app.state.context is None:
            app.state.context = GatewayContext.from_env()
            app.state.context.gateway.tag_index.ensure_schema()
        try:
            yield
        finally:
            if owns_context and app.state.context is not None:
                app.state.context.close()
                logger.info("Gateway context closed")

    app = FastAPI(
        title="Blobgate API",
        description="Content-addressed object gateway with a tag index",
        version=BLOBGATE_VERSION,
        lifespan=lifespan,
    )

    app.state.context = context

    configure_tracing()
    instrument_httpx()

    app.add_middleware(RequestIdMiddleware)

    instrument_fastapi(app)

    app.add_exception_handler(BlobgateHttpError, blobgate_http_error_handler)
    app.add_exception_handler(GatewayError, gateway_error_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(items_router)
    app.include_router(tags_router)
    app.include_router(collections_router)
    app.include_router(blobs_router)

    return app

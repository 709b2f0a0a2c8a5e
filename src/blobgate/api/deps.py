"""Request-scoped access to the gateway context."""

from __future__ import annotations

from fastapi import Request

from blobgate.context import GatewayContext
from blobgate.errors import ConfigurationError
from blobgate.services.gateway import ObjectGateway


def get_context(request: Request) -> GatewayContext:
    """Return the context attached by create_app().

    Raises:
        ConfigurationError: If the app was started without a context.
    """
    context: GatewayContext | None = getattr(request.app.state, "context", None)
    if context is None:
        raise ConfigurationError("Gateway context is not initialized")
    return context


def get_gateway(request: Request) -> ObjectGateway:
    return get_context(request).gateway

"""Blobgate API error handling.

Maps the gateway error taxonomy and framework errors onto the JSON error
envelope with request_id tracing.

Global exception handlers:
- BlobgateHttpError: Route-level errors with an explicit status and code
- GatewayError: Service errors (InvalidInput, Unauthorized, NotFound,
  Backend, Configuration)
- HTTPException: Starlette HTTP exceptions (FastAPI's subclass included)
- RequestValidationError: Pydantic validation errors
- Exception: Catch-all for unhandled exceptions (fail closed, no stack traces)
"""

import logging
from typing import Any

from fastapi import Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from starlette.exceptions import HTTPException

from blobgate.api.error_model import get_error_code_for_status, make_error_response
from blobgate.errors import (
    BackendError,
    ConfigurationError,
    GatewayError,
    InvalidCursorError,
    InvalidInputError,
    ItemNotFoundError,
    UnauthorizedError,
)

logger = logging.getLogger(__name__)


class ErrorResponse(BaseModel):
    """Error envelope schema."""

    code: str
    message: str
    details: dict[str, Any] | None = None
    request_id: str | None = None


class BlobgateHttpError(Exception):
    """Route-level HTTP error with structured error envelope.

    Attributes:
        status_code: HTTP status code (e.g., 400, 403).
        code: Machine-readable error code (e.g., "INVALID_TAGS").
        message: Human-readable error message.
        details: Optional dict with additional error context.
    """

    def __init__(
        self,
        status_code: int,
        code: str,
        message: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.message = message
        self.details = details


def _map_gateway_error(exc: GatewayError) -> tuple[int, str, dict[str, Any] | None]:
    """Return (status, code, details) for a gateway error."""
    if isinstance(exc, InvalidCursorError):
        return 400, "INVALID_CURSOR", {"reason": exc.reason}
    if isinstance(exc, InvalidInputError):
        status = 413 if exc.reason == "payload_too_large" else 400
        return status, "INVALID_INPUT", {"reason": exc.reason}
    if isinstance(exc, UnauthorizedError):
        return 403, "UNAUTHORIZED", {"collection": exc.collection} if exc.collection else None
    if isinstance(exc, ItemNotFoundError):
        return 404, "NOT_FOUND", {"id": exc.item_id}
    if isinstance(exc, BackendError):
        details: dict[str, Any] = {"sub_write": exc.sub_write}
        if exc.item_id:
            details["id"] = exc.item_id
        return 502, "BACKEND_ERROR", details
    if isinstance(exc, ConfigurationError):
        return 503, "CONFIGURATION_ERROR", None
    return 500, "INTERNAL_ERROR", None


async def blobgate_http_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for BlobgateHttpError."""
    assert isinstance(exc, BlobgateHttpError)

    return make_error_response(
        request,
        code=exc.code,
        message=exc.message,
        http_status=exc.status_code,
        details=exc.details,
    )


async def gateway_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for the gateway error taxonomy.

    Backend and configuration messages can carry internals, so only their
    category reaches the client; the full error is logged.
    """
    assert isinstance(exc, GatewayError)

    status, code, details = _map_gateway_error(exc)
    message = exc.message
    if status >= 500:
        logger.error(
            "Gateway error %s: %s",
            code,
            exc,
            extra={"request_id": getattr(request.state, "request_id", None)},
        )
        if isinstance(exc, BackendError):
            message = f"Backend operation failed ({exc.sub_write})"
        elif isinstance(exc, ConfigurationError):
            message = "Service is not configured for this operation"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=status,
        details=details,
    )


async def http_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for HTTPException."""
    assert isinstance(exc, HTTPException)

    code = get_error_code_for_status(exc.status_code)
    message = str(exc.detail) if exc.detail else f"HTTP {exc.status_code}"

    return make_error_response(
        request,
        code=code,
        message=message,
        http_status=exc.status_code,
        details=None,
    )


async def request_validation_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """FastAPI exception handler for RequestValidationError.

    Does not expose raw validation internals.
    """
    assert isinstance(exc, RequestValidationError)

    safe_details: list[dict[str, Any]] = []
    for error in exc.errors():
        loc = error.get("loc", ())
        safe_loc = [str(part) for part in loc if part not in ("body", "query", "path")]
        safe_details.append(
            {
                "field": ".".join(safe_loc) if safe_loc else "request",
                "message": error.get("msg", "Validation error"),
            }
        )

    return make_error_response(
        request,
        code="INVALID_INPUT",
        message="Request validation failed",
        http_status=400,
        details={"errors": safe_details} if safe_details else None,
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all exception handler for unhandled exceptions.

    Fails closed: returns 500 with a generic message and logs the exception.
    """
    request_id = getattr(request.state, "request_id", None)

    logger.exception(
        "Unhandled exception: %s",
        type(exc).__name__,
        extra={"request_id": request_id},
    )

    return make_error_response(
        request,
        code="INTERNAL_ERROR",
        message="An internal error occurred",
        http_status=500,
        details=None,
    )

"""Shared error response builder for the Blobgate API.

Every exception handler produces the same error envelope:
- code: str - machine-readable error code (e.g., "INVALID_CURSOR")
- message: str - human-readable error message
- details: dict | None - optional additional context (no sensitive data)
- request_id: str - request correlation ID (always present)
"""

from __future__ import annotations

import uuid
from typing import Any

from fastapi import Request
from fastapi.responses import JSONResponse

from blobgate.api.middleware.request_id import REQUEST_ID_HEADER


def _get_request_id(request: Request) -> str:
    """Extract or generate request_id for error responses.

    Priority:
    1. request.state.request_id (set by RequestIdMiddleware)
    2. X-Request-Id header (if present)
    3. Generate new UUID (fallback)
    """
    request_id: str | None = getattr(request.state, "request_id", None)
    if request_id is not None:
        return str(request_id)

    header_id: str | None = request.headers.get(REQUEST_ID_HEADER)
    if header_id:
        return header_id

    return str(uuid.uuid4())


def make_error_response(
    request: Request,
    *,
    code: str,
    message: str,
    http_status: int,
    details: dict[str, Any] | None = None,
) -> JSONResponse:
    """Build an error JSON response.

    Args:
        request: The FastAPI request object (for request_id extraction).
        code: Machine-readable error code.
        message: Human-readable error message.
        http_status: HTTP status code.
        details: Optional dict with additional context (no sensitive data).

    Returns:
        JSONResponse with the error envelope and X-Request-Id header.
    """
    request_id = _get_request_id(request)

    body: dict[str, Any] = {
        "code": code,
        "message": message,
        "details": details,
        "request_id": request_id,
    }

    response = JSONResponse(status_code=http_status, content=body)
    response.headers[REQUEST_ID_HEADER] = request_id

    return response


HTTP_STATUS_TO_CODE: dict[int, str] = {
    400: "BAD_REQUEST",
    401: "UNAUTHORIZED",
    403: "FORBIDDEN",
    404: "NOT_FOUND",
    405: "METHOD_NOT_ALLOWED",
    413: "PAYLOAD_TOO_LARGE",
    415: "UNSUPPORTED_MEDIA_TYPE",
    422: "UNPROCESSABLE_ENTITY",
    500: "INTERNAL_ERROR",
    502: "BACKEND_ERROR",
    503: "CONFIGURATION_ERROR",
}


def get_error_code_for_status(status_code: int) -> str:
    """Get the standard error code for an HTTP status code."""
    return HTTP_STATUS_TO_CODE.get(status_code, "ERROR")

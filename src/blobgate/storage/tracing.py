"""Blobgate object storage OpenTelemetry tracing integration.

Provides tracing decorators for storage operations.

Security:
    - Never export absolute filesystem paths in span attributes
    - Object keys are exported as SHA256 digests only
    - No secrets or signed URLs in any span attribute
"""

from __future__ import annotations

import functools
import hashlib
import logging
from collections.abc import Callable
from typing import Any, TypeVar, cast

from blobgate.observability.tracing import is_tracing_enabled

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def traced_storage_operation(operation: str) -> Callable[[F], F]:
    """Decorator to trace storage operations with OpenTelemetry.

    Args:
        operation: Operation name (e.g., "put", "get", "head").

    Returns:
        Decorated function that emits OTel spans when tracing is enabled.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self: Any, key: str, *args: Any, **kwargs: Any) -> Any:
            if not is_tracing_enabled():
                return func(self, key, *args, **kwargs)

            from opentelemetry import trace

            tracer = trace.get_tracer("blobgate.object_store")
            with tracer.start_as_current_span(f"blobgate.object_store.{operation}") as span:
                key_sha256 = hashlib.sha256(key.encode("utf-8")).hexdigest()
                span.set_attribute("blobgate.object_key_sha256", key_sha256)
                span.set_attribute("storage.backend", getattr(self, "backend_name", "unknown"))
                try:
                    result = func(self, key, *args, **kwargs)
                except Exception as e:
                    span.set_attribute("error", True)
                    span.set_attribute("error.type", type(e).__name__)
                    raise
                _add_result_attributes(span, result)
                return result

        return cast(F, wrapper)

    return decorator


def _add_result_attributes(span: Any, result: Any) -> None:
    """Add sha256/size/content-type attributes for metadata-bearing results."""
    from blobgate.storage.models import StoredObject, StoredObjectMetadata

    metadata: StoredObjectMetadata | None = None
    if isinstance(result, StoredObjectMetadata):
        metadata = result
    elif isinstance(result, StoredObject):
        metadata = result.metadata

    if metadata is None:
        return

    try:
        span.set_attribute("blobgate.object_sha256", metadata.sha256)
        span.set_attribute("blobgate.object_size_bytes", metadata.size_bytes)
        if metadata.content_type:
            span.set_attribute("blobgate.object_content_type", metadata.content_type)
    except Exception as e:
        logger.debug("Failed to add result attributes to span: %s", e)

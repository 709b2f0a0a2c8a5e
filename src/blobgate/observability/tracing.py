"""OpenTelemetry tracing configuration for Blobgate.

Tracing is off unless explicitly enabled. When enabled, object-store
operations, FastAPI requests, SQLAlchemy queries and outbound httpx calls
emit spans.

Environment Variables:
    BLOBGATE_OTEL_ENABLED: Set to "1" to enable tracing (default: disabled)
    BLOBGATE_REQUIRE_OTEL: Set to "1" to fail startup if tracing cannot initialize
    BLOBGATE_OTEL_SERVICE_NAME: Service name for spans (default: "blobgate")
    BLOBGATE_OTEL_EXPORTER: Exporter type - "otlp" or "console" (default: "otlp")
    BLOBGATE_OTEL_EXPORTER_OTLP_ENDPOINT: OTLP endpoint URL (optional)
    BLOBGATE_OTEL_TEST_CAPTURE: Set to "1" to use in-memory exporter for tests

Security:
    - Never export credentials, Authorization headers, request bodies or
      presigned URLs
    - No full SQL with bound parameters in span attributes
"""

from __future__ import annotations

import logging
import os
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from opentelemetry.sdk.trace import ReadableSpan, TracerProvider

logger = logging.getLogger(__name__)

_tracer_provider: TracerProvider | None = None
_test_exporter: Any = None


class TracingConfigError(Exception):
    """Raised when tracing configuration fails and BLOBGATE_REQUIRE_OTEL=1."""

    pass


def _get_env_bool(key: str, default: bool = False) -> bool:
    """Get boolean from environment variable."""
    val = os.environ.get(key, "").strip().lower()
    if val in ("1", "true", "yes"):
        return True
    if val in ("0", "false", "no"):
        return False
    return default


def _get_env_str(key: str, default: str = "") -> str:
    return os.environ.get(key, default).strip()


def is_tracing_enabled() -> bool:
    """Check if OpenTelemetry tracing is enabled."""
    return _get_env_bool("BLOBGATE_OTEL_ENABLED", False)


def configure_tracing() -> bool:
    """Configure OpenTelemetry tracing for Blobgate.

    Idempotent - safe to call multiple times.

    Returns:
        True if tracing is enabled and configured, False otherwise.

    Raises:
        TracingConfigError: If BLOBGATE_REQUIRE_OTEL=1 and configuration fails.
    """
    global _tracer_provider, _test_exporter

    if not is_tracing_enabled():
        logger.debug("OpenTelemetry tracing disabled (BLOBGATE_OTEL_ENABLED not set)")
        return False

    if _tracer_provider is not None:
        return True

    try:
        from opentelemetry import trace
        from opentelemetry.sdk.resources import Resource
        from opentelemetry.sdk.trace import TracerProvider
        from opentelemetry.sdk.trace.export import BatchSpanProcessor, SimpleSpanProcessor

        service_name = _get_env_str("BLOBGATE_OTEL_SERVICE_NAME", "blobgate")
        exporter_type = _get_env_str("BLOBGATE_OTEL_EXPORTER", "otlp")
        endpoint = _get_env_str("BLOBGATE_OTEL_EXPORTER_OTLP_ENDPOINT", "")

        provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

        if _get_env_bool("BLOBGATE_OTEL_TEST_CAPTURE", False):
            from opentelemetry.sdk.trace.export.in_memory_span_exporter import (
                InMemorySpanExporter,
            )

            _test_exporter = InMemorySpanExporter()
            provider.add_span_processor(SimpleSpanProcessor(_test_exporter))
        elif exporter_type == "console":
            from opentelemetry.sdk.trace.export import ConsoleSpanExporter

            provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        else:
            from opentelemetry.exporter.otlp.proto.http.trace_exporter import (
                OTLPSpanExporter,
            )

            kwargs: dict[str, Any] = {"endpoint": endpoint} if endpoint else {}
            provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(**kwargs)))

        trace.set_tracer_provider(provider)
        _tracer_provider = provider
        logger.info(
            "OpenTelemetry tracing configured: service=%s, exporter=%s",
            service_name,
            exporter_type,
        )
        return True

    except Exception as e:
        logger.error("Failed to configure OpenTelemetry tracing: %s", e)
        if _get_env_bool("BLOBGATE_REQUIRE_OTEL", False):
            raise TracingConfigError(
                f"OpenTelemetry tracing required but configuration failed: {e}"
            ) from e
        return False


def instrument_fastapi(app: Any) -> None:
    """Instrument a FastAPI application with OpenTelemetry."""
    if not is_tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

        FastAPIInstrumentor.instrument_app(app, excluded_urls="health")
        logger.debug("FastAPI instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument FastAPI: %s", e)


def instrument_sqlalchemy(engine: Any) -> None:
    """Instrument a SQLAlchemy engine with OpenTelemetry."""
    if not is_tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.sqlalchemy import SQLAlchemyInstrumentor

        SQLAlchemyInstrumentor().instrument(engine=engine, enable_commenter=False)
        logger.debug("SQLAlchemy engine instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument SQLAlchemy: %s", e)


def instrument_httpx() -> None:
    """Instrument httpx clients with OpenTelemetry."""
    if not is_tracing_enabled():
        return

    try:
        from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor

        HTTPXClientInstrumentor().instrument()
        logger.debug("httpx instrumented with OpenTelemetry")
    except Exception as e:
        logger.warning("Failed to instrument httpx: %s", e)


def get_test_spans() -> list[ReadableSpan]:
    """Get captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None:
        return list(_test_exporter.get_finished_spans())
    return []


def clear_test_spans() -> None:
    """Clear captured spans from the in-memory exporter (for testing)."""
    if _test_exporter is not None:
        _test_exporter.clear()


def reset_tracing() -> None:
    """Clear captured spans between tests.

    The global TracerProvider cannot be replaced once set, so the provider
    and the in-memory exporter stay in place for later configure_tracing()
    calls.
    """
    clear_test_spans()

"""Blobgate observability module.

Provides the optional OpenTelemetry tracing baseline.
"""

from blobgate.observability.tracing import configure_tracing, is_tracing_enabled

__all__ = ["configure_tracing", "is_tracing_enabled"]

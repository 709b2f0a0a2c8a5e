"""Tests for Blobgate OpenTelemetry tracing.

- Tracing OFF by default, ON via BLOBGATE_OTEL_ENABLED=1
- Fail-closed only when BLOBGATE_REQUIRE_OTEL=1 and init fails
- Object store spans carry the key digest, never the key or a filesystem path
- Tests use the in-memory exporter (no external collector required)
"""

from __future__ import annotations

import hashlib
from collections.abc import Iterator
from pathlib import Path

import pytest

from blobgate.observability.tracing import (
    clear_test_spans,
    configure_tracing,
    get_test_spans,
    instrument_fastapi,
    instrument_httpx,
    instrument_sqlalchemy,
    is_tracing_enabled,
    reset_tracing,
)
from blobgate.storage.filesystem_store import FilesystemObjectStore

TRACING_ENV_VARS = [
    "BLOBGATE_OTEL_ENABLED",
    "BLOBGATE_REQUIRE_OTEL",
    "BLOBGATE_OTEL_SERVICE_NAME",
    "BLOBGATE_OTEL_EXPORTER",
    "BLOBGATE_OTEL_EXPORTER_OTLP_ENDPOINT",
    "BLOBGATE_OTEL_TEST_CAPTURE",
]


@pytest.fixture(autouse=True)
def reset_tracing_env(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Clear tracing environment and captured spans around each test."""
    for name in TRACING_ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_tracing()
    yield
    reset_tracing()


class TestTracingConfiguration:
    """Tests for the enable switch and configuration."""

    def test_tracing_disabled_by_default(self) -> None:
        assert is_tracing_enabled() is False
        assert configure_tracing() is False
        assert get_test_spans() == []

    @pytest.mark.parametrize("value", ["1", "true", "YES"])
    def test_truthy_values_enable_tracing(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("BLOBGATE_OTEL_ENABLED", value)
        assert is_tracing_enabled() is True

    @pytest.mark.parametrize("value", ["0", "false", "no", "maybe"])
    def test_other_values_leave_tracing_disabled(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("BLOBGATE_OTEL_ENABLED", value)
        assert is_tracing_enabled() is False

    def test_require_otel_without_enabled_does_not_raise(
        self, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """REQUIRE_OTEL only fails closed when tracing was asked for."""
        monkeypatch.setenv("BLOBGATE_REQUIRE_OTEL", "1")
        assert configure_tracing() is False


class TestInstrumentationDisabled:
    """Instrumentation helpers are no-ops while tracing is off."""

    def test_instrument_fastapi_noop(self) -> None:
        from fastapi import FastAPI

        app = FastAPI()
        instrument_fastapi(app)
        assert not getattr(app, "_is_instrumented_by_opentelemetry", False)

    def test_instrument_sqlalchemy_noop(self) -> None:
        from sqlalchemy import create_engine

        engine = create_engine("sqlite://")
        try:
            instrument_sqlalchemy(engine)
        finally:
            engine.dispose()

    def test_instrument_httpx_noop(self) -> None:
        instrument_httpx()

    def test_storage_operations_emit_no_spans(self, tmp_path: Path) -> None:
        store = FilesystemObjectStore(base_dir=tmp_path)
        store.put("envelopes/abc", b"payload")
        store.get("envelopes/abc")
        assert get_test_spans() == []


class TestStorageSpans:
    """Object store spans when tracing is enabled with in-memory capture."""

    @pytest.fixture
    def capture(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("BLOBGATE_OTEL_ENABLED", "1")
        monkeypatch.setenv("BLOBGATE_OTEL_TEST_CAPTURE", "1")
        assert configure_tracing() is True
        clear_test_spans()

    def test_put_emits_span_with_key_digest(self, capture: None, tmp_path: Path) -> None:
        store = FilesystemObjectStore(base_dir=tmp_path)
        store.put("raw/item-1", b"hello", content_type="text/plain")

        spans = [s for s in get_test_spans() if s.name == "blobgate.object_store.put"]
        assert len(spans) == 1
        attributes = dict(spans[0].attributes or {})
        expected_digest = hashlib.sha256(b"raw/item-1").hexdigest()
        assert attributes["blobgate.object_key_sha256"] == expected_digest
        assert attributes["storage.backend"] == "filesystem"
        assert attributes["blobgate.object_size_bytes"] == 5

    def test_span_attributes_never_contain_key_or_path(
        self, capture: None, tmp_path: Path
    ) -> None:
        store = FilesystemObjectStore(base_dir=tmp_path)
        store.put("private/secret-name", b"data")

        for span in get_test_spans():
            for value in (span.attributes or {}).values():
                assert "secret-name" not in str(value)
                assert str(tmp_path) not in str(value)

    def test_failed_operation_marks_span_as_error(
        self, capture: None, tmp_path: Path
    ) -> None:
        from blobgate.storage.errors import ObjectNotFoundError

        store = FilesystemObjectStore(base_dir=tmp_path)
        with pytest.raises(ObjectNotFoundError):
            store.get("raw/missing")

        spans = [s for s in get_test_spans() if s.name == "blobgate.object_store.get"]
        assert len(spans) == 1
        attributes = dict(spans[0].attributes or {})
        assert attributes["error"] is True
        assert attributes["error.type"] == "ObjectNotFoundError"

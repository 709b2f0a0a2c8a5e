"""Tests for Blobgate API health endpoint."""

from datetime import datetime

import pytest
from fastapi.testclient import TestClient

from blobgate.api.main import create_app
from blobgate.api.routes.health import BLOBGATE_VERSION


@pytest.fixture
def bare_client() -> TestClient:
    """Test client for an app without a gateway context (lifespan not run)."""
    return TestClient(create_app())


def test_health_returns_200(bare_client: TestClient) -> None:
    """GET /health returns 200 OK."""
    response = bare_client.get("/health")
    assert response.status_code == 200


def test_root_is_health(bare_client: TestClient) -> None:
    """GET / answers like /health."""
    response = bare_client.get("/")
    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health_contains_required_fields(bare_client: TestClient) -> None:
    """GET /health response contains status, time, and version."""
    data = bare_client.get("/health").json()

    assert data["status"] == "ok"
    assert data["version"] == BLOBGATE_VERSION
    datetime.fromisoformat(data["time"])


def test_health_without_context_omits_signer(bare_client: TestClient) -> None:
    data = bare_client.get("/health").json()

    assert data["signer"] is None
    assert data["store_backend"] is None


def test_health_reports_signer_and_backend(client: TestClient, gateway_context: object) -> None:
    """With a context, /health names the signer address and store backend."""
    data = client.get("/health").json()

    assert data["signer"] == gateway_context.gateway.owner_address  # type: ignore[attr-defined]
    assert data["store_backend"] == "filesystem"


def test_health_includes_request_id_header(bare_client: TestClient) -> None:
    """GET /health response includes X-Request-Id header."""
    response = bare_client.get("/health")
    assert "X-Request-Id" in response.headers


def test_health_echoes_request_id(bare_client: TestClient) -> None:
    response = bare_client.get("/health", headers={"X-Request-Id": "req-123"})
    assert response.headers["X-Request-Id"] == "req-123"

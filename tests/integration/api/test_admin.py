from __future__ import annotations

import base64

import pytest
from fastapi.testclient import TestClient

from contentprobe import __version__
from contentprobe.api.app import app
from contentprobe.core.config import get_settings
from tests.conftest import MockSettings

pytestmark = [pytest.mark.integration]


def _basic(username: str, password: str) -> dict[str, str]:
    token = base64.b64encode(f"{username}:{password}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


@pytest.fixture
def client(mock_settings: MockSettings) -> TestClient:
    """Provides a TestClient instance with overridden settings."""
    app.dependency_overrides[get_settings] = lambda: mock_settings
    yield TestClient(app)
    app.dependency_overrides = {}


def test_ping_is_public_and_correlated(
    client: TestClient, mock_settings: MockSettings
) -> None:
    mock_settings.auth_username = "admin"
    mock_settings.auth_password = "s3cret"

    response = client.get("/v1/ping", headers={"X-Request-ID": "ping-1"})

    assert response.status_code == 200
    assert response.json() == {"message": "pong", "request_id": "ping-1"}
    assert response.headers["X-Request-ID"] == "ping-1"


def test_health_endpoint(client: TestClient, mock_settings: MockSettings) -> None:
    mock_settings.commit_sha = "test-commit-sha"
    mock_settings.auth_username = "admin"
    mock_settings.auth_password = "s3cret"

    response = client.get("/v1/health", headers=_basic("admin", "s3cret"))

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "commit_sha": "test-commit-sha"}


def test_health_requires_credentials_when_configured(
    client: TestClient, mock_settings: MockSettings
) -> None:
    mock_settings.auth_username = "admin"
    mock_settings.auth_password = "s3cret"

    response = client.get("/v1/health")

    assert response.status_code == 401
    assert response.headers["WWW-Authenticate"] == "Basic"
    assert response.json()["error"]["code"] == 401


def test_health_endpoint_no_auth(client: TestClient, mock_settings: MockSettings) -> None:
    response = client.get("/v1/health")

    assert response.status_code == 200
    assert response.json()["commit_sha"] == "unknown"


def test_version_endpoint(client: TestClient, mock_settings: MockSettings) -> None:
    mock_settings.commit_sha = "deadbeef"

    response = client.get("/v1/version")

    assert response.status_code == 200
    assert response.json() == {"version": __version__, "commit_sha": "deadbeef"}

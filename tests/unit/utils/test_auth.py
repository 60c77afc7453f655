from __future__ import annotations

from unittest.mock import MagicMock

import pytest
from fastapi import HTTPException, Request
from fastapi.security import HTTPBasicCredentials

from contentprobe.utils.auth import verify_credentials
from tests.conftest import MockSettings


@pytest.fixture
def mock_request() -> MagicMock:
    """Provides a mock FastAPI Request object."""
    request = MagicMock(spec=Request)
    request.url = MagicMock()
    request.url.path = "/v1/magic/content"
    request.headers = {}
    request.state = MagicMock()
    request.state.user = None
    return request


@pytest.fixture
def secured() -> MockSettings:
    return MockSettings(auth_username="admin", auth_password="s3cret")


@pytest.mark.asyncio
async def test_valid_credentials(mock_request: MagicMock, secured: MockSettings) -> None:
    creds = HTTPBasicCredentials(username="admin", password="s3cret")

    user = await verify_credentials(mock_request, creds, secured)

    assert user == "admin"
    assert mock_request.state.user == "admin"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("username", "password"),
    [("admin", "wrong"), ("root", "s3cret"), ("", ""), ("admin", "s3cret ")],
)
async def test_wrong_credentials(
    mock_request: MagicMock, secured: MockSettings, username: str, password: str
) -> None:
    creds = HTTPBasicCredentials(username=username, password=password)

    with pytest.raises(HTTPException) as exc_info:
        await verify_credentials(mock_request, creds, secured)

    assert exc_info.value.status_code == 401
    assert exc_info.value.headers == {"WWW-Authenticate": "Basic"}
    assert mock_request.state.user is None


@pytest.mark.asyncio
async def test_missing_credentials(mock_request: MagicMock, secured: MockSettings) -> None:
    with pytest.raises(HTTPException) as exc_info:
        await verify_credentials(mock_request, None, secured)

    assert exc_info.value.status_code == 401


@pytest.mark.asyncio
async def test_auth_disabled_without_configured_credentials(
    mock_request: MagicMock,
) -> None:
    assert await verify_credentials(mock_request, None, MockSettings()) is None

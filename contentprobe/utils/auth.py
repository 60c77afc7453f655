from __future__ import annotations

import secrets
from typing import Annotated, Optional

import structlog
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from contentprobe.core.config import Settings, get_settings

__all__: list[str] = [
    "verify_credentials",
]

logger = structlog.get_logger(__name__)

_basic_scheme = HTTPBasic(auto_error=False)


def _matches(supplied: str, expected: str) -> bool:
    return secrets.compare_digest(supplied.encode("utf-8"), expected.encode("utf-8"))


async def verify_credentials(
    request: Request,
    credentials: Annotated[Optional[HTTPBasicCredentials], Depends(_basic_scheme)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> str | None:
    """Check HTTP Basic credentials against the configured pair.

    Both halves are compared in constant time, and both comparisons always
    run, so a wrong username takes as long to reject as a wrong password.

    Returns:
        The authenticated username, or ``None`` when auth is disabled.

    Raises:
        HTTPException (401): If auth is enabled and the credentials are
        missing or wrong.
    """

    if not settings.auth_enabled:
        logger.debug("auth_skipped", reason="no_credentials_configured")
        return None

    if credentials is None:
        valid = False
    else:
        username_ok = _matches(credentials.username, settings.auth_username)
        password_ok = _matches(credentials.password, settings.auth_password)
        valid = username_ok and password_ok

    if not valid:
        logger.warning(
            "auth_failed",
            path=request.url.path,
            has_header=credentials is not None,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or missing credentials.",
            headers={"WWW-Authenticate": "Basic"},
        )

    request.state.user = credentials.username
    logger.debug("auth_success", path=request.url.path)
    return credentials.username

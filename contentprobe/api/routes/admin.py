from __future__ import annotations

from typing import Dict

import structlog
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from contentprobe.api.schemas import PingResponse
from contentprobe.core.config import Settings, get_settings
from contentprobe.utils.auth import verify_credentials

__all__: list[str] = [
    "router",
]

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/v1", tags=["Admin"])

SETTINGS_DEP: Settings = Depends(get_settings)
AUTH_DEPS = [Depends(verify_credentials)]


@router.get("/ping", response_model=PingResponse)
async def ping(request: Request) -> PingResponse:
    """Unauthenticated liveness probe."""
    return PingResponse(message="pong", request_id=request.state.request_id)


@router.get("/health", response_model=Dict[str, str], dependencies=AUTH_DEPS)
async def health(
    settings: Settings = SETTINGS_DEP,
) -> Dict[str, str]:
    """Return service health status."""
    return {"status": "ok", "commit_sha": settings.commit_sha or "unknown"}


@router.get(
    "/version",
    summary="Application version information",
    dependencies=AUTH_DEPS,
)
async def version(
    request: Request,
    settings: Settings = SETTINGS_DEP,
) -> JSONResponse:
    """Return the application version plus the git commit SHA."""

    return JSONResponse(
        {
            "version": request.app.version,
            "commit_sha": settings.commit_sha,
        }
    )

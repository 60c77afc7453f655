"""contentprobe ─ FastAPI application
=====================================

This module hosts the **production ASGI application**.

Usage
-----
Run locally with::

    uvicorn contentprobe.api.app:app --reload

or ``python -m contentprobe``, which reads ``HOST``/``PORT`` from the
settings.  The FastAPI instance is exposed as ``app``.
"""

from __future__ import annotations

import asyncio
from typing import Optional

# third-party
import structlog
from fastapi import APIRouter, FastAPI
from prometheus_fastapi_instrumentator import Instrumentator

# local imports
from contentprobe import __version__
from contentprobe.api.dependencies import get_engine, shutdown_engine
from contentprobe.api.errors import add_exception_handlers
from contentprobe.api.routes import admin as admin_router_module
from contentprobe.api.routes import magic as magic_router_module
from contentprobe.core.config import Settings, get_settings
from contentprobe.core.exceptions import EngineInitError
from contentprobe.core.logging import RequestLoggingMiddleware, configure_logging
from contentprobe.storage.tempfiles import sweep_stale_spill_files

__all__: list[str] = ["app", "create_app"]

# ---------------------------------------------------------------------------
# Initialise *process-wide* logging before any logger instantiation.
# ---------------------------------------------------------------------------
settings = get_settings()
configure_logging(settings.debug)
logger = structlog.get_logger(__name__)


async def _sweep_periodically(current: Settings) -> None:
    """Remove orphaned spill files every ``cleanup_interval_secs``."""
    while True:
        await asyncio.sleep(current.cleanup_interval_secs)
        try:
            removed = await asyncio.to_thread(
                sweep_stale_spill_files,
                current.spill_dir,
                current.temp_file_max_age_secs,
            )
        except OSError as exc:
            logger.warning("spill_sweep_failed", error=str(exc))
            continue
        if removed:
            logger.info("spill_sweep_complete", removed=removed)


def _register_routes(app_instance: FastAPI) -> None:
    """Include every API router into *app_instance*."""
    routers: list[APIRouter] = [
        admin_router_module.router,
        magic_router_module.router,
    ]
    for router in routers:
        app_instance.include_router(router)


def create_app() -> FastAPI:  # noqa: D401 – factory
    """Build and configure the FastAPI application."""

    app_instance = FastAPI(
        title="contentprobe",
        description="Content-type detection for untrusted uploads and sandboxed files.",
        version=__version__,
        docs_url="/docs",
        redoc_url=None,
        openapi_url="/openapi.json",
    )

    # ------------------------------------------------------------------
    # Middleware – logging comes first so later handlers inherit context vars.
    # ------------------------------------------------------------------
    app_instance.add_middleware(RequestLoggingMiddleware)

    # ------------------------------------------------------------------
    # Lifespan events
    # ------------------------------------------------------------------
    @app_instance.on_event("startup")
    async def _on_startup() -> None:
        current = get_settings()
        current.ensure_directories()
        try:
            get_engine(current)
        except EngineInitError as exc:
            logger.error("engine_init_failed", error=str(exc))
            raise
        if current.cleanup_interval_secs > 0:
            app_instance.state.sweeper = asyncio.create_task(
                _sweep_periodically(current)
            )
        logger.info(
            "fastapi_startup",
            commit_sha=current.commit_sha,
            sandbox_dir=str(current.sandbox_dir),
            spill_dir=str(current.spill_dir),
        )

    @app_instance.on_event("shutdown")
    async def _on_shutdown() -> None:
        task: Optional[asyncio.Task[None]] = getattr(
            app_instance.state, "sweeper", None
        )
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        shutdown_engine()
        logger.info("fastapi_shutdown")

    _register_routes(app_instance)
    add_exception_handlers(app_instance)

    # ------------------------------------------------------------------
    # Prometheus metrics under **/metrics**, excluded from the schema.
    # ------------------------------------------------------------------
    if settings.prometheus_enabled:
        Instrumentator().instrument(app_instance).expose(
            app_instance,
            endpoint="/metrics",
            include_in_schema=False,
        )
        logger.info("prometheus_instrumentation_enabled")

    return app_instance


# Instantiate once at import time.
app: FastAPI = create_app()

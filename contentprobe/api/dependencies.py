"""
FastAPI dependency providers for the classification core.

Every provider is a plain callable so tests can swap it out through
``app.dependency_overrides``.  The libmagic engine is process-wide: the
application builds it in its startup hook and shuts it down with the app.
"""

from __future__ import annotations

import threading
from typing import Annotated, Optional

import structlog
from fastapi import Depends

from contentprobe.classification.engine import ClassificationEngine, MagicEngine
from contentprobe.classification.pipeline import ContentClassifier
from contentprobe.core.config import Settings, get_settings
from contentprobe.storage.sandbox import SandboxResolver
from contentprobe.storage.tempfiles import TempFileStore

__all__: list[str] = [
    "get_engine",
    "get_temp_store",
    "get_resolver",
    "get_classifier",
    "shutdown_engine",
]

logger = structlog.get_logger(__name__)

_ENGINE: Optional[MagicEngine] = None
_ENGINE_LOCK = threading.Lock()


def get_engine(
    settings: Annotated[Settings, Depends(get_settings)],
) -> ClassificationEngine:
    """Return the shared engine, creating it on first call.

    Raises ``EngineInitError`` when libmagic or its signature database cannot
    be loaded.
    """
    global _ENGINE  # noqa: PLW0603 – module-level singleton

    if _ENGINE is None:
        with _ENGINE_LOCK:
            if _ENGINE is None:
                _ENGINE = MagicEngine(
                    database_path=settings.magic_database_path,
                    max_workers=settings.engine_workers,
                    scan_window_bytes=settings.scan_window_bytes,
                )
    return _ENGINE


def shutdown_engine() -> None:
    global _ENGINE  # noqa: PLW0603

    with _ENGINE_LOCK:
        engine, _ENGINE = _ENGINE, None
    if engine is not None:
        engine.shutdown()


def get_temp_store(
    settings: Annotated[Settings, Depends(get_settings)],
) -> TempFileStore:
    return TempFileStore(settings.spill_dir)


def get_resolver(
    settings: Annotated[Settings, Depends(get_settings)],
) -> SandboxResolver:
    return SandboxResolver(settings.sandbox_dir)


def get_classifier(
    engine: Annotated[ClassificationEngine, Depends(get_engine)],
    temp_store: Annotated[TempFileStore, Depends(get_temp_store)],
    resolver: Annotated[SandboxResolver, Depends(get_resolver)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> ContentClassifier:
    return ContentClassifier(engine, temp_store, resolver, settings)

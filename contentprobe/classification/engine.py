###############################################################################
# contentprobe/classification/engine.py
# -----------------------------------------------------------------------------
# libmagic adapter (python-magic binding)
#
# One ``MagicEngine`` owns one set of libmagic handles for the whole process.
# libmagic handles are not safe for concurrent use, so:
#
# • every native call runs under a single ``threading.Lock``; concurrent
#   requests queue on it instead of racing;
# • every call is dispatched to a dedicated, bounded ``ThreadPoolExecutor`` so
#   CPU-bound pattern matching never runs on the event loop;
# • each call is wrapped in ``asyncio.wait_for``.  On expiry the *caller*
#   stops waiting and receives ``DeadlineExceededError``; a call that already
#   started keeps the lock until libmagic returns, because native code cannot
#   be interrupted.  The pool size bounds how much such orphaned work can pile
#   up.
#
# Loading the signature database happens once, in the constructor; a failure
# there raises ``EngineInitError`` and no engine exists.
###############################################################################

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from functools import lru_cache
from pathlib import Path
from types import ModuleType
from typing import Any, Callable, Optional, Protocol, TypeVar, Union

import structlog

from contentprobe.classification.types import EngineVerdict, MimeType
from contentprobe.core.exceptions import (
    DeadlineExceededError,
    EngineError,
    EngineInitError,
    from_os_error,
)

__all__: list[str] = [
    "ClassificationEngine",
    "MagicEngine",
    "SupportsReadWindow",
]

logger = structlog.get_logger(__name__)

_T = TypeVar("_T")

DEFAULT_SCAN_WINDOW: int = 1024 * 1024


class SupportsReadWindow(Protocol):
    """Anything that can hand out its leading bytes and be closed."""

    def read_window(self, limit: Optional[int] = None) -> bytes: ...

    def close(self) -> None: ...


class ClassificationEngine(Protocol):
    """Async surface the orchestrator depends on."""

    async def classify(self, data: bytes, *, timeout: float) -> EngineVerdict: ...

    async def classify_file(
        self, path: Union[str, Path], *, timeout: float
    ) -> EngineVerdict: ...

    async def classify_mapping(
        self, mapping: SupportsReadWindow, *, timeout: float
    ) -> EngineVerdict: ...

    def shutdown(self) -> None: ...


@lru_cache(maxsize=1)
def _load_magic() -> ModuleType:
    """Import python-magic once; a missing libmagic becomes ``EngineInitError``."""
    try:
        import magic
    except ImportError as exc:
        raise EngineInitError(f"libmagic is not available: {exc}") from exc
    return magic


class MagicEngine:
    """Serialized, deadline-bounded access to one set of libmagic handles.

    Parameters
    ----------
    database_path:
        Optional path to a compiled signature database; ``None`` loads the
        system default.
    max_workers:
        Size of the dedicated blocking pool.
    scan_window_bytes:
        Largest prefix handed to libmagic for buffer classification.  libmagic
        itself never inspects more than its ``bytes_max`` limit, so this only
        caps the copy out of a mapping or a large buffer.
    """

    def __init__(
        self,
        *,
        database_path: Optional[str] = None,
        max_workers: int = 4,
        scan_window_bytes: int = DEFAULT_SCAN_WINDOW,
    ) -> None:
        self._magic = _load_magic()
        try:
            self._mime = self._magic.Magic(mime=True, magic_file=database_path)
            self._describe = self._magic.Magic(magic_file=database_path)
            self._encoding = self._magic.Magic(
                mime_encoding=True, magic_file=database_path
            )
        except self._magic.MagicException as exc:
            logger.error(
                "magic_database_load_failed",
                database_path=database_path,
                error=str(exc),
            )
            raise EngineInitError(
                f"Failed to load signature database: {exc}",
                operation="load",
                resource=database_path or "<default>",
            ) from exc

        self._lock = threading.Lock()
        self._scan_window = scan_window_bytes
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="magic-engine"
        )
        logger.info(
            "magic_engine_ready",
            database_path=database_path or "<default>",
            max_workers=max_workers,
            scan_window_bytes=scan_window_bytes,
        )

    # ------------------------------------------------------------------
    # Blocking primitives – run on the executor only
    # ------------------------------------------------------------------
    def _classify_buffer_sync(self, data: bytes, resource: str) -> EngineVerdict:
        with self._lock:
            try:
                mime = self._mime.from_buffer(data)
                description = self._describe.from_buffer(data)
                encoding = self._encoding.from_buffer(data)
            except self._magic.MagicException as exc:
                raise EngineError(
                    f"libmagic failed: {exc}", operation="classify_buffer", resource=resource
                ) from exc
        return self._verdict(mime, description, encoding, resource)

    def _classify_file_sync(self, path: str) -> EngineVerdict:
        with self._lock:
            try:
                mime = self._mime.from_file(path)
                description = self._describe.from_file(path)
                encoding = self._encoding.from_file(path)
            except OSError as exc:
                raise from_os_error(exc, operation="classify_file", resource=path) from exc
            except self._magic.MagicException as exc:
                raise EngineError(
                    f"libmagic failed: {exc}", operation="classify_file", resource=path
                ) from exc
        return self._verdict(mime, description, encoding, path)

    def _classify_mapping_sync(self, mapping: SupportsReadWindow) -> EngineVerdict:
        # The window is copied and the mapping closed before the engine lock is taken.
        try:
            data = mapping.read_window(self._scan_window)
        finally:
            mapping.close()
        return self._classify_buffer_sync(data, "<mapping>")

    @staticmethod
    def _verdict(
        mime: str, description: str, encoding: Optional[str], resource: str
    ) -> EngineVerdict:
        return EngineVerdict(
            mime_type=MimeType.from_engine(mime, resource=resource),
            description=description,
            encoding=encoding or None,
        )

    # ------------------------------------------------------------------
    # Async surface
    # ------------------------------------------------------------------
    async def _submit(
        self,
        fn: Callable[..., _T],
        *args: Any,
        timeout: float,
        operation: str,
        resource: str,
        on_done: Optional[Callable[[], None]] = None,
    ) -> _T:
        future: Future[_T] = self._executor.submit(fn, *args)
        if on_done is not None:
            future.add_done_callback(lambda _f: on_done())
        try:
            return await asyncio.wait_for(asyncio.wrap_future(future), timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "engine_call_timed_out",
                operation=operation,
                resource=resource,
                timeout_secs=timeout,
                still_running=future.running(),
            )
            raise DeadlineExceededError(
                timeout, operation=operation, resource=resource
            ) from None

    async def classify(self, data: bytes, *, timeout: float) -> EngineVerdict:
        window = bytes(data[: self._scan_window])
        return await self._submit(
            self._classify_buffer_sync,
            window,
            "<buffer>",
            timeout=timeout,
            operation="classify_buffer",
            resource="<buffer>",
        )

    async def classify_file(
        self, path: Union[str, Path], *, timeout: float
    ) -> EngineVerdict:
        return await self._submit(
            self._classify_file_sync,
            str(path),
            timeout=timeout,
            operation="classify_file",
            resource=str(path),
        )

    async def classify_mapping(
        self, mapping: SupportsReadWindow, *, timeout: float
    ) -> EngineVerdict:
        """Classify *mapping*, taking ownership of it.

        The mapping is closed by the worker once its window has been read, or
        by a completion callback if the call is cancelled before it starts.
        """
        return await self._submit(
            self._classify_mapping_sync,
            mapping,
            timeout=timeout,
            operation="classify_mapping",
            resource="<mapping>",
            on_done=mapping.close,
        )

    def shutdown(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
        logger.info("magic_engine_shutdown")

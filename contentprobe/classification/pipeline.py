"""
Content Classification Orchestrator

Routes each classification request through the right ingestion strategy and
hands the bytes to the engine adapter:

- uploads are buffered in memory up to ``large_file_threshold_bytes``; the
  first chunk that would cross it spills everything to an
  :class:`~contentprobe.storage.tempfiles.EphemeralFile` (after a free-space
  check) and the spilled file is classified through a memory mapping;
- server-side files are resolved inside the sandbox, opened and mapped;
- a mapping that cannot be made, or whose read observed a truncated backing
  file, falls back to a buffered read when ``mmap_fallback_enabled`` is set.

Each request gets one ``analysis_timeout_secs`` budget; a fallback read only
gets what the mapped attempt left over.  Spill files and mappings are
released on every exit path, cancellation included.
Typed failures raised below leave with the request's correlation id attached.

Dependencies:
- `contentprobe.classification.engine`: the serialized libmagic adapter.
- `contentprobe.storage`: sandbox resolution, spill files, mappings.
- `structlog`: per-request structured logging.
"""

from __future__ import annotations

import asyncio
import time
from contextlib import ExitStack, contextmanager
from functools import partial
from pathlib import Path
from typing import IO, AsyncIterable, Iterator, Optional

import structlog

from contentprobe.classification.engine import ClassificationEngine
from contentprobe.classification.types import (
    ClassificationOutcome,
    ClassificationRequest,
    EngineVerdict,
)
from contentprobe.core.config import Settings
from contentprobe.core.exceptions import (
    ClassificationError,
    EmptyContentError,
    StorageExhaustedError,
    StorageIOError,
    from_os_error,
)
from contentprobe.ingestion.validators import SandboxRelativePath, ValidatedFilename
from contentprobe.storage.mmap_reader import STORAGE_FAULT, MemoryMapping, map_file
from contentprobe.storage.sandbox import SandboxResolver
from contentprobe.storage.tempfiles import EphemeralFile, TempFileStore

__all__: list[str] = ["ContentClassifier"]

logger = structlog.get_logger(__name__)


def _discard_orphaned_mapping(fileobj: IO[bytes], future: asyncio.Future) -> None:
    fileobj.close()
    if not future.cancelled() and future.exception() is None:
        future.result().close()


async def _map_and_close(fileobj: IO[bytes]) -> MemoryMapping:
    """Map *fileobj* off the event loop, then close it.

    If the caller is cancelled while the worker is still mapping, the file and
    the mapping it eventually produces are closed when the worker finishes.
    """
    future = asyncio.get_running_loop().run_in_executor(None, map_file, fileobj)
    try:
        mapping = await asyncio.shield(future)
    except asyncio.CancelledError:
        future.add_done_callback(partial(_discard_orphaned_mapping, fileobj))
        raise
    except BaseException:
        fileobj.close()
        raise
    fileobj.close()
    return mapping


@contextmanager
def _correlated(correlation_id: str) -> Iterator[None]:
    try:
        yield
    except ClassificationError as exc:
        exc.with_correlation(correlation_id)
        raise


class ContentClassifier:
    """Entry point for all three classification flows."""

    def __init__(
        self,
        engine: ClassificationEngine,
        temp_store: TempFileStore,
        resolver: SandboxResolver,
        settings: Settings,
    ) -> None:
        self._engine = engine
        self._temp_store = temp_store
        self._resolver = resolver
        self._settings = settings

    @property
    def temp_store(self) -> TempFileStore:
        return self._temp_store

    # ------------------------------------------------------------------
    # Public flows
    # ------------------------------------------------------------------
    async def classify_bytes(
        self, correlation_id: str, filename: ValidatedFilename, data: bytes
    ) -> ClassificationOutcome:
        """Classify *data* entirely in memory."""
        with _correlated(correlation_id):
            if not data:
                raise EmptyContentError("Content is empty", operation="classify_bytes")
            request = ClassificationRequest(correlation_id, filename, content=data)
            start = time.perf_counter()
            verdict = await self._engine.classify(
                data, timeout=self._settings.analysis_timeout_secs
            )
            return self._complete(request, verdict, strategy="memory", start=start)

    async def classify_stream(
        self,
        correlation_id: str,
        filename: ValidatedFilename,
        chunks: AsyncIterable[bytes],
    ) -> ClassificationOutcome:
        """Classify an upload delivered as an async stream of chunks.

        Content that stays within the threshold is classified from memory.
        Otherwise it is spilled to disk and classified through a mapping.
        """
        threshold = self._settings.large_file_threshold_bytes
        start = time.perf_counter()

        with _correlated(correlation_id), ExitStack() as cleanup:
            buffer = bytearray()
            spill: Optional[EphemeralFile] = None
            total = 0

            async for chunk in chunks:
                if not chunk:
                    continue
                total += len(chunk)
                if spill is None:
                    if len(buffer) + len(chunk) <= threshold:
                        buffer.extend(chunk)
                        continue
                    spill = cleanup.enter_context(await self._open_spill_file())
                    logger.info(
                        "spill_started",
                        request_id=correlation_id,
                        buffered_bytes=len(buffer),
                        threshold_bytes=threshold,
                        path=str(spill.path),
                    )
                    if buffer:
                        await spill.awrite(bytes(buffer))
                    buffer = bytearray()
                await spill.awrite(chunk)

            if total == 0:
                raise EmptyContentError("Content is empty", operation="classify_stream")

            if spill is None:
                content = bytes(buffer)
                request = ClassificationRequest(correlation_id, filename, content=content)
                verdict = await self._engine.classify(
                    content, timeout=self._settings.analysis_timeout_secs
                )
                return self._complete(request, verdict, strategy="memory", start=start)

            await spill.async_sync_and_close()
            request = ClassificationRequest(correlation_id, filename, path=spill.path)
            verdict, strategy = await self._classify_file(spill.path, "spill")
            logger.debug("spill_finished", request_id=correlation_id, total_bytes=total)
            return self._complete(request, verdict, strategy=strategy, start=start)

    async def classify_path(
        self,
        correlation_id: str,
        filename: ValidatedFilename,
        relative: SandboxRelativePath,
    ) -> ClassificationOutcome:
        """Classify a file inside the sandbox root."""
        with _correlated(correlation_id):
            resolved = self._resolver.resolve(relative)
            request = ClassificationRequest(correlation_id, filename, path=resolved)
            start = time.perf_counter()
            verdict, strategy = await self._classify_file(resolved, "path")
            return self._complete(request, verdict, strategy=strategy, start=start)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------
    async def _open_spill_file(self) -> EphemeralFile:
        required = self._settings.min_free_space_mb
        available = await asyncio.to_thread(self._temp_store.free_space_mb)
        if available < required:
            logger.warning(
                "spill_refused_low_space",
                spill_dir=str(self._temp_store.spill_dir),
                available_mb=available,
                required_mb=required,
            )
            raise StorageExhaustedError(
                available_mb=available,
                required_mb=required,
                path=str(self._temp_store.spill_dir),
            )
        return await asyncio.to_thread(self._temp_store.create)

    async def _classify_file(self, path: Path, strategy: str) -> tuple[EngineVerdict, str]:
        """Map *path* and classify it, falling back to a buffered read if allowed.

        The mapped attempt and the fallback share one ``analysis_timeout_secs``
        budget.  Returns the verdict and the strategy actually used.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._settings.analysis_timeout_secs
        try:
            fileobj = await asyncio.to_thread(open, path, "rb")
        except OSError as exc:
            raise from_os_error(exc, operation="open", resource=str(path)) from exc

        try:
            mapping = await _map_and_close(fileobj)
        except StorageIOError as exc:
            return await self._fallback(path, exc, deadline), f"{strategy}_fallback"

        STORAGE_FAULT.clear()
        try:
            verdict = await self._engine.classify_mapping(
                mapping, timeout=max(deadline - loop.time(), 0.0)
            )
        except StorageIOError as exc:
            return await self._fallback(path, exc, deadline), f"{strategy}_fallback"

        if mapping.faulted or STORAGE_FAULT.tripped:
            fault = StorageIOError(
                "Storage fault during mapped read",
                operation="read_mapping",
                resource=str(path),
            )
            return await self._fallback(path, fault, deadline), f"{strategy}_fallback"
        return verdict, f"{strategy}_mmap"

    async def _fallback(
        self, path: Path, cause: StorageIOError, deadline: float
    ) -> EngineVerdict:
        if not self._settings.mmap_fallback_enabled:
            raise cause
        remaining = max(deadline - asyncio.get_running_loop().time(), 0.0)
        logger.warning(
            "mmap_fallback",
            path=str(path),
            reason=str(cause),
            remaining_secs=round(remaining, 3),
        )
        return await self._engine.classify_file(path, timeout=remaining)

    @staticmethod
    def _complete(
        request: ClassificationRequest,
        verdict: EngineVerdict,
        *,
        strategy: str,
        start: float,
    ) -> ClassificationOutcome:
        outcome = ClassificationOutcome.from_verdict(request, verdict)
        logger.info(
            "classification_complete",
            request_id=request.correlation_id,
            filename=str(request.filename),
            mime_type=str(outcome.mime_type),
            strategy=strategy,
            processing_ms=round((time.perf_counter() - start) * 1000, 2),
        )
        return outcome

"""
Read-only memory mappings for zero-copy classification of large files.

Storage-fault isolation
-----------------------
Touching a mapped page whose backing file was truncated after the mapping
was made raises ``SIGBUS``.  The interpreter cannot resume the faulting read,
so a signal handler would not help here.  Instead the reader guards every
access with an ``fstat`` comparison against the size captured at mapping
time:

* before the read – a file that already shrank is never touched; the read
  raises :class:`~contentprobe.core.exceptions.StorageIOError`;
* after the read – a file that shrank while libmagic was reading marks the
  result unreliable.

Either condition marks the mapping itself as faulted and trips the
process-wide :data:`STORAGE_FAULT` flag.  The orchestrator clears the flag
right before a mapped classification and, right after, falls back to a
buffered read when either the flag or the mapping's own mark is set.  The
per-mapping mark is authoritative: another request may clear the shared
flag in between.
"""

from __future__ import annotations

import mmap
import os
import threading
import weakref
from typing import IO, Any, Optional

import structlog

from contentprobe.core.exceptions import StorageIOError

__all__: list[str] = [
    "STORAGE_FAULT",
    "StorageFaultFlag",
    "MemoryMapping",
    "map_file",
]

logger = structlog.get_logger(__name__)


class StorageFaultFlag:
    """Process-wide "a mapped read may have been corrupted" signal."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def clear(self) -> None:
        self._event.clear()

    def trip(self) -> None:
        self._event.set()

    @property
    def tripped(self) -> bool:
        return self._event.is_set()


STORAGE_FAULT = StorageFaultFlag()


def _release_mapping(view: memoryview, mapped: Optional[mmap.mmap], fd: int) -> None:
    try:
        view.release()
        if mapped is not None:
            mapped.close()
    finally:
        os.close(fd)


class MemoryMapping:
    """Owned read-only view over a file's bytes.

    Valid until :meth:`close` (or the end of its ``with`` block).  The map and
    its descriptor are released exactly once, by a finalizer when the owner
    drops the mapping without closing it.  A zero-length file is represented
    without any ``mmap`` call.
    """

    def __init__(
        self,
        fd: int,
        size: int,
        mapped: Optional[mmap.mmap],
        *,
        name: str = "<file>",
    ) -> None:
        self._fd = fd
        self._name = name
        self._size = size
        view = memoryview(mapped) if mapped is not None else memoryview(b"")
        self._view: Optional[memoryview] = view
        self._lock = threading.Lock()
        self._faulted = False
        self._finalizer = weakref.finalize(self, _release_mapping, view, mapped, fd)

    def __len__(self) -> int:
        return self._size

    @property
    def closed(self) -> bool:
        return not self._finalizer.alive

    @property
    def faulted(self) -> bool:
        """``True`` once a truncation of the backing file has been observed."""
        return self._faulted

    @property
    def view(self) -> memoryview:
        if self._view is None:
            raise ValueError("mapping is closed")
        return self._view

    def _current_size(self) -> int:
        try:
            return os.fstat(self._fd).st_size
        except OSError:
            return -1

    def is_intact(self) -> bool:
        """``False`` (and both fault marks set) if the file shrank under us."""
        if self.closed:
            return not self._faulted
        current = self._current_size()
        if current < self._size:
            logger.warning(
                "mapped_file_truncated",
                resource=self._name,
                mapped_size=self._size,
                current_size=current,
            )
            self._faulted = True
            STORAGE_FAULT.trip()
            return False
        return True

    def read_window(self, limit: Optional[int] = None) -> bytes:
        """Copy out at most *limit* leading bytes of the mapping.

        Raises
        ------
        StorageIOError
            If the backing file is already shorter than the mapping, in which
            case no mapped page is touched.
        """
        if not self.is_intact():
            raise StorageIOError(
                "Backing file was truncated after mapping",
                operation="read_mapping",
                resource=self._name,
            )
        end = self._size if limit is None else min(limit, self._size)
        with self.view[:end] as window:
            data = window.tobytes()
        self.is_intact()
        return data

    def close(self) -> None:
        with self._lock:
            self._view = None
            self._finalizer()

    def __enter__(self) -> "MemoryMapping":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()


def _map_readonly(fd: int, size: int) -> mmap.mmap:
    if hasattr(mmap, "MAP_PRIVATE"):
        return mmap.mmap(fd, size, flags=mmap.MAP_PRIVATE, prot=mmap.PROT_READ)
    return mmap.mmap(fd, size, access=mmap.ACCESS_READ)


def map_file(fileobj: IO[bytes]) -> MemoryMapping:
    """Map the whole of the open file *fileobj* read-only.

    The mapping keeps its own duplicate of the descriptor, so *fileobj* may be
    closed independently.

    Raises
    ------
    StorageIOError
        When the file is closed or cannot be stat-ed or mapped.
    """
    name = getattr(fileobj, "name", "<file>")
    try:
        fd = os.dup(fileobj.fileno())
    except (OSError, ValueError) as exc:
        raise StorageIOError(
            f"Cannot duplicate descriptor: {exc}", operation="mmap", resource=str(name)
        ) from exc

    try:
        size = os.fstat(fd).st_size
        mapped = _map_readonly(fd, size) if size > 0 else None
    except (OSError, ValueError) as exc:
        os.close(fd)
        logger.warning("mmap_failed", resource=str(name), error=str(exc))
        raise StorageIOError(
            f"Failed to map file: {exc}", operation="mmap", resource=str(name)
        ) from exc

    return MemoryMapping(fd, size, mapped, name=str(name))

"""
Spill-file storage for uploads that outgrow the in-memory threshold.

:class:`TempFileStore` hands out :class:`EphemeralFile` objects: exclusively
owned, owner-only (``0o600``) files with collision-proof names.  An
``EphemeralFile`` deletes its file exactly once – on :meth:`~EphemeralFile.delete`,
when its ``with`` block exits (whatever the exit path), or from a finalizer if
the owner is garbage-collected without cleaning up.

The orchestrator writes through the ``a*`` coroutine twins so the event loop
never blocks on disk I/O.
"""

from __future__ import annotations

import asyncio
import os
import secrets
import shutil
import string
import time
import uuid
import weakref
from pathlib import Path
from stat import S_ISREG
from typing import Any, Callable, Final, Optional, Union

import structlog

from contentprobe.core.exceptions import RetriesExceededError, StorageIOError

__all__: list[str] = [
    "MAX_CREATE_ATTEMPTS",
    "SPILL_FILE_PREFIX",
    "EphemeralFile",
    "TempFileStore",
    "sweep_stale_spill_files",
]

logger = structlog.get_logger(__name__)

MAX_CREATE_ATTEMPTS: Final[int] = 10
SPILL_FILE_PREFIX: Final[str] = "spill_"
SPILL_FILE_SUFFIX: Final[str] = ".tmp"

_SUFFIX_ALPHABET: Final[str] = string.ascii_letters + string.digits
_OWNER_ONLY: Final[int] = 0o600
_OPEN_FLAGS: Final[int] = (
    os.O_WRONLY | os.O_CREAT | os.O_EXCL | getattr(os, "O_CLOEXEC", 0)
)
_MB: Final[int] = 1024 * 1024


def _candidate_name() -> str:
    """Timestamp, UUID and an independent random suffix.

    Each part fails independently, so a collision points at its cause
    (clock, UUID source or RNG) and is astronomically unlikely anyway.
    """
    suffix = "".join(secrets.choice(_SUFFIX_ALPHABET) for _ in range(8))
    return (
        f"{SPILL_FILE_PREFIX}{time.time_ns()}_{uuid.uuid4().hex}_{suffix}"
        f"{SPILL_FILE_SUFFIX}"
    )


def _unlink_spill_file(path: Path) -> None:
    try:
        os.unlink(path)
    except FileNotFoundError:
        return
    logger.debug("spill_file_deleted", path=str(path))


class EphemeralFile:
    """Owned handle to one spill file; deletion is idempotent."""

    def __init__(self, path: Path, fd: int) -> None:
        self._path = path
        self._handle: Optional[Any] = os.fdopen(fd, "wb")
        self._finalizer = weakref.finalize(self, _unlink_spill_file, path)

    @property
    def path(self) -> Path:
        return self._path

    @property
    def deleted(self) -> bool:
        return not self._finalizer.alive

    def write(self, data: bytes) -> None:
        if self._handle is None:
            raise StorageIOError(
                "Spill file is no longer writable",
                operation="write",
                resource=str(self._path),
            )
        try:
            self._handle.write(data)
        except OSError as exc:
            raise StorageIOError(
                f"Failed to write to spill file: {exc}",
                operation="write",
                resource=str(self._path),
            ) from exc

    def sync_and_close(self) -> None:
        """Flush Python buffers, ``fsync`` to stable storage, close the handle."""
        if self._handle is None:
            return
        handle, self._handle = self._handle, None
        try:
            handle.flush()
            os.fsync(handle.fileno())
        except OSError as exc:
            raise StorageIOError(
                f"Failed to sync spill file: {exc}",
                operation="sync",
                resource=str(self._path),
            ) from exc
        finally:
            handle.close()

    async def awrite(self, data: bytes) -> None:
        await asyncio.to_thread(self.write, data)

    async def async_sync_and_close(self) -> None:
        await asyncio.to_thread(self.sync_and_close)

    def delete(self) -> None:
        """Close and remove the file.  Safe to call any number of times."""
        if self._handle is not None:
            handle, self._handle = self._handle, None
            try:
                handle.close()
            except OSError as exc:
                logger.warning(
                    "spill_file_close_failed", path=str(self._path), error=str(exc)
                )
        if not self._finalizer.alive:
            return
        try:
            self._finalizer()
        except OSError as exc:
            raise StorageIOError(
                f"Failed to delete spill file: {exc}",
                operation="delete",
                resource=str(self._path),
            ) from exc

    def __enter__(self) -> "EphemeralFile":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.delete()

    def __repr__(self) -> str:
        return f"EphemeralFile(path={str(self._path)!r}, deleted={self.deleted})"


class TempFileStore:
    """Factory for :class:`EphemeralFile` objects inside one spill directory."""

    def __init__(
        self,
        spill_dir: Union[str, Path],
        *,
        name_factory: Callable[[], str] = _candidate_name,
    ) -> None:
        self._dir = Path(spill_dir)
        self._name_factory = name_factory
        self._created_count = 0

    @property
    def spill_dir(self) -> Path:
        return self._dir

    @property
    def created_count(self) -> int:
        """Number of spill files successfully created by this store."""
        return self._created_count

    def _ensure_dir(self) -> None:
        try:
            self._dir.mkdir(mode=0o700, parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageIOError(
                f"Cannot create spill directory: {exc}",
                operation="mkdir",
                resource=str(self._dir),
            ) from exc

    def free_space_mb(self) -> int:
        """Free space available to unprivileged users in the spill directory.

        An unreadable directory reports ``0`` so the capacity check fails
        closed.
        """
        try:
            self._ensure_dir()
            return shutil.disk_usage(self._dir).free // _MB
        except (OSError, StorageIOError) as exc:
            logger.warning(
                "free_space_check_failed", spill_dir=str(self._dir), error=str(exc)
            )
            return 0

    def create(self) -> EphemeralFile:
        """Create a fresh, empty spill file.

        Raises
        ------
        RetriesExceededError
            When :data:`MAX_CREATE_ATTEMPTS` candidate names all existed.
        StorageIOError
            For any other failure to create or restrict the file.
        """
        self._ensure_dir()

        for attempt in range(1, MAX_CREATE_ATTEMPTS + 1):
            path = self._dir / self._name_factory()
            try:
                fd = os.open(path, _OPEN_FLAGS, _OWNER_ONLY)
            except FileExistsError:
                logger.debug("spill_name_collision", path=str(path), attempt=attempt)
                continue
            except OSError as exc:
                raise StorageIOError(
                    f"Failed to create spill file: {exc}",
                    operation="create",
                    resource=str(path),
                ) from exc

            try:
                # open()'s mode is filtered through the umask; set it exactly.
                os.fchmod(fd, _OWNER_ONLY)
            except OSError as exc:
                os.close(fd)
                _unlink_spill_file(path)
                raise StorageIOError(
                    f"Failed to restrict spill file permissions: {exc}",
                    operation="chmod",
                    resource=str(path),
                ) from exc

            self._created_count += 1
            logger.debug("spill_file_created", path=str(path), attempt=attempt)
            return EphemeralFile(path, fd)

        logger.error(
            "spill_name_retries_exceeded",
            spill_dir=str(self._dir),
            attempts=MAX_CREATE_ATTEMPTS,
        )
        raise RetriesExceededError(
            "Failed to generate a unique spill filename",
            operation="create",
            resource=str(self._dir),
        )


def sweep_stale_spill_files(
    spill_dir: Union[str, Path],
    max_age_secs: float,
    *,
    now: Optional[float] = None,
) -> int:
    """Remove spill files older than *max_age_secs*; return how many went.

    Catches files orphaned by a crash between creation and cleanup.  Only
    names produced by :class:`TempFileStore` are considered.
    """

    directory = Path(spill_dir)
    if not directory.is_dir():
        return 0

    cutoff = (time.time() if now is None else now) - max_age_secs
    removed = 0
    for entry in directory.iterdir():
        if not (
            entry.name.startswith(SPILL_FILE_PREFIX)
            and entry.name.endswith(SPILL_FILE_SUFFIX)
        ):
            continue
        try:
            info = entry.lstat()
            if not S_ISREG(info.st_mode) or info.st_mtime > cutoff:
                continue
            entry.unlink()
        except FileNotFoundError:
            continue
        except OSError as exc:
            logger.warning("orphan_spill_removal_failed", path=str(entry), error=str(exc))
            continue
        removed += 1
        logger.info("orphan_spill_removed", path=str(entry))

    return removed

"""
Core Custom Exceptions

Every failure the classification core can surface is a subclass of
:class:`ClassificationError`.  Each class carries a stable ``kind`` string
that the presentation layer maps to a transport status.

Failures are created where they are detected and translated into a
caller-facing error at most once (see ``contentprobe.api.errors``).  The
correlation id is attached by the orchestrator via :meth:`with_correlation`
once it is known.

Defined Exceptions:
- `ValidationFailure` and its refinements for filenames, relative paths and
  empty bodies.
- `NotFoundError`, `PermissionDeniedError`, `StorageIOError`: opening a
  resolved path.
- `StorageExhaustedError`: not enough free space to spill an upload.
- `RetriesExceededError`: temp-file name collisions exhausted the retry budget.
- `EngineError` / `EngineInitError`: libmagic failures.
- `DeadlineExceededError`: an engine call outlived its deadline.
- `PayloadTooLargeError`: the transport-level body limit was exceeded.
"""

from __future__ import annotations

from typing import Optional

__all__: list[str] = [
    "ClassificationError",
    "ValidationFailure",
    "InvalidFilenameError",
    "InvalidPathError",
    "AbsolutePathError",
    "PathTraversalError",
    "EmptyContentError",
    "NotFoundError",
    "PermissionDeniedError",
    "StorageIOError",
    "StorageExhaustedError",
    "RetriesExceededError",
    "EngineError",
    "EngineInitError",
    "DeadlineExceededError",
    "PayloadTooLargeError",
    "from_os_error",
]


class ClassificationError(Exception):
    """Base class for every typed failure of the classification core."""

    kind: str = "internal"

    def __init__(
        self,
        message: str,
        *,
        operation: Optional[str] = None,
        resource: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.resource = resource
        self.correlation_id = correlation_id

    def with_correlation(self, correlation_id: str) -> "ClassificationError":
        """Attach *correlation_id* unless one is already set; returns ``self``."""
        if self.correlation_id is None:
            self.correlation_id = correlation_id
        return self

    def __str__(self) -> str:
        if self.operation and self.resource:
            return f"{self.message} (operation={self.operation}, resource={self.resource})"
        return self.message


class ValidationFailure(ClassificationError):
    """Caller input was rejected before any resource was allocated."""

    kind = "validation"


class InvalidFilenameError(ValidationFailure):
    pass


class InvalidPathError(ValidationFailure):
    """Malformed relative path (leading space, doubled separator, ``.``)."""


class AbsolutePathError(ValidationFailure):
    pass


class PathTraversalError(ValidationFailure):
    """A ``..`` segment, or a join that escaped the sandbox root."""


class EmptyContentError(ValidationFailure):
    pass


class NotFoundError(ClassificationError):
    kind = "not_found"


class PermissionDeniedError(ClassificationError):
    kind = "permission_denied"


class StorageIOError(ClassificationError):
    """Any other I/O failure while reading or spilling content."""

    kind = "io_error"


class StorageExhaustedError(ClassificationError):
    """Free space in the spill directory is below the configured minimum."""

    kind = "storage_exhausted"

    def __init__(
        self,
        *,
        available_mb: int,
        required_mb: int,
        path: str,
        correlation_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Insufficient storage space at {path}: {available_mb}MB available, "
            f"but {required_mb}MB required",
            operation="spill",
            resource=path,
            correlation_id=correlation_id,
        )
        self.available_mb = available_mb
        self.required_mb = required_mb


class RetriesExceededError(ClassificationError):
    kind = "retries_exceeded"


class EngineError(ClassificationError):
    """The classification engine reported a failure."""

    kind = "engine_failure"


class EngineInitError(EngineError):
    """libmagic could not be opened or its signature database not loaded."""


class DeadlineExceededError(ClassificationError):
    kind = "deadline_exceeded"

    def __init__(
        self,
        timeout_secs: float,
        *,
        operation: Optional[str] = None,
        resource: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> None:
        super().__init__(
            f"Classification did not finish within {timeout_secs:g}s",
            operation=operation,
            resource=resource,
            correlation_id=correlation_id,
        )
        self.timeout_secs = timeout_secs


class PayloadTooLargeError(ClassificationError):
    kind = "payload_too_large"


def from_os_error(
    exc: OSError, *, operation: str, resource: str
) -> ClassificationError:
    """Translate an ``OSError`` from opening/reading *resource* into a typed failure.

    Missing files and permission problems keep their own kinds; everything
    else (directories, I/O errors, ...) becomes :class:`StorageIOError`.
    """
    if isinstance(exc, FileNotFoundError):
        return NotFoundError(
            f"File not found: {resource}", operation=operation, resource=resource
        )
    if isinstance(exc, PermissionError):
        return PermissionDeniedError(
            f"Permission denied: {resource}", operation=operation, resource=resource
        )
    return StorageIOError(
        f"I/O error: {exc.strerror or exc}", operation=operation, resource=resource
    )

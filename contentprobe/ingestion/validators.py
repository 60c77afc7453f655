from __future__ import annotations

from dataclasses import dataclass
from typing import Final, FrozenSet

import structlog

from contentprobe.core.exceptions import (
    AbsolutePathError,
    InvalidFilenameError,
    InvalidPathError,
    PathTraversalError,
)

__all__: list[str] = [
    "MAX_FILENAME_LENGTH",
    "ValidatedFilename",
    "SandboxRelativePath",
]

logger = structlog.get_logger(__name__)

MAX_FILENAME_LENGTH: Final[int] = 310

_FORBIDDEN_FILENAME_CHARS: Final[FrozenSet[str]] = frozenset('/\\:*?"<>|\0')


@dataclass(frozen=True)
class ValidatedFilename:
    """A client-supplied filename that is safe to log and echo back.

    Construction is the only validation point: once an instance exists no
    downstream component checks it again.

    Raises
    ------
    InvalidFilenameError
        When the name is empty, longer than :data:`MAX_FILENAME_LENGTH`
        characters, or contains any of ``/ \\ : * ? " < > |`` or NUL.
    """

    value: str

    def __post_init__(self) -> None:
        if not isinstance(self.value, str) or not self.value:
            logger.warning("filename_rejected", reason="empty")
            raise InvalidFilenameError("Filename cannot be empty")
        if len(self.value) > MAX_FILENAME_LENGTH:
            logger.warning(
                "filename_rejected", reason="too_long", length=len(self.value)
            )
            raise InvalidFilenameError(
                f"Filename exceeds {MAX_FILENAME_LENGTH} characters"
            )
        if any(c in _FORBIDDEN_FILENAME_CHARS for c in self.value):
            logger.warning("filename_rejected", reason="invalid_character")
            raise InvalidFilenameError("Filename contains an invalid character")

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class SandboxRelativePath:
    """A relative path that cannot express a traversal.

    The checks run in a fixed order so each bad input maps to exactly one
    failure kind:

    1. leading ``/``                      → :class:`AbsolutePathError`
    2. empty, leading space, ``//``, NUL  → :class:`InvalidPathError`
    3. any ``..`` segment                 → :class:`PathTraversalError`
    4. any ``.`` segment                  → :class:`InvalidPathError`
    """

    value: str

    def __post_init__(self) -> None:
        path = self.value
        if not isinstance(path, str):
            raise InvalidPathError("Path must be a string")
        if path.startswith("/"):
            self._reject(AbsolutePathError, "Absolute paths are not allowed")
        if not path:
            self._reject(InvalidPathError, "Path cannot be empty")
        if path.startswith(" "):
            self._reject(InvalidPathError, "Path cannot start with a space")
        if "//" in path:
            self._reject(InvalidPathError, "Path cannot contain repeated separators")
        if "\0" in path:
            self._reject(InvalidPathError, "Path cannot contain NUL")

        segments = path.split("/")
        if ".." in segments:
            self._reject(PathTraversalError, "Path traversal is not allowed")
        if "." in segments:
            self._reject(InvalidPathError, "Path cannot contain '.' segments")

    @staticmethod
    def _reject(error: type[Exception], message: str) -> None:
        logger.warning("relative_path_rejected", reason=message)
        raise error(message)

    def __str__(self) -> str:
        return self.value

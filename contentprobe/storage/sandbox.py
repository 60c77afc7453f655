from __future__ import annotations

import os
from pathlib import Path
from typing import Union

import structlog

from contentprobe.core.exceptions import PathTraversalError
from contentprobe.ingestion.validators import SandboxRelativePath

__all__: list[str] = ["SandboxResolver"]

logger = structlog.get_logger(__name__)


class SandboxResolver:
    """Map :class:`SandboxRelativePath` values onto a fixed root directory.

    Primary traversal defence lives in ``SandboxRelativePath``; the prefix
    check here catches whatever slips past it (a misconfigured root, for
    instance).  Resolution is pure: nothing is opened or stat-ed, so
    not-found and permission errors surface later, when the caller opens the
    file.
    """

    def __init__(self, root: Union[str, Path]) -> None:
        self._root = Path(os.path.normpath(os.path.abspath(root)))

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, relative: SandboxRelativePath) -> Path:
        if not isinstance(relative, SandboxRelativePath):
            raise TypeError("resolve() requires a SandboxRelativePath")

        # Lexical only: nothing is resolved against the filesystem.
        candidate = Path(os.path.normpath(self._root / relative.value))
        root_str = str(self._root)
        candidate_str = str(candidate)

        if not candidate_str.startswith(root_str) or not candidate.is_relative_to(
            self._root
        ):
            logger.warning(
                "sandbox_escape_blocked", root=root_str, relative=relative.value
            )
            raise PathTraversalError(
                "Resolved path escapes the sandbox root",
                operation="resolve",
                resource=relative.value,
            )

        return candidate

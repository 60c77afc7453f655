from __future__ import annotations

from .streamers import stream_body
from .validators import SandboxRelativePath, ValidatedFilename

__all__: list[str] = [
    "stream_body",
    "SandboxRelativePath",
    "ValidatedFilename",
]

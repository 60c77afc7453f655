from __future__ import annotations

from .mmap_reader import STORAGE_FAULT, MemoryMapping, map_file
from .sandbox import SandboxResolver
from .tempfiles import EphemeralFile, TempFileStore, sweep_stale_spill_files

__all__: list[str] = [
    "STORAGE_FAULT",
    "MemoryMapping",
    "map_file",
    "SandboxResolver",
    "EphemeralFile",
    "TempFileStore",
    "sweep_stale_spill_files",
]

from __future__ import annotations

import sys
from pathlib import Path

# Ensure repository root is first on sys.path
_repo_root: Path = Path(__file__).resolve().parent.parent  # tests/ -> repo root
if str(_repo_root) not in sys.path:
    sys.path.insert(0, str(_repo_root))

from typing import Any, List, Optional, Tuple, Union

import pytest

from contentprobe.classification.types import EngineVerdict, MimeType
from contentprobe.storage.mmap_reader import STORAGE_FAULT

PDF_BYTES: bytes = b"%PDF-1.4\n%\xe2\xe3\xcf\xd3\n"
PNG_BYTES: bytes = b"\x89PNG\r\n\x1a\n" + b"\x00" * 24


class MockSettings:  # Does NOT inherit from real Settings
    """Mock Settings class for testing."""

    debug: bool = False
    commit_sha: Optional[str] = None
    prometheus_enabled: bool = False

    host: str = "127.0.0.1"
    port: int = 8080

    auth_username: str = ""
    auth_password: str = ""

    sandbox_dir: Path = Path("/tmp/contentprobe-test/files")
    spill_dir: Path = Path("/tmp/contentprobe-test/spill")

    large_file_threshold_bytes: int = 10 * 1024 * 1024
    # Tests must not depend on how full the CI disk is.
    min_free_space_mb: int = 0
    analysis_timeout_secs: float = 5.0
    mmap_fallback_enabled: bool = True

    magic_database_path: Optional[str] = None
    engine_workers: int = 2
    scan_window_kb: int = 1024

    read_chunk_size_kb: int = 64
    max_body_size_mb: int = 100

    temp_file_max_age_secs: int = 3600
    cleanup_interval_secs: int = 0

    def __init__(self, **kwargs: Any) -> None:
        """Initialize with optional overrides for any attribute."""
        for key, value in self.__class__.__dict__.items():
            if not key.startswith("__") and not callable(value) and not isinstance(
                value, property
            ):
                setattr(self, key, value)
        for key, value in kwargs.items():
            setattr(self, key, value)

    @property
    def auth_enabled(self) -> bool:
        return bool(self.auth_username or self.auth_password)

    @property
    def scan_window_bytes(self) -> int:
        return self.scan_window_kb * 1024

    @property
    def read_chunk_size(self) -> int:
        return self.read_chunk_size_kb * 1024

    @property
    def max_body_size_bytes(self) -> int:
        return self.max_body_size_mb * 1024 * 1024

    def ensure_directories(self) -> None:
        Path(self.sandbox_dir).mkdir(parents=True, exist_ok=True)
        Path(self.spill_dir).mkdir(mode=0o700, parents=True, exist_ok=True)


class SignatureStubEngine:
    """Engine double that recognises PDF and PNG by their leading bytes.

    Mirrors the ownership contract of the real engine: a mapping handed to
    :meth:`classify_mapping` is always closed.  Every call is recorded in
    ``calls`` as ``(method, detail)``, its deadline in ``timeouts``.
    """

    def __init__(self, *, trip_fault_on_mapping: bool = False) -> None:
        self.calls: List[Tuple[str, Any]] = []
        self.timeouts: List[float] = []
        self.trip_fault_on_mapping = trip_fault_on_mapping
        self.shut_down = False

    @staticmethod
    def _verdict(data: bytes) -> EngineVerdict:
        if data.startswith(b"%PDF"):
            return EngineVerdict(MimeType("application/pdf"), "PDF document", "binary")
        if data.startswith(b"\x89PNG"):
            return EngineVerdict(MimeType("image/png"), "PNG image data", "binary")
        return EngineVerdict(MimeType("application/octet-stream"), "data", "binary")

    async def classify(self, data: bytes, *, timeout: float) -> EngineVerdict:
        self.calls.append(("classify", len(data)))
        self.timeouts.append(timeout)
        return self._verdict(data)

    async def classify_file(
        self, path: Union[str, Path], *, timeout: float
    ) -> EngineVerdict:
        self.calls.append(("classify_file", str(path)))
        self.timeouts.append(timeout)
        return self._verdict(Path(path).read_bytes())

    async def classify_mapping(self, mapping: Any, *, timeout: float) -> EngineVerdict:
        try:
            data = mapping.read_window()
        finally:
            mapping.close()
        self.calls.append(("classify_mapping", len(data)))
        self.timeouts.append(timeout)
        if self.trip_fault_on_mapping:
            STORAGE_FAULT.trip()
        return self._verdict(data)

    def shutdown(self) -> None:
        self.shut_down = True

    @property
    def methods(self) -> List[str]:
        return [name for name, _ in self.calls]


@pytest.fixture
def mock_settings(tmp_path: Path) -> MockSettings:
    """MockSettings whose sandbox and spill directories live under *tmp_path*."""
    settings = MockSettings(
        sandbox_dir=tmp_path / "sandbox",
        spill_dir=tmp_path / "spill",
    )
    settings.ensure_directories()
    yield settings


@pytest.fixture
def stub_engine() -> SignatureStubEngine:
    return SignatureStubEngine()


@pytest.fixture(autouse=True)
def _reset_storage_fault():
    STORAGE_FAULT.clear()
    yield
    STORAGE_FAULT.clear()


@pytest.fixture(autouse=True)
def _disable_dotenv(monkeypatch):
    """Prevent the application Settings class from reading the developer *.env* file.

    The fixture patches ``Settings.model_config['env_file']`` to ``None`` so
    that Pydantic skips dotenv processing entirely.  Individual tests remain
    free to manipulate environment variables via ``monkeypatch``.
    """

    from contentprobe.core.config import Settings  # Imported here to avoid circularity

    monkeypatch.setitem(Settings.model_config, "env_file", None)

    for name in ("AUTH_USERNAME", "AUTH_PASSWORD", "SANDBOX_DIR", "SPILL_DIR"):
        monkeypatch.delenv(name, raising=False)

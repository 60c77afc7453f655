from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

_MB: int = 1024 * 1024


class Settings(BaseSettings):
    """
    Application configuration settings, loaded from environment variables.
    """

    debug: bool = False
    commit_sha: Optional[str] = None
    prometheus_enabled: bool = True

    host: str = "127.0.0.1"
    port: int = 8080

    # Basic auth; leaving both empty disables credential checks.
    auth_username: str = ""
    auth_password: str = ""

    sandbox_dir: Path = Path("/tmp/contentprobe/files")
    spill_dir: Path = Path("/tmp/contentprobe/spill")

    large_file_threshold_bytes: int = 10 * _MB
    min_free_space_mb: int = 1024
    analysis_timeout_secs: float = 30.0
    mmap_fallback_enabled: bool = True

    magic_database_path: Optional[str] = None
    engine_workers: int = 4
    scan_window_kb: int = 1024

    read_chunk_size_kb: int = 64
    max_body_size_mb: int = 100

    temp_file_max_age_secs: int = 3600
    cleanup_interval_secs: int = 300

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter=None,
        protected_namespaces=("protect_", "private_"),
    )

    @model_validator(mode="after")
    def parse_settings(self) -> "Settings":
        """Reject a sandbox root that is not absolute."""
        if not self.sandbox_dir.is_absolute():
            raise ValueError("SANDBOX_DIR must be an absolute path")
        return self

    @field_validator("large_file_threshold_bytes", "min_free_space_mb")
    @classmethod
    def _non_negative(cls, v: int, info: Any) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name.upper()} must be >= 0")
        return v

    @field_validator("analysis_timeout_secs")
    @classmethod
    def _positive_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("ANALYSIS_TIMEOUT_SECS must be > 0")
        return v

    @field_validator("engine_workers", "scan_window_kb", "read_chunk_size_kb")
    @classmethod
    def _at_least_one(cls, v: int, info: Any) -> int:
        if v < 1:
            raise ValueError(f"{info.field_name.upper()} must be >= 1")
        return v

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
        return self.max_body_size_mb * _MB

    def ensure_directories(self) -> None:
        """Create the sandbox and spill directories if they are missing.

        The spill directory is restricted to the owner because it holds
        copies of untrusted uploads.
        """
        self.sandbox_dir.mkdir(parents=True, exist_ok=True)
        self.spill_dir.mkdir(mode=0o700, parents=True, exist_ok=True)


# Public accessor – manual caching to support special behaviour in tests
_CACHED_SETTINGS: Optional[Settings] = None


def get_settings() -> Settings:  # noqa: D401 – accessor helper
    """Return a **singleton** Settings instance unless running under pytest.

    Tests expect a **fresh** instance every time ``get_settings`` is invoked
    while ``PYTEST_CURRENT_TEST`` is present in the environment, so that
    ``monkeypatch.setenv`` takes effect without manual cache busting.
    """

    global _CACHED_SETTINGS  # noqa: PLW0603 – module-level singleton

    # Test-mode ➜ always deliver a **new** instance (no caching)
    if "PYTEST_CURRENT_TEST" in os.environ:
        return Settings()

    if _CACHED_SETTINGS is None:
        _CACHED_SETTINGS = Settings()

    return _CACHED_SETTINGS


# Mimic ``functools.lru_cache`` API expected by existing tests
def _clear_settings_cache() -> None:  # noqa: D401 – helper for tests
    """Clear the internal Settings singleton (used by unit-tests)."""

    global _CACHED_SETTINGS
    _CACHED_SETTINGS = None


get_settings.cache_clear = _clear_settings_cache  # type: ignore[attr-defined]

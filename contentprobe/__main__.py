"""Run the service with ``python -m contentprobe``."""

from __future__ import annotations

import uvicorn

from contentprobe.core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "contentprobe.api.app:app",
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()

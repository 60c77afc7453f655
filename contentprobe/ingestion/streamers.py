from __future__ import annotations

from typing import AsyncGenerator, AsyncIterable, Final, Optional

import structlog

from contentprobe.core.exceptions import PayloadTooLargeError

__all__: list[str] = ["stream_body", "DEFAULT_CHUNK_SIZE"]

logger = structlog.get_logger(__name__)

DEFAULT_CHUNK_SIZE: Final[int] = 64 * 1024  # 64 KB


async def stream_body(
    source: AsyncIterable[bytes],
    *,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    max_bytes: Optional[int] = None,
) -> AsyncGenerator[bytes, None]:
    """Yield **source** in pieces of at most *chunk_size* bytes.

    Parameters
    ----------
    source:
        Any async iterable of ``bytes`` – typically
        :meth:`starlette.requests.Request.stream`.  Transport chunks can be
        arbitrarily large, so they are re-sliced to keep the orchestrator's
        per-chunk threshold check fine-grained.
    chunk_size:
        Upper bound on each yielded piece.  Must be **positive**.
    max_bytes:
        Optional cap on the total body size.  Exceeding it aborts the stream.

    Yields
    ------
    bytes
        Non-empty chunks in arrival order.

    Raises
    ------
    ValueError
        If *chunk_size* is ≤ 0.
    PayloadTooLargeError
        If more than *max_bytes* arrive.
    """

    if chunk_size <= 0:
        raise ValueError("chunk_size must be greater than 0")

    total_read: int = 0

    async for raw in source:
        if not raw:
            continue

        total_read += len(raw)
        if max_bytes is not None and total_read > max_bytes:
            logger.warning(
                "stream_body_too_large", total_read=total_read, max_bytes=max_bytes
            )
            raise PayloadTooLargeError(
                f"Request body exceeds the limit of {max_bytes} bytes"
            )

        for offset in range(0, len(raw), chunk_size):
            chunk = raw[offset : offset + chunk_size]
            logger.debug(
                "stream_chunk_read", chunk_size=len(chunk), total_read=total_read
            )
            yield chunk

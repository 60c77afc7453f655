"""tests/unit/ingestion/test_streamers.py
###############################################################################
Unit tests for `contentprobe.ingestion.streamers`.

The async generator is driven with `asyncio.run()` so these tests need no
event-loop plug-in.
###############################################################################
"""

from __future__ import annotations

# stdlib
import asyncio
from typing import AsyncIterator, List, Optional

# third-party
import pytest

# local
from contentprobe.core.exceptions import PayloadTooLargeError
from contentprobe.ingestion.streamers import DEFAULT_CHUNK_SIZE, stream_body


async def _source(*parts: bytes) -> AsyncIterator[bytes]:
    for part in parts:
        yield part


def _collect(
    *parts: bytes, chunk_size: int = DEFAULT_CHUNK_SIZE, max_bytes: Optional[int] = None
) -> List[bytes]:
    async def _run() -> List[bytes]:
        return [
            chunk
            async for chunk in stream_body(
                _source(*parts), chunk_size=chunk_size, max_bytes=max_bytes
            )
        ]

    return asyncio.run(_run())


def test_stream_exact_chunk_boundary() -> None:
    """A transport chunk equal to chunk size is yielded unchanged."""
    payload = b"a" * DEFAULT_CHUNK_SIZE
    assert _collect(payload) == [payload]


def test_large_transport_chunks_are_resliced() -> None:
    chunks = _collect(b"x" * 10, chunk_size=4)
    assert chunks == [b"xxxx", b"xxxx", b"xx"]


def test_empty_chunks_are_skipped() -> None:
    assert _collect(b"", b"ab", b"", b"c") == [b"ab", b"c"]


def test_empty_source_yields_nothing() -> None:
    assert _collect() == []


def test_body_over_limit_raises() -> None:
    with pytest.raises(PayloadTooLargeError):
        _collect(b"abc", b"def", max_bytes=5)


def test_body_at_limit_is_accepted() -> None:
    assert b"".join(_collect(b"abc", b"de", max_bytes=5)) == b"abcde"


@pytest.mark.parametrize("size", [0, -1])
def test_non_positive_chunk_size_raises(size: int) -> None:
    with pytest.raises(ValueError):
        _collect(b"abc", chunk_size=size)

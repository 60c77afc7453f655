from __future__ import annotations

import gc
import os
from pathlib import Path

import pytest

from contentprobe.core.exceptions import StorageIOError
from contentprobe.storage import mmap_reader
from contentprobe.storage.mmap_reader import STORAGE_FAULT, map_file


def _write(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


def test_empty_file_maps_to_zero_length_view(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    path = _write(tmp_path / "empty.bin", b"")

    def _no_mmap(*_args, **_kwargs):
        raise AssertionError("mmap must not be called for an empty file")

    monkeypatch.setattr(mmap_reader, "_map_readonly", _no_mmap)

    with path.open("rb") as fileobj, map_file(fileobj) as mapping:
        assert len(mapping) == 0
        assert len(mapping.view) == 0
        assert mapping.read_window() == b""


def test_mapping_exposes_file_bytes(tmp_path: Path) -> None:
    payload = b"%PDF-1.4 " + os.urandom(4096)
    path = _write(tmp_path / "doc.pdf", payload)

    with path.open("rb") as fileobj:
        mapping = map_file(fileobj)

    # The mapping owns its own descriptor; the file object is already closed.
    with mapping:
        assert len(mapping) == len(payload)
        assert mapping.view[:4].tobytes() == b"%PDF"
        assert mapping.read_window() == payload
        assert mapping.read_window(8) == payload[:8]
    assert mapping.closed


def test_close_is_idempotent(tmp_path: Path) -> None:
    path = _write(tmp_path / "data.bin", b"abc")
    with path.open("rb") as fileobj:
        mapping = map_file(fileobj)

    mapping.close()
    mapping.close()

    with pytest.raises(ValueError):
        _ = mapping.view


def test_truncated_backing_file_trips_fault_without_reading(tmp_path: Path) -> None:
    path = _write(tmp_path / "shrinking.bin", b"x" * 8192)
    with path.open("rb") as fileobj:
        mapping = map_file(fileobj)

    with mapping:
        os.truncate(path, 0)
        assert not STORAGE_FAULT.tripped
        with pytest.raises(StorageIOError) as exc_info:
            mapping.read_window()

    assert exc_info.value.operation == "read_mapping"
    assert STORAGE_FAULT.tripped


def test_intact_read_leaves_fault_flag_clear(tmp_path: Path) -> None:
    path = _write(tmp_path / "ok.bin", b"y" * 100)
    with path.open("rb") as fileobj, map_file(fileobj) as mapping:
        mapping.read_window()
        assert mapping.is_intact()
    assert not STORAGE_FAULT.tripped


def test_bad_descriptor_raises_storage_error() -> None:
    class _ClosedHandle:
        name = "closed.bin"

        def fileno(self) -> int:
            return -1

    with pytest.raises(StorageIOError) as exc_info:
        map_file(_ClosedHandle())  # type: ignore[arg-type]

    assert exc_info.value.operation == "mmap"


def test_closed_file_object_raises_storage_error(tmp_path: Path) -> None:
    path = _write(tmp_path / "gone.bin", b"abc")
    fileobj = path.open("rb")
    fileobj.close()

    with pytest.raises(StorageIOError) as exc_info:
        map_file(fileobj)

    assert exc_info.value.operation == "mmap"


def test_truncation_marks_the_mapping_itself(tmp_path: Path) -> None:
    path = _write(tmp_path / "shrinking.bin", b"z" * 4096)
    with path.open("rb") as fileobj, map_file(fileobj) as mapping:
        mapping.read_window()
        os.truncate(path, 10)
        STORAGE_FAULT.clear()
        assert not mapping.is_intact()

    assert mapping.faulted
    assert not mapping.is_intact()


def test_dropped_mapping_releases_its_descriptor(tmp_path: Path) -> None:
    path = _write(tmp_path / "dropped.bin", b"d" * 4096)
    with path.open("rb") as fileobj:
        mapping = map_file(fileobj)
    finalizer = mapping._finalizer

    del mapping
    gc.collect()

    assert not finalizer.alive

from __future__ import annotations

import io
import os
import stat
import threading

import pytest

from remotefs.services import file_ops
from remotefs.services.errors import AlreadyExists, IOFailure
from remotefs.services.file_ops import FileService


class _GatedSource:
    """Blocks on the second read until the test opens the gate."""

    def __init__(self, data: bytes):
        self._buffer = io.BytesIO(data)
        self._reads = 0
        self.paused = threading.Event()
        self.gate = threading.Event()

    def read(self, size: int = -1) -> bytes:
        self._reads += 1
        if self._reads == 2:
            self.paused.set()
            self.gate.wait(timeout=5)
        return self._buffer.read(size)


class _FailingSource:
    def __init__(self, first: bytes):
        self._first = first
        self._reads = 0

    def read(self, size: int = -1) -> bytes:
        self._reads += 1
        if self._reads == 1:
            return self._first
        raise OSError(5, 'Input/output error')


def test_save_stream_round_trip(tmp_path):
    ops = FileService(str(tmp_path))

    ops.save_stream('docs/report.bin', io.BytesIO(b'payload' * 1000), overwrite=False)

    assert ops.read_file('docs/report.bin') == b'payload' * 1000
    assert not (tmp_path / 'docs' / 'report.bin.part').exists()


def test_save_stream_refuses_existing_before_opening_temp(tmp_path):
    (tmp_path / 'taken.txt').write_bytes(b'original')
    ops = FileService(str(tmp_path))

    with pytest.raises(AlreadyExists):
        ops.save_stream('taken.txt', io.BytesIO(b'new'), overwrite=False)

    assert (tmp_path / 'taken.txt').read_bytes() == b'original'
    assert not (tmp_path / 'taken.txt.part').exists()


def test_reader_never_sees_partial_file(tmp_path):
    ops = FileService(str(tmp_path), chunk_size=4)
    data = b'0123456789abcdef'
    source = _GatedSource(data)
    errors: list[BaseException] = []

    def _write():
        try:
            ops.save_stream('live.bin', source, overwrite=False)
        except BaseException as exc:
            errors.append(exc)

    writer = threading.Thread(target=_write)
    writer.start()
    try:
        assert source.paused.wait(timeout=5)
        assert not (tmp_path / 'live.bin').exists()
        assert (tmp_path / 'live.bin.part').exists()
    finally:
        source.gate.set()
        writer.join(timeout=5)

    assert errors == []
    assert (tmp_path / 'live.bin').read_bytes() == data
    assert not (tmp_path / 'live.bin.part').exists()


def test_failed_copy_removes_temp_and_keeps_target(tmp_path):
    (tmp_path / 'config.txt').write_bytes(b'stable')
    ops = FileService(str(tmp_path), chunk_size=4)

    with pytest.raises(IOFailure) as exc:
        ops.save_stream('config.txt', _FailingSource(b'half'), overwrite=True)

    assert exc.value.message == 'Input/output error'
    assert (tmp_path / 'config.txt').read_bytes() == b'stable'
    assert not (tmp_path / 'config.txt.part').exists()


def test_failed_rename_removes_temp(monkeypatch, tmp_path):
    ops = FileService(str(tmp_path))

    def _broken_replace(src, dst):
        raise OSError(28, 'No space left on device')

    monkeypatch.setattr(file_ops.os, 'replace', _broken_replace)

    with pytest.raises(IOFailure):
        ops.save_stream('out.txt', io.BytesIO(b'content'), overwrite=True)

    assert not (tmp_path / 'out.txt').exists()
    assert not (tmp_path / 'out.txt.part').exists()


def test_save_stream_fsyncs_file_and_parent_directory(monkeypatch, tmp_path):
    ops = FileService(str(tmp_path))
    original_fsync = os.fsync
    calls = {'file': 0, 'dir': 0}

    def tracking_fsync(fd: int):
        mode = os.fstat(fd).st_mode
        if stat.S_ISDIR(mode):
            calls['dir'] += 1
        else:
            calls['file'] += 1
        return original_fsync(fd)

    monkeypatch.setattr(file_ops.os, 'fsync', tracking_fsync)

    ops.save_stream('synced.txt', io.BytesIO(b'value\n'), overwrite=False)

    assert calls['file'] >= 1
    assert calls['dir'] >= 1
    assert (tmp_path / 'synced.txt').read_bytes() == b'value\n'

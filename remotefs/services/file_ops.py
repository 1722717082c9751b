from __future__ import annotations

import io
import os
import shutil
import stat
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import BinaryIO, Union

from .errors import (
    AlreadyExists,
    DirectoryNotEmpty,
    IsADirectory,
    MissingNewName,
    NotADirectory,
    NotFound,
    translate_os_errors,
)
from .mime import DEFAULT_TYPE, SNIFF_LENGTH, guess_by_extension, sniff
from .paths import PathResolver

DEFAULT_CHUNK_SIZE = 1024 * 1024
PART_SUFFIX = '.part'

Content = Union[bytes, bytearray, memoryview, BinaryIO]


class NodeKind(str, Enum):
    FILE = 'file'
    DIRECTORY = 'directory'
    SYMLINK = 'symlink'
    SOCKET = 'socket'
    FIFO = 'fifo'
    UNKNOWN = 'unknown'


@dataclass(frozen=True)
class NodeMetadata:
    name: str
    kind: NodeKind
    size: int
    modified: datetime

    @property
    def is_dir(self) -> bool:
        return self.kind is NodeKind.DIRECTORY


def kind_of(mode: int) -> NodeKind:
    if stat.S_ISLNK(mode):
        return NodeKind.SYMLINK
    if stat.S_ISDIR(mode):
        return NodeKind.DIRECTORY
    if stat.S_ISREG(mode):
        return NodeKind.FILE
    if stat.S_ISSOCK(mode):
        return NodeKind.SOCKET
    if stat.S_ISFIFO(mode):
        return NodeKind.FIFO
    return NodeKind.UNKNOWN


def metadata_from_stat(name: str, st: os.stat_result) -> NodeMetadata:
    kind = kind_of(st.st_mode)
    return NodeMetadata(
        name=name,
        kind=kind,
        size=0 if kind is NodeKind.DIRECTORY else st.st_size,
        modified=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
    )


def _fsync_directory(path: Path) -> None:
    dir_fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


class FileService:
    """OS-backed file operations confined to a single root directory.

    Every failure is raised as a ``FileServiceError`` subclass; nothing here
    logs or retries.
    """

    def __init__(self, root: str, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.resolver = PathResolver(root)
        self.chunk_size = chunk_size

    @property
    def root(self) -> Path:
        return self.resolver.root_path

    def safe_path(self, rel: str) -> Path:
        return self.resolver.resolve(rel)

    def _stat(self, target: Path, follow_symlinks: bool = True) -> os.stat_result:
        with translate_os_errors():
            return os.stat(target, follow_symlinks=follow_symlinks)

    def exists(self, rel: str) -> bool:
        return os.path.lexists(self.safe_path(rel))

    def stat(self, rel: str) -> NodeMetadata:
        target = self.safe_path(rel)
        return metadata_from_stat(target.name, self._stat(target))

    def list_dir(self, rel: str) -> list[NodeMetadata]:
        target = self.safe_path(rel)
        if not stat.S_ISDIR(self._stat(target).st_mode):
            raise NotADirectory()

        items: list[NodeMetadata] = []
        with translate_os_errors(), os.scandir(target) as entries:
            for entry in entries:
                try:
                    st = entry.stat(follow_symlinks=False)
                except FileNotFoundError:
                    # removed between enumeration and stat
                    continue
                items.append(metadata_from_stat(entry.name, st))
        return items

    def _require_file(self, target: Path) -> os.stat_result:
        st = self._stat(target)
        if stat.S_ISDIR(st.st_mode):
            raise IsADirectory()
        # opening a fifo blocks until a writer shows up
        if not stat.S_ISREG(st.st_mode):
            raise IsADirectory('path is not a regular file')
        return st

    def read_file(self, rel: str) -> bytes:
        target = self.safe_path(rel)
        self._require_file(target)
        with translate_os_errors():
            return target.read_bytes()

    def open_stream(self, rel: str) -> tuple[BinaryIO, NodeMetadata]:
        """Open a file for chunked reading. The caller owns the handle."""
        target = self.safe_path(rel)
        self._require_file(target)
        with translate_os_errors():
            handle = target.open('rb')
            try:
                meta = metadata_from_stat(target.name, os.fstat(handle.fileno()))
            except OSError:
                handle.close()
                raise
        return handle, meta

    def write_file(self, rel: str, content: Content, create: bool = True, overwrite: bool = True) -> None:
        target = self.safe_path(rel)
        if not create and not os.path.lexists(target):
            raise NotFound()
        if isinstance(content, (bytes, bytearray, memoryview)):
            content = io.BytesIO(content)
        self.save_stream(rel, content, overwrite=overwrite)

    def save_stream(self, rel: str, source: BinaryIO, overwrite: bool = False) -> None:
        """Copy ``source`` to ``<name>.part`` then rename it over the target.

        The final name only ever holds a complete file. On any failure the
        temp file is removed and an existing target is left as it was.
        """
        target = self.safe_path(rel)
        if target == self.root:
            raise IsADirectory()

        with translate_os_errors():
            target.parent.mkdir(parents=True, exist_ok=True)
            if target.is_dir():
                raise IsADirectory()
            if not overwrite and os.path.lexists(target):
                raise AlreadyExists()

            tmp = target.with_name(target.name + PART_SUFFIX)
            try:
                with tmp.open('wb') as handle:
                    shutil.copyfileobj(source, handle, self.chunk_size)
                    handle.flush()
                    os.fsync(handle.fileno())
                os.replace(tmp, target)
            except Exception:
                tmp.unlink(missing_ok=True)
                raise
            _fsync_directory(target.parent)

    def delete(self, rel: str) -> None:
        target = self.safe_path(rel)
        st = self._stat(target, follow_symlinks=False)
        with translate_os_errors():
            if stat.S_ISDIR(st.st_mode):
                with os.scandir(target) as entries:
                    if next(entries, None) is not None:
                        raise DirectoryNotEmpty()
                target.rmdir()
            else:
                target.unlink()

    def delete_recursive(self, rel: str) -> None:
        target = self.safe_path(rel)
        st = self._stat(target, follow_symlinks=False)
        with translate_os_errors():
            if stat.S_ISDIR(st.st_mode):
                shutil.rmtree(target)
            else:
                target.unlink()

    def mkdir_all(self, rel: str) -> None:
        target = self.safe_path(rel)
        with translate_os_errors():
            if os.path.lexists(target) and not target.is_dir():
                raise NotADirectory()
            target.mkdir(parents=True, exist_ok=True)

    def rename(self, src_rel: str, dst_rel: str, overwrite: bool = False) -> None:
        if not dst_rel or not dst_rel.strip():
            raise MissingNewName()

        source = self.safe_path(src_rel)
        self._stat(source, follow_symlinks=False)
        destination = self.safe_path(dst_rel)
        if destination == source:
            return
        if str(destination).startswith(str(source) + os.sep):
            raise IsADirectory('cannot move a directory into itself')
        if not overwrite and os.path.lexists(destination):
            raise AlreadyExists()

        with translate_os_errors():
            os.replace(source, destination)

    def detect_mime_type(self, rel: str) -> str:
        target = self.safe_path(rel)
        if target.suffix:
            by_extension = guess_by_extension(target.name)
            if by_extension:
                return by_extension

        mode = self._stat(target).st_mode
        if stat.S_ISDIR(mode):
            return 'inode/directory'
        if not stat.S_ISREG(mode):
            return DEFAULT_TYPE
        with translate_os_errors():
            with target.open('rb') as handle:
                return sniff(handle.read(SNIFF_LENGTH))

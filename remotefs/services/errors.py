from __future__ import annotations

import errno
from contextlib import contextmanager
from enum import Enum
from typing import Iterator


class ErrorKind(str, Enum):
    PATH_TRAVERSAL = 'path_traversal'
    NOT_FOUND = 'not_found'
    IS_A_DIRECTORY = 'is_a_directory'
    NOT_A_DIRECTORY = 'not_a_directory'
    ALREADY_EXISTS = 'already_exists'
    DIRECTORY_NOT_EMPTY = 'directory_not_empty'
    MISSING_NEW_NAME = 'missing_new_name'
    PERMISSION_DENIED = 'permission_denied'
    IO_FAILURE = 'io_failure'


_DEFAULT_MESSAGES = {
    ErrorKind.PATH_TRAVERSAL: 'invalid path: traversal outside root is not allowed',
    ErrorKind.NOT_FOUND: 'path not found',
    ErrorKind.IS_A_DIRECTORY: 'path is a directory',
    ErrorKind.NOT_A_DIRECTORY: 'path is not a directory',
    ErrorKind.ALREADY_EXISTS: 'already exists',
    ErrorKind.DIRECTORY_NOT_EMPTY: 'directory not empty',
    ErrorKind.MISSING_NEW_NAME: 'missing new name',
    ErrorKind.PERMISSION_DENIED: 'permission denied',
    ErrorKind.IO_FAILURE: 'i/o failure',
}


class FileServiceError(Exception):
    kind: ErrorKind = ErrorKind.IO_FAILURE

    def __init__(self, message: str | None = None):
        self.message = message or _DEFAULT_MESSAGES[self.kind]
        super().__init__(self.message)


class PathTraversal(FileServiceError):
    kind = ErrorKind.PATH_TRAVERSAL


class NotFound(FileServiceError):
    kind = ErrorKind.NOT_FOUND


class IsADirectory(FileServiceError):
    kind = ErrorKind.IS_A_DIRECTORY


class NotADirectory(FileServiceError):
    kind = ErrorKind.NOT_A_DIRECTORY


class AlreadyExists(FileServiceError):
    kind = ErrorKind.ALREADY_EXISTS


class DirectoryNotEmpty(FileServiceError):
    kind = ErrorKind.DIRECTORY_NOT_EMPTY


class MissingNewName(FileServiceError):
    kind = ErrorKind.MISSING_NEW_NAME


class PermissionDenied(FileServiceError):
    kind = ErrorKind.PERMISSION_DENIED


class IOFailure(FileServiceError):
    kind = ErrorKind.IO_FAILURE


def classify_os_error(exc: OSError) -> FileServiceError:
    """Map an OS exception onto the closed error taxonomy.

    Only ``strerror`` is carried over for unclassified failures so that
    absolute server paths never reach a client.
    """
    if isinstance(exc, FileNotFoundError):
        return NotFound()
    if isinstance(exc, PermissionError):
        return PermissionDenied()
    if isinstance(exc, FileExistsError):
        return AlreadyExists()
    if isinstance(exc, IsADirectoryError):
        return IsADirectory()
    if isinstance(exc, NotADirectoryError):
        return NotADirectory()
    if exc.errno == errno.ENOTEMPTY:
        return DirectoryNotEmpty()
    return IOFailure(exc.strerror or type(exc).__name__)


@contextmanager
def translate_os_errors() -> Iterator[None]:
    try:
        yield
    except OSError as exc:
        raise classify_os_error(exc) from exc

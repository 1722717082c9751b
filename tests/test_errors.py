from __future__ import annotations

import errno

import pytest

from remotefs.services import errors


@pytest.mark.parametrize(
    ('exc', 'expected'),
    [
        (FileNotFoundError(errno.ENOENT, 'No such file or directory', '/srv/x'), errors.NotFound),
        (PermissionError(errno.EACCES, 'Permission denied', '/srv/x'), errors.PermissionDenied),
        (FileExistsError(errno.EEXIST, 'File exists'), errors.AlreadyExists),
        (IsADirectoryError(errno.EISDIR, 'Is a directory'), errors.IsADirectory),
        (NotADirectoryError(errno.ENOTDIR, 'Not a directory'), errors.NotADirectory),
        (OSError(errno.ENOTEMPTY, 'Directory not empty'), errors.DirectoryNotEmpty),
        (OSError(errno.EIO, 'Input/output error'), errors.IOFailure),
    ],
)
def test_classify_os_error(exc, expected):
    classified = errors.classify_os_error(exc)

    assert type(classified) is expected
    assert classified.kind is expected.kind


def test_classified_messages_do_not_leak_paths():
    classified = errors.classify_os_error(PermissionError(errno.EACCES, 'Permission denied', '/srv/secret/file'))

    assert '/srv/secret' not in classified.message


def test_translate_os_errors_chains_original():
    with pytest.raises(errors.NotFound) as exc:
        with errors.translate_os_errors():
            raise FileNotFoundError(errno.ENOENT, 'missing')

    assert isinstance(exc.value.__cause__, FileNotFoundError)


def test_translate_os_errors_passes_service_errors_through():
    with pytest.raises(errors.DirectoryNotEmpty):
        with errors.translate_os_errors():
            raise errors.DirectoryNotEmpty()

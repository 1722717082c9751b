from __future__ import annotations

import asyncio
import json

from starlette.requests import Request

from remotefs import main
from remotefs.services.errors import DirectoryNotEmpty, IOFailure, PermissionDenied


def _request(path: str, method: str = 'GET') -> Request:
    scope = {
        'type': 'http',
        'http_version': '1.1',
        'method': method,
        'scheme': 'http',
        'path': path,
        'raw_path': path.encode(),
        'query_string': b'',
        'headers': [],
        'client': ('127.0.0.1', 12345),
        'server': ('testserver', 80),
    }
    return Request(scope)


def test_unhandled_exception_handler_response_is_safe():
    request = _request('/api/v1/fs/crash')
    response = asyncio.run(main.unhandled_exception_handler(request, RuntimeError('boom at /tmp/private/path')))

    assert response.status_code == 500
    assert response.body == b'{"error":"Internal server error. Please try again."}'
    assert b'/tmp/private/path' not in response.body


def test_io_failure_maps_to_500_with_code():
    request = _request('/api/v1/fs/disk', method='PUT')
    response = asyncio.run(main.file_service_error_handler(request, IOFailure('Input/output error')))

    assert response.status_code == 500
    assert json.loads(response.body) == {'error': 'Input/output error', 'code': 'IO_ERROR'}


def test_permission_denied_maps_to_403():
    request = _request('/api/v1/fs/locked')
    response = asyncio.run(main.file_service_error_handler(request, PermissionDenied()))

    assert response.status_code == 403
    assert json.loads(response.body)['code'] == 'NO_PERMISSIONS'


def test_directory_not_empty_maps_to_400():
    request = _request('/api/v1/fs/full', method='DELETE')
    response = asyncio.run(main.file_service_error_handler(request, DirectoryNotEmpty()))

    assert response.status_code == 400
    assert json.loads(response.body) == {'error': 'directory not empty', 'code': 'DIRECTORY_NOT_EMPTY'}

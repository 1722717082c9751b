from __future__ import annotations

import posixpath
import tempfile
from typing import BinaryIO, Iterator, Optional
from urllib.parse import quote

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import StreamingResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool
from starlette.datastructures import UploadFile

from ..config import Settings
from ..deps import get_file_service, get_settings
from ..schemas import (
    CreatedResponse,
    ErrorResponse,
    MkdirRequest,
    NodeOut,
    RenameRequest,
    SuccessResponse,
    UploadResponse,
)
from ..services.errors import (
    AlreadyExists,
    DirectoryNotEmpty,
    ErrorKind,
    FileServiceError,
    MissingNewName,
    NotADirectory,
    NotFound,
)
from ..services.file_ops import FileService
from ..services.paths import normalize_relative

router = APIRouter(prefix='/fs', tags=['fs'])

UPLOAD_FIELD = 'files'

_STATUS_BY_KIND = {
    ErrorKind.PATH_TRAVERSAL: 400,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.IS_A_DIRECTORY: 400,
    ErrorKind.NOT_A_DIRECTORY: 400,
    ErrorKind.ALREADY_EXISTS: 409,
    ErrorKind.DIRECTORY_NOT_EMPTY: 400,
    ErrorKind.MISSING_NEW_NAME: 400,
    ErrorKind.PERMISSION_DENIED: 403,
    ErrorKind.IO_FAILURE: 500,
}

_CODE_BY_KIND = {
    ErrorKind.PATH_TRAVERSAL: 'PATH_TRAVERSAL',
    ErrorKind.NOT_FOUND: 'FILE_NOT_FOUND',
    ErrorKind.IS_A_DIRECTORY: 'FILE_IS_DIRECTORY',
    ErrorKind.NOT_A_DIRECTORY: 'FILE_NOT_DIRECTORY',
    ErrorKind.ALREADY_EXISTS: 'FILE_EXISTS',
    ErrorKind.DIRECTORY_NOT_EMPTY: 'DIRECTORY_NOT_EMPTY',
    ErrorKind.MISSING_NEW_NAME: 'MISSING_NEW_NAME',
    ErrorKind.PERMISSION_DENIED: 'NO_PERMISSIONS',
    ErrorKind.IO_FAILURE: 'IO_ERROR',
}


def error_payload(exc: FileServiceError) -> tuple[int, dict]:
    body = ErrorResponse(error=exc.message, code=_CODE_BY_KIND[exc.kind])
    return _STATUS_BY_KIND[exc.kind], body.model_dump(exclude_none=True)


def _relative(path: str) -> str:
    return normalize_relative(path).rstrip('/')


def _reject_root(ops: FileService, rel: str, action: str) -> None:
    if ops.safe_path(rel) == ops.root:
        raise HTTPException(status_code=400, detail=f'cannot {action} the root directory')


def _is_directory(ops: FileService, rel: str) -> bool:
    try:
        return ops.stat(rel).is_dir
    except NotFound:
        return False


def _content_disposition(filename: str) -> str:
    quoted = quote(filename)
    if quoted != filename:
        return f"attachment; filename*=utf-8''{quoted}"
    return f'attachment; filename="{filename}"'


def _iter_file(handle: BinaryIO, chunk_size: int) -> Iterator[bytes]:
    with handle:
        while chunk := handle.read(chunk_size):
            yield chunk


def _file_response(ops: FileService, rel: str, download: bool) -> StreamingResponse:
    media_type = ops.detect_mime_type(rel)
    handle, meta = ops.open_stream(rel)
    headers = {'Content-Length': str(meta.size)}
    if download:
        headers['Content-Disposition'] = _content_disposition(meta.name)
    return StreamingResponse(_iter_file(handle, ops.chunk_size), media_type=media_type, headers=headers)


def _rename(ops: FileService, rel: str, new_name: str, overwrite: bool) -> None:
    _reject_root(ops, rel, 'rename')
    new_name = new_name.strip()
    if not new_name:
        raise MissingNewName()
    # a bare name stays in the same directory; a leading slash addresses the root
    destination = posixpath.join(posixpath.dirname(rel), new_name)
    ops.rename(rel, destination, overwrite=overwrite)


def _upload_name(filename: Optional[str]) -> str:
    name = posixpath.basename((filename or '').replace('\\', '/'))
    if name in {'', '.', '..'}:
        raise HTTPException(status_code=400, detail='invalid file name')
    return name


def _create_subfolder(ops: FileService, rel: str, name: str) -> CreatedResponse:
    new_rel = posixpath.normpath(posixpath.join(rel, name))
    if ops.exists(new_rel):
        raise AlreadyExists('folder exists')
    ops.mkdir_all(new_rel)
    return CreatedResponse(path=new_rel)


def _save_uploads(ops: FileService, rel: str, parts: list[tuple[str, BinaryIO]], overwrite: bool) -> list[str]:
    seen: set[str] = set()
    for name, _ in parts:
        if name in seen:
            raise HTTPException(status_code=400, detail=f"duplicate file name '{name}'")
        seen.add(name)
    if not overwrite:
        for name, _ in parts:
            if ops.exists(posixpath.join(rel, name)):
                raise AlreadyExists(f"file '{name}' already exists")

    uploaded: list[str] = []
    for name, source in parts:
        ops.save_stream(posixpath.join(rel, name), source, overwrite=overwrite)
        uploaded.append(name)
    return uploaded


async def _upload(request: Request, ops: FileService, rel: str, overwrite: bool) -> UploadResponse:
    form = await request.form()
    try:
        files = [item for item in form.getlist(UPLOAD_FIELD) if isinstance(item, UploadFile)]
        if not files:
            raise HTTPException(status_code=400, detail='no files provided')
        parts = [(_upload_name(item.filename), item.file) for item in files]
        uploaded = await run_in_threadpool(_save_uploads, ops, rel, parts, overwrite)
    finally:
        await form.close()
    return UploadResponse(uploaded=uploaded)


async def _spool_body(request: Request, max_size: int) -> tempfile.SpooledTemporaryFile:
    spool = tempfile.SpooledTemporaryFile(max_size=max_size)
    received = 0
    try:
        async for chunk in request.stream():
            received += len(chunk)
            # once past max_size the spool writes to disk
            if received > max_size:
                await run_in_threadpool(spool.write, chunk)
            else:
                spool.write(chunk)
        spool.seek(0)
    except Exception:
        spool.close()
        raise
    return spool


@router.get('/{path:path}')
def get_node(
    path: str,
    stat: bool = Query(default=False),
    download: bool = Query(default=False),
    ops: FileService = Depends(get_file_service),
):
    rel = _relative(path)
    meta = ops.stat(rel)
    if stat:
        return NodeOut.from_metadata(meta)
    if meta.is_dir:
        return [NodeOut.from_metadata(item) for item in ops.list_dir(rel)]
    return _file_response(ops, rel, download)


@router.post('/{path:path}', status_code=201)
async def create_node(
    path: str,
    request: Request,
    overwrite: bool = Query(default=False),
    ops: FileService = Depends(get_file_service),
):
    rel = _relative(path)
    target = await run_in_threadpool(ops.stat, rel)
    if not target.is_dir:
        raise NotADirectory('target path is not a directory')

    if request.headers.get('content-type', '').startswith('multipart/form-data'):
        return await _upload(request, ops, rel, overwrite)

    try:
        payload = MkdirRequest.model_validate_json(await request.body())
    except ValidationError:
        raise HTTPException(status_code=400, detail='invalid request body')
    name = payload.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail='invalid request body')
    return await run_in_threadpool(_create_subfolder, ops, rel, name)


@router.put('/{path:path}')
async def put_node(
    path: str,
    request: Request,
    new_name: Optional[str] = Query(default=None),
    create: bool = Query(default=True),
    overwrite: Optional[bool] = Query(default=None),
    ops: FileService = Depends(get_file_service),
    settings: Settings = Depends(get_settings),
):
    rel = _relative(path)
    if new_name is not None or await run_in_threadpool(_is_directory, ops, rel):
        await run_in_threadpool(_rename, ops, rel, new_name or '', bool(overwrite))
        return SuccessResponse()

    body = await _spool_body(request, settings.spool_max_size)
    try:
        await run_in_threadpool(
            ops.write_file,
            rel,
            body,
            create,
            True if overwrite is None else overwrite,
        )
    finally:
        body.close()
    return SuccessResponse()


@router.patch('/{path:path}')
def rename_node(
    path: str,
    payload: RenameRequest,
    overwrite: bool = Query(default=False),
    ops: FileService = Depends(get_file_service),
):
    _rename(ops, _relative(path), payload.name, overwrite)
    return SuccessResponse()


@router.delete('/{path:path}')
def delete_node(
    path: str,
    recursive: bool = Query(default=False),
    ops: FileService = Depends(get_file_service),
):
    rel = _relative(path)
    _reject_root(ops, rel, 'delete')
    if recursive:
        ops.delete_recursive(rel)
        return SuccessResponse()

    try:
        ops.delete(rel)
    except DirectoryNotEmpty as exc:
        raise DirectoryNotEmpty('directory not empty (use recursive=true)') from exc
    return SuccessResponse()

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .config import Settings, settings
from .routers import fs
from .schemas import ErrorResponse
from .services.errors import FileServiceError
from .services.file_ops import FileService

logger = logging.getLogger(__name__)

_LOG_FORMAT = '%(asctime)s | %(levelname)-8s | %(name)s | %(message)s'


def _parse_cors_origins(value: str) -> list[str]:
    return [origin.strip() for origin in value.split(',') if origin.strip()]


def _setup_logging(cfg: Settings) -> None:
    level = logging.DEBUG if cfg.debug else getattr(logging, cfg.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=_LOG_FORMAT, datefmt='%Y-%m-%d %H:%M:%S')


def _client_ip(request: Request) -> str:
    xff = request.headers.get('x-forwarded-for', '')
    if xff:
        return xff.split(',')[0].strip()
    return request.client.host if request.client else 'unknown'


def _error(message: str, status_code: int, code: Optional[str] = None, headers=None) -> JSONResponse:
    body = ErrorResponse(error=message, code=code).model_dump(exclude_none=True)
    return JSONResponse(body, status_code=status_code, headers=headers)


async def file_service_error_handler(request: Request, exc: FileServiceError):
    status_code, body = fs.error_payload(exc)
    if status_code >= 500:
        logger.warning('%s %s failed: %s', request.method, request.url.path, exc.message)
    return JSONResponse(body, status_code=status_code)


async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return _error(str(exc.detail), exc.status_code, headers=getattr(exc, 'headers', None))


async def validation_exception_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = '.'.join(str(part) for part in err.get('loc', ()))
        problems.append(f"{location}: {err.get('msg', 'invalid')}")
    return _error('invalid request: ' + '; '.join(problems), 400)


async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error('Unhandled error on %s %s', request.method, request.url.path, exc_info=exc)
    return _error('Internal server error. Please try again.', 500)


async def access_log_middleware(request: Request, call_next):
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    query = f'?{request.url.query}' if request.url.query else ''
    logger.info(
        '%s | %.1fms | %s | %s | %s%s',
        response.status_code,
        elapsed_ms,
        _client_ip(request),
        request.method,
        request.url.path,
        query,
    )
    return response


@asynccontextmanager
async def _lifespan(app: FastAPI):
    cfg: Settings = app.state.settings
    _setup_logging(cfg)
    Path(cfg.root_dir).mkdir(parents=True, exist_ok=True)
    logger.info('%s serving %s on %s:%s', cfg.app_name, app.state.file_service.root, cfg.host, cfg.port)
    try:
        yield
    finally:
        logger.info('%s shutting down', cfg.app_name)


def healthz():
    return {'ok': True}


def create_app(cfg: Optional[Settings] = None) -> FastAPI:
    cfg = cfg or settings
    app = FastAPI(title=cfg.app_name, debug=cfg.debug, lifespan=_lifespan)
    app.state.settings = cfg
    app.state.file_service = FileService(cfg.root_dir, chunk_size=cfg.chunk_size)

    cors_origins = _parse_cors_origins(cfg.cors_origins)
    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=['GET', 'POST', 'HEAD', 'PUT', 'DELETE', 'PATCH', 'OPTIONS'],
            allow_headers=['*'],
        )
    app.middleware('http')(access_log_middleware)

    app.add_exception_handler(FileServiceError, file_service_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.get('/healthz')(healthz)
    app.include_router(fs.router, prefix=cfg.api_prefix)
    return app


app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run(
        'remotefs.main:app',
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )


if __name__ == '__main__':
    run()

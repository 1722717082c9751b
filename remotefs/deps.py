from __future__ import annotations

from fastapi import Request

from .config import Settings
from .services.file_ops import FileService


def get_file_service(request: Request) -> FileService:
    return request.app.state.file_service


def get_settings(request: Request) -> Settings:
    return request.app.state.settings

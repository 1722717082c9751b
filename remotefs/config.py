from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file='.env', env_file_encoding='utf-8', env_prefix='REMOTEFS_', extra='ignore')

    app_name: str = 'RemoteFS'
    host: str = '0.0.0.0'
    port: int = 3000
    root_dir: str = '/tmp/remotefs'
    api_prefix: str = '/api/v1'
    debug: bool = False
    log_level: str = 'info'
    cors_origins: str = '*'
    chunk_size: int = Field(default=1024 * 1024, ge=4096, le=64 * 1024 * 1024)
    spool_max_size: int = Field(default=1024 * 1024, ge=0)


settings = Settings()

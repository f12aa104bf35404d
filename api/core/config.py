"""
Process settings read from environment variables.

Everything has a local-dev default so the API can boot with only a database
reachable. Values are read once and cached; tests clear the cache with
`settings.cache_clear()` after changing the environment.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from urllib.parse import quote

SERVICE_NAME = "Post Number API"
DEFAULT_MAX_UPLOAD_BYTES = 50 * 1024 * 1024  # 50 MiB


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    return raw in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    environment: str
    port: int
    log_level: str
    api_version: str

    cors_origin: str
    cors_credentials: bool

    database_url: str
    db_pool_min: int
    db_pool_max: int
    db_connect_timeout_s: float
    db_command_timeout_s: float
    db_idle_timeout_s: float

    upload_dir: str
    max_upload_bytes: int
    csv_encoding: str
    delete_uploads: bool

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.cors_origin.split(",") if o.strip()] or ["*"]


def _database_url_from_parts() -> str:
    host = _env_str("DB_HOST", "localhost")
    port = _env_int("DB_PORT", 5432)
    name = _env_str("DB_NAME", "post_number_api")
    user = quote(_env_str("DB_USER", "postgres"), safe="")
    password = quote(_env_str("DB_PASSWORD", "postgres"), safe="")
    url = f"postgresql://{user}:{password}@{host}:{port}/{name}"
    if _env_bool("DB_SSL"):
        url += "?sslmode=require"
    return url


@lru_cache
def settings() -> Settings:
    environment = os.environ.get("APP_ENV", "").strip() or _env_str("NODE_ENV", "development")

    max_upload = _env_int("MAX_UPLOAD_BYTES", DEFAULT_MAX_UPLOAD_BYTES)
    if max_upload <= 0:
        max_upload = DEFAULT_MAX_UPLOAD_BYTES

    return Settings(
        environment=environment.lower(),
        port=_env_int("PORT", 3000),
        log_level=_env_str("LOG_LEVEL", "info").upper(),
        api_version=_env_str("API_VERSION", "v1"),
        cors_origin=_env_str("CORS_ORIGIN", "*"),
        cors_credentials=_env_bool("CORS_CREDENTIALS"),
        database_url=os.environ.get("DATABASE_URL", "").strip() or _database_url_from_parts(),
        db_pool_min=_env_int("DB_POOL_MIN", 2),
        db_pool_max=_env_int("DB_POOL_MAX", 10),
        db_connect_timeout_s=_env_float("DB_CONNECT_TIMEOUT", 5.0),
        db_command_timeout_s=_env_float("DB_COMMAND_TIMEOUT", 30.0),
        db_idle_timeout_s=_env_float("DB_IDLE_TIMEOUT", 30.0),
        upload_dir=_env_str("UPLOAD_DIR", "uploads"),
        max_upload_bytes=max_upload,
        csv_encoding=_env_str("IMPORT_CSV_ENCODING", "utf-8"),
        delete_uploads=_env_bool("IMPORT_DELETE_UPLOADS"),
    )

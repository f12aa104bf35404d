"""
Async database access helpers (raw SQL) using asyncpg.

This module owns the connection pool. FastAPI initializes it on startup and
closes it on shutdown (see `api/main.py`). The pool is shared by request
handlers and background imports alike.

SQL parameter style:
- asyncpg uses positional placeholders: $1, $2, $3, ...
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import asyncpg

from core.config import settings

logger = logging.getLogger(__name__)

_pool: asyncpg.Pool | None = None


def _sanitize_database_url(url: str) -> str:
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


def _wants_ssl(url: str) -> bool:
    query = dict(parse_qsl(urlsplit(url).query, keep_blank_values=True))
    return query.get("sslmode", "").lower() in {"require", "verify-ca", "verify-full"}


def database_url() -> str:
    url = settings().database_url
    if not url:
        raise RuntimeError("DATABASE_URL is not set.")
    return _sanitize_database_url(url)


async def init_pool() -> None:
    global _pool
    if _pool is not None:
        logger.debug("db_pool_already_initialized")
        return None

    cfg = settings()
    logger.info("db_pool_init min=%s max=%s", cfg.db_pool_min, cfg.db_pool_max)
    _pool = await asyncpg.create_pool(
        dsn=database_url(),
        min_size=cfg.db_pool_min,
        max_size=cfg.db_pool_max,
        timeout=cfg.db_connect_timeout_s,
        command_timeout=cfg.db_command_timeout_s,
        max_inactive_connection_lifetime=cfg.db_idle_timeout_s,
        ssl="require" if _wants_ssl(cfg.database_url) else None,
    )


async def close_pool() -> None:
    global _pool
    if _pool is None:
        return None
    logger.info("db_pool_close")
    await _pool.close()
    _pool = None


def pool() -> asyncpg.Pool:
    if _pool is None:
        raise RuntimeError("DB pool is not initialized. Call init_pool() on startup.")
    return _pool


@asynccontextmanager
async def connection() -> AsyncIterator[asyncpg.Connection]:
    """
    Acquire a dedicated connection for multi-statement work.

    The connection goes back to the pool on every exit path.
    """
    async with pool().acquire() as conn:
        yield conn


def _record_to_dict(record: asyncpg.Record) -> dict[str, Any]:
    return dict(record)


async def fetch_one(sql: str, *args: Any) -> dict[str, Any] | None:
    """
    Run a query and return a single row as a dict (or None).
    """
    row = await pool().fetchrow(sql, *args)
    return _record_to_dict(row) if row is not None else None


async def fetch_all(sql: str, *args: Any) -> list[dict[str, Any]]:
    """
    Run a query and return all rows as a list of dicts.
    """
    rows = await pool().fetch(sql, *args)
    return [_record_to_dict(r) for r in rows]


async def execute(sql: str, *args: Any) -> str:
    """
    Run a statement (INSERT/UPDATE/DELETE/DDL) and return its command status.
    """
    return await pool().execute(sql, *args)


async def health_check() -> dict[str, Any]:
    """
    Round-trip `SELECT 1` and report pool counters. Never raises.
    """
    started = time.perf_counter()
    stats: dict[str, Any] = {}
    try:
        p = pool()
        stats = {
            "total_connections": p.get_size(),
            "idle_connections": p.get_idle_size(),
            "max_connections": p.get_max_size(),
        }
        async with p.acquire() as conn:
            await conn.fetchval("SELECT 1")
    except Exception as exc:
        logger.error("db_health_check_failed error=%s", exc)
        return {
            "status": "unhealthy",
            "message": str(exc) or exc.__class__.__name__,
            "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
            **stats,
        }

    return {
        "status": "healthy",
        "response_time_ms": round((time.perf_counter() - started) * 1000, 2),
        **stats,
    }

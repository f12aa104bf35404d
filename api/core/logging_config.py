"""
Process-wide logging setup.

Modules log through `logging.getLogger(__name__)`; this only installs one
stdout handler on the root logger so uvicorn, asyncpg and our own loggers
share a format.
"""

from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

# uvicorn installs its own handlers; route them through root instead.
_UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

_is_configured = False


def resolve_level(level: str | None) -> str:
    """
    Map LOG_LEVEL values (including the `warn` spelling) to a logging level name.
    """
    name = (level or "INFO").strip().upper()
    if name == "WARN":
        name = "WARNING"
    return name if isinstance(logging.getLevelName(name), int) else "INFO"


def _config(level: str) -> dict[str, Any]:
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {"plain": {"format": LOG_FORMAT}},
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "plain",
            }
        },
        "loggers": {name: {"handlers": [], "propagate": True} for name in _UVICORN_LOGGERS},
        "root": {"handlers": ["stdout"], "level": level},
    }


def configure_logging(level: str | None = None) -> None:
    """
    Configure the root logger once. Later calls are no-ops.
    """
    global _is_configured
    if _is_configured:
        return
    dictConfig(_config(resolve_level(level)))
    _is_configured = True

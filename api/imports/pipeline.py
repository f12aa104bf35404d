"""
Import pipeline.

`start_import` records the job and returns its id right away; the actual
work (parse -> validate -> batch insert -> finalize) runs detached from the
request. The only channel back to callers is the `import_logs` row.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from fastapi import BackgroundTasks

from core.config import settings

from . import repository, rows, service

logger = logging.getLogger(__name__)

# Strong references to detached tasks; asyncio only keeps weak ones.
_running: set[asyncio.Task] = set()


class ImportServiceError(RuntimeError):
    pass


def _error_message(exc: BaseException) -> str:
    return str(exc) or exc.__class__.__name__


async def start_import(
    file_path: str,
    original_filename: str | None = None,
    *,
    background_tasks: BackgroundTasks | None = None,
) -> int:
    """
    Create the job row and schedule `run_import` for it.

    With `background_tasks` the work starts after the HTTP response is sent;
    without it a detached asyncio task is spawned on the running loop.
    """
    filename = original_filename or Path(file_path).name

    try:
        job_id = await repository.create_import_job(filename)
    except Exception as exc:
        logger.exception("import_start_failed filename=%s", filename)
        raise ImportServiceError("Failed to start import process") from exc

    logger.info("import_started import_id=%s filename=%s", job_id, filename)

    if background_tasks is not None:
        background_tasks.add_task(run_import, job_id, file_path)
    else:
        task = asyncio.create_task(run_import(job_id, file_path), name=f"import-{job_id}")
        _running.add(task)
        task.add_done_callback(_running.discard)

    return job_id


async def run_import(job_id: int, file_path: str) -> None:
    """
    Background entrypoint. Never raises; outcome goes to the job row.
    """
    cfg = settings()
    try:
        accepted = await asyncio.to_thread(rows.collect_valid_rows, file_path, encoding=cfg.csv_encoding)
        logger.debug("import_parsed import_id=%s accepted=%s", job_id, len(accepted))
        inserted = await repository.insert_addresses(accepted)
    except Exception as exc:
        logger.exception("import_failed import_id=%s path=%s", job_id, file_path)
        await repository.finalize_import_job(
            job_id,
            status=repository.STATUS_FAILED,
            record_count=0,
            error_message=_error_message(exc),
        )
    else:
        await repository.finalize_import_job(
            job_id,
            status=repository.STATUS_SUCCESS,
            record_count=inserted,
        )
        logger.info("import_complete import_id=%s accepted=%s inserted=%s", job_id, len(accepted), inserted)
    finally:
        if cfg.delete_uploads:
            service.remove_upload(file_path)


async def get_import_status(job_id: int) -> dict[str, Any] | None:
    try:
        return await repository.get_import_job(job_id)
    except Exception as exc:
        logger.exception("import_status_failed import_id=%s", job_id)
        raise ImportServiceError("Failed to retrieve import status") from exc


async def get_import_logs(limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
    try:
        return await repository.list_import_jobs(limit=limit, offset=offset)
    except Exception as exc:
        logger.exception("import_logs_failed limit=%s offset=%s", limit, offset)
        raise ImportServiceError("Failed to retrieve import logs") from exc

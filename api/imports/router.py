"""
FastAPI router for CSV import endpoints.

Mounted under `/{API_VERSION}/import` by `api/main.py`.
"""

from __future__ import annotations

import logging
import re

from fastapi import APIRouter, BackgroundTasks, File, HTTPException, Query, UploadFile, status

from . import pipeline, schemas, service

MAX_LOGS_LIMIT = 100

# import_logs.id is a bigint.
_IMPORT_ID_RE = re.compile(r"-?[0-9]+")
_BIGINT_MIN, _BIGINT_MAX = -(2**63), 2**63 - 1

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("", status_code=status.HTTP_202_ACCEPTED)
async def upload_and_import(
    background_tasks: BackgroundTasks,
    file: UploadFile | None = File(None, alias="csvFile"),
) -> dict:
    """
    Accept a postal-code CSV and start importing it in the background.

    Returns as soon as the import job exists; poll `/status/{id}` for the result.
    """
    stored = await service.save_upload(file)
    logger.info("import_upload_received filename=%s", stored.original_filename)

    try:
        import_id = await pipeline.start_import(
            stored.path,
            stored.original_filename,
            background_tasks=background_tasks,
        )
    except pipeline.ImportServiceError:
        service.remove_upload(stored.path)
        raise HTTPException(
            status_code=500,
            detail={"error": "Import failed", "message": "Failed to start import process"},
        )

    return {
        "message": "Import started successfully",
        "importId": import_id,
        "filename": stored.original_filename,
        "status": "in_progress",
    }


def _parse_import_id(raw: str) -> int | None:
    """
    ASCII digits only, within bigint range; anything else is not an id.
    """
    if not _IMPORT_ID_RE.fullmatch(raw):
        return None
    value = int(raw)
    if not _BIGINT_MIN <= value <= _BIGINT_MAX:
        return None
    return value


@router.get("/status/{import_id}")
async def get_import_status(import_id: str) -> dict:
    job_id = _parse_import_id(import_id)
    if job_id is None:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid import ID", "message": "Import ID must be a number"},
        )

    try:
        job = await pipeline.get_import_status(job_id)
    except pipeline.ImportServiceError:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to get import status",
                "message": "An error occurred while retrieving import status",
            },
        )

    if job is None:
        raise HTTPException(
            status_code=404,
            detail={"error": "Import not found", "message": f"Import with ID {job_id} not found"},
        )
    return schemas.ImportJob.from_row(job).as_status()


@router.get("/logs")
async def get_import_logs(
    limit: int = Query(50, ge=1),
    offset: int = Query(0, ge=0),
) -> dict:
    """
    Import history, newest first.
    """
    if limit > MAX_LOGS_LIMIT:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid limit", "message": f"Limit cannot exceed {MAX_LOGS_LIMIT}"},
        )

    try:
        jobs = await pipeline.get_import_logs(limit=limit, offset=offset)
    except pipeline.ImportServiceError:
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Failed to get import logs",
                "message": "An error occurred while retrieving import logs",
            },
        )

    return {
        "logs": [schemas.ImportJob.from_row(j).as_log_entry() for j in jobs],
        "pagination": {"limit": limit, "offset": offset, "total": len(jobs)},
    }

"""
Import persistence.

Two tables:
- import_logs: one row per upload, tracking its lifecycle
- addresses: the imported postal-code rows, unique on
  (zipcode, prefecture, city, COALESCE(town, ''))
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Sequence

import asyncpg

from core import db

from .rows import AddressRow

logger = logging.getLogger(__name__)

STATUS_IN_PROGRESS = "in_progress"
STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
TERMINAL_STATUSES = {STATUS_SUCCESS, STATUS_FAILED}

_JOB_COLUMNS = "id, filename, status, record_count, error_message, import_date"


def _inserted_count(command_status: str) -> int:
    # asyncpg returns e.g. "INSERT 0 1"; the last token is the row count.
    try:
        return int(command_status.rsplit(" ", 1)[-1])
    except (AttributeError, ValueError):
        return 0


async def create_import_job(filename: str) -> int:
    row = await db.fetch_one(
        """
        INSERT INTO import_logs (filename, import_date, record_count, status)
        VALUES ($1, CURRENT_TIMESTAMP, 0, $2)
        RETURNING id
        """,
        filename,
        STATUS_IN_PROGRESS,
    )
    if row is None or "id" not in row:
        raise RuntimeError("Failed to insert import log.")
    return int(row["id"])


async def finalize_import_job(
    job_id: int,
    *,
    status: str,
    record_count: int,
    error_message: str | None = None,
) -> bool:
    """
    Record the terminal state of a job.

    Best effort: a failed update is logged and reported as False, never raised.
    The job itself already ran, so there is nothing for the caller to undo.
    """
    if status not in TERMINAL_STATUSES:
        raise ValueError(f"Not a terminal import status: {status!r}")

    try:
        await db.execute(
            """
            UPDATE import_logs
            SET status = $1,
                record_count = $2,
                error_message = $3
            WHERE id = $4
            """,
            status,
            record_count,
            error_message,
            job_id,
        )
    except Exception:
        logger.exception("import_finalize_failed import_id=%s status=%s", job_id, status)
        return False
    return True


async def get_import_job(job_id: int) -> dict[str, Any] | None:
    return await db.fetch_one(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM import_logs
        WHERE id = $1
        """,
        job_id,
    )


async def list_import_jobs(*, limit: int = 50, offset: int = 0) -> list[dict[str, Any]]:
    """
    Newest imports first.
    """
    return await db.fetch_all(
        f"""
        SELECT {_JOB_COLUMNS}
        FROM import_logs
        ORDER BY import_date DESC, id DESC
        LIMIT $1
        OFFSET $2
        """,
        limit,
        offset,
    )


async def insert_addresses(rows: Sequence[AddressRow]) -> int:
    """
    Insert a whole batch of address rows in one transaction.

    Rows whose key already exists are ignored by ON CONFLICT. Any other
    Postgres error on a single row is logged and that row skipped: each insert
    runs in its own savepoint so the outer transaction stays usable.

    Returns the number of rows actually inserted. If the commit fails the
    batch is rolled back and the error propagates.
    """
    if not rows:
        return 0

    inserted = 0
    async with db.connection() as conn:  # type: asyncpg.Connection
        async with conn.transaction():
            for row in rows:
                try:
                    async with conn.transaction():
                        status = await conn.execute(
                            """
                            INSERT INTO addresses (zipcode, prefecture, city, town)
                            VALUES ($1, $2, $3, $4)
                            ON CONFLICT (zipcode, prefecture, city, COALESCE(town, '')) DO NOTHING
                            """,
                            row.zipcode,
                            row.prefecture,
                            row.city,
                            row.town,
                        )
                except asyncpg.PostgresError as exc:
                    logger.warning("address_insert_skipped row=%s error=%s", asdict(row), exc)
                    continue
                inserted += _inserted_count(status)

    return inserted

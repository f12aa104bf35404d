"""
Import "service layer" for uploads.

This file contains logic that is independent of FastAPI's routing layer:
- Validate the uploaded file name
- Stream the upload to disk with a size limit
- Clean up stored uploads
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path

from fastapi import HTTPException, UploadFile

from core.config import settings

ALLOWED_EXTENSIONS = {".csv"}

CHUNK_SIZE = 1024 * 1024  # 1 MiB

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredUpload:
    original_filename: str
    path: str
    size_bytes: int


def _file_ext(filename: str) -> str:
    return Path(filename).suffix.lower()


def validate_upload(file: UploadFile | None) -> str:
    """
    Return the original filename if this upload is acceptable.

    Validation is by extension; `content_type` for CSV varies a lot between
    browsers and tools.
    """
    if file is None or not file.filename:
        raise HTTPException(
            status_code=400,
            detail={"error": "No file uploaded", "message": "Please upload a CSV file"},
        )

    if _file_ext(file.filename) not in ALLOWED_EXTENSIONS:
        raise HTTPException(
            status_code=400,
            detail={"error": "Invalid file type", "message": "Only CSV files are allowed"},
        )

    return file.filename


def stored_filename(original_filename: str, *, now_ms: int | None = None) -> str:
    """
    `<stem>-<epoch millis><ext>` so repeated uploads of one file never collide.
    """
    name = Path(original_filename).name
    ext = Path(name).suffix
    stem = name[: -len(ext)] if ext else name
    millis = now_ms if now_ms is not None else int(time.time() * 1000)
    return f"{stem}-{millis}{ext}"


async def save_upload(file: UploadFile, *, upload_dir: str | None = None, max_bytes: int | None = None) -> StoredUpload:
    """
    Validate and stream an upload to the upload directory.

    The partially written file is removed when the size limit is exceeded.
    """
    original_filename = validate_upload(file)
    cfg = settings()
    directory = Path(upload_dir or cfg.upload_dir)
    limit = max_bytes or cfg.max_upload_bytes

    directory.mkdir(parents=True, exist_ok=True)
    target = directory / stored_filename(original_filename)

    written = 0
    try:
        with open(target, "wb") as out:
            while True:
                chunk = await file.read(CHUNK_SIZE)
                if not chunk:
                    break
                written += len(chunk)
                if written > limit:
                    raise HTTPException(
                        status_code=413,
                        detail={"error": "File too large", "message": f"Max upload size is {limit} bytes"},
                    )
                out.write(chunk)
    except BaseException:
        remove_upload(str(target))
        raise

    logger.info("upload_stored filename=%s path=%s size_bytes=%s", original_filename, target, written)
    return StoredUpload(original_filename=original_filename, path=str(target), size_bytes=written)


def remove_upload(path: str) -> None:
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError:
        logger.warning("upload_cleanup_failed path=%s", path, exc_info=True)

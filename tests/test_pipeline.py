import asyncio
import os
from datetime import datetime, timezone

import pytest

from imports import pipeline, repository
from imports.rows import NO_TOWN_PLACEHOLDER


class FakeStore:
    """
    In-memory stand-in for the import_logs and addresses tables.
    """

    def __init__(self):
        self.jobs: dict[int, dict] = {}
        self.addresses: set[tuple] = set()
        self.batches: list[list] = []
        self.fail_insert: Exception | None = None
        self.fail_finalize = False

    async def create_import_job(self, filename):
        job_id = len(self.jobs) + 1
        self.jobs[job_id] = {
            "id": job_id,
            "filename": filename,
            "status": "in_progress",
            "record_count": 0,
            "error_message": None,
            "import_date": datetime.now(timezone.utc),
        }
        return job_id

    async def finalize_import_job(self, job_id, *, status, record_count, error_message=None):
        if self.fail_finalize:
            return False
        self.jobs[job_id].update(status=status, record_count=record_count, error_message=error_message)
        return True

    async def insert_addresses(self, rows):
        self.batches.append(list(rows))
        if self.fail_insert is not None:
            raise self.fail_insert
        before = len(self.addresses)
        for row in rows:
            self.addresses.add((row.zipcode, row.prefecture, row.city, row.town or ""))
        return len(self.addresses) - before

    async def get_import_job(self, job_id):
        return self.jobs.get(job_id)

    async def list_import_jobs(self, *, limit=50, offset=0):
        ordered = sorted(self.jobs.values(), key=lambda j: (j["import_date"], j["id"]), reverse=True)
        return ordered[offset : offset + limit]


@pytest.fixture
def store(monkeypatch):
    fake = FakeStore()
    for name in (
        "create_import_job",
        "finalize_import_job",
        "insert_addresses",
        "get_import_job",
        "list_import_jobs",
    ):
        monkeypatch.setattr(repository, name, getattr(fake, name))
    return fake


async def _drain():
    while pipeline._running:
        await asyncio.wait(set(pipeline._running))


@pytest.mark.asyncio
async def test_start_import_returns_before_rows_are_inserted(store, write_csv, make_line):
    path = write_csv([make_line("0600000", "北海道", "札幌市中央区", "")])

    job_id = await pipeline.start_import(path, "ken_all.csv")

    assert store.jobs[job_id]["status"] == "in_progress"
    assert store.jobs[job_id]["filename"] == "ken_all.csv"
    assert store.batches == []

    await _drain()
    assert store.jobs[job_id]["status"] == "success"


@pytest.mark.asyncio
async def test_three_row_file_imports_one_record(store, write_csv, make_line):
    path = write_csv(
        [
            make_line("0600000", "北海道", "札幌市中央区", NO_TOWN_PLACEHOLDER),
            make_line("06000", "北海道", "札幌市中央区", "大通西"),
            make_line("0600000", "北海道", "札幌市中央区", NO_TOWN_PLACEHOLDER),
        ]
    )

    job_id = await pipeline.start_import(path, "ken_all.csv")
    await _drain()

    job = store.jobs[job_id]
    assert job["status"] == "success"
    assert job["record_count"] == 1
    assert job["error_message"] is None
    assert len(store.batches[0]) == 2


@pytest.mark.asyncio
async def test_reimporting_same_file_adds_nothing(store, write_csv, make_line):
    path = write_csv(
        [
            make_line("0600000", "北海道", "札幌市中央区", ""),
            make_line("0640941", "北海道", "札幌市中央区", "旭ケ丘"),
        ]
    )

    first = await pipeline.start_import(path, "ken_all.csv")
    await _drain()
    second = await pipeline.start_import(path, "ken_all.csv")
    await _drain()

    assert store.jobs[first]["record_count"] == 2
    assert store.jobs[second]["record_count"] == 0
    assert store.jobs[second]["status"] == "success"
    assert len(store.addresses) == 2


@pytest.mark.asyncio
async def test_unreadable_file_marks_job_failed(store, tmp_path):
    job_id = await pipeline.start_import(str(tmp_path / "gone.csv"), "gone.csv")
    await _drain()

    job = store.jobs[job_id]
    assert job["status"] == "failed"
    assert job["record_count"] == 0
    assert job["error_message"]
    assert store.batches == []


@pytest.mark.asyncio
async def test_batch_failure_marks_job_failed(store, write_csv, make_line):
    store.fail_insert = RuntimeError("could not commit")
    path = write_csv([make_line("0600000", "北海道", "札幌市中央区", "")])

    job_id = await pipeline.start_import(path, "ken_all.csv")
    await _drain()

    assert store.jobs[job_id]["status"] == "failed"
    assert store.jobs[job_id]["record_count"] == 0
    assert store.jobs[job_id]["error_message"] == "could not commit"


@pytest.mark.asyncio
async def test_empty_exception_message_falls_back_to_class_name(store, write_csv, make_line):
    store.fail_insert = TimeoutError()
    path = write_csv([make_line("0600000", "北海道", "札幌市中央区", "")])

    job_id = await pipeline.start_import(path, "ken_all.csv")
    await _drain()

    assert store.jobs[job_id]["error_message"] == "TimeoutError"


@pytest.mark.asyncio
async def test_lost_finalize_leaves_job_in_progress(store, write_csv, make_line):
    store.fail_finalize = True
    path = write_csv([make_line("0600000", "北海道", "札幌市中央区", "")])

    job_id = await pipeline.start_import(path, "ken_all.csv")
    await _drain()

    assert store.jobs[job_id]["status"] == "in_progress"
    assert len(store.addresses) == 1


@pytest.mark.asyncio
async def test_start_import_defaults_filename_to_path_basename(store, write_csv, make_line):
    path = write_csv([make_line("0600000", "北海道", "札幌市中央区", "")], name="upload-1700000000000.csv")

    job_id = await pipeline.start_import(path)
    await _drain()

    assert store.jobs[job_id]["filename"] == "upload-1700000000000.csv"


@pytest.mark.asyncio
async def test_start_import_wraps_job_creation_failure(monkeypatch):
    async def create_import_job(filename):
        raise ConnectionError("pool exhausted")

    monkeypatch.setattr(repository, "create_import_job", create_import_job)

    with pytest.raises(pipeline.ImportServiceError, match="Failed to start import process"):
        await pipeline.start_import("/tmp/ken_all.csv", "ken_all.csv")


@pytest.mark.asyncio
async def test_delete_uploads_removes_file_after_run(store, write_csv, make_line, monkeypatch):
    monkeypatch.setenv("IMPORT_DELETE_UPLOADS", "true")
    pipeline.settings.cache_clear()
    path = write_csv([make_line("0600000", "北海道", "札幌市中央区", "")])

    await pipeline.run_import(await store.create_import_job("ken_all.csv"), path)

    assert not os.path.exists(path)


@pytest.mark.asyncio
async def test_status_for_unknown_job_is_none(store):
    assert await pipeline.get_import_status(999) is None


@pytest.mark.asyncio
async def test_import_logs_paginate_newest_first(store):
    for i in range(20):
        await store.create_import_job(f"file_{i}.csv")

    logs = await pipeline.get_import_logs(limit=10, offset=5)

    assert len(logs) == 10
    dates = [(j["import_date"], j["id"]) for j in logs]
    assert dates == sorted(dates, reverse=True)
    assert logs[0]["id"] == 15


@pytest.mark.asyncio
async def test_import_logs_wrap_query_failure(monkeypatch):
    async def list_import_jobs(*, limit, offset):
        raise ConnectionError("down")

    monkeypatch.setattr(repository, "list_import_jobs", list_import_jobs)

    with pytest.raises(pipeline.ImportServiceError):
        await pipeline.get_import_logs(10, 0)

"""
Shared fixtures.

The suite never touches a real Postgres: the repository and db layers are
replaced per test with in-memory fakes.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from core.config import settings


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """
    Point uploads at a temp dir and rebuild cached settings around each test.
    """
    monkeypatch.setenv("UPLOAD_DIR", str(tmp_path / "uploads"))
    monkeypatch.delenv("IMPORT_DELETE_UPLOADS", raising=False)
    monkeypatch.delenv("MAX_UPLOAD_BYTES", raising=False)
    settings.cache_clear()
    yield
    settings.cache_clear()


def csv_line(zipcode: str, prefecture: str, city: str, town: str) -> str:
    """
    One 15-column Japan Post style line with the four interesting fields set.
    """
    fields = [
        "01101",
        "060  ",
        zipcode,
        "ﾎｯｶｲﾄﾞｳ",
        "ｻｯﾎﾟﾛｼﾁｭｳｵｳｸ",
        "ｲｶﾆｹｲｻｲｶﾞﾅｲﾊﾞｱｲ",
        prefecture,
        city,
        town,
        "0",
        "0",
        "0",
        "0",
        "0",
        "0",
    ]
    return ",".join(f'"{f}"' for f in fields)


@pytest.fixture
def write_csv(tmp_path):
    def _write(lines: list[str], name: str = "ken_all.csv") -> str:
        path = tmp_path / name
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return str(path)

    return _write


@pytest.fixture
def job_row():
    base = datetime(2025, 1, 10, 12, 0, tzinfo=timezone.utc)

    def _row(job_id: int, **overrides) -> dict:
        row = {
            "id": job_id,
            "filename": f"ken_all_{job_id}.csv",
            "status": "success",
            "record_count": 10 * job_id,
            "error_message": None,
            "import_date": base + timedelta(minutes=job_id),
        }
        row.update(overrides)
        return row

    return _row


@pytest.fixture
def make_line():
    return csv_line

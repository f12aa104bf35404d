"""
Pydantic schemas for import endpoints.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

ImportStatus = Literal["in_progress", "success", "failed"]


class ImportJob(BaseModel):
    """
    One `import_logs` row. Serialized with camelCase keys.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int
    filename: str
    status: ImportStatus
    record_count: int = Field(0, serialization_alias="recordCount")
    error_message: str | None = Field(None, serialization_alias="errorMessage")
    import_date: datetime = Field(..., serialization_alias="importDate")

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "ImportJob":
        return cls.model_validate(row)

    def as_log_entry(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)

    def as_status(self) -> dict[str, Any]:
        data = self.as_log_entry()
        data["importId"] = data.pop("id")
        return data

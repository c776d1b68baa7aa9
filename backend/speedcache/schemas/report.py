from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class _CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RecordResponse(_CamelModel):
    """Wire shape of a report record returned by the root and /report routes."""

    public_id: str = Field(alias="publicId")
    url: str
    status: str  # pending, processing, completed, failed
    data_url: str = Field("", alias="dataUrl")
    data: Any = None


class ReportSummary(_CamelModel):
    public_id: str = Field(alias="publicId")
    url: str
    form_factor: str = Field(alias="formFactor")
    created_at: str = Field(alias="createdAt")
    status: str
    data_url: str = Field("", alias="dataUrl")
    processing_started_at: str | None = Field(None, alias="processingStartedAt")
    has_data: bool = Field(False, alias="hasData")


class DebugListResponse(BaseModel):
    count: int
    counts: dict[str, int]
    records: list[ReportSummary]


class DeleteOldResponse(_CamelModel):
    success: bool = True
    deleted_count: int = Field(alias="deletedCount")
    days_old: float = Field(alias="daysOld")


class DeleteReportResponse(_CamelModel):
    success: bool = True
    public_id: str = Field(alias="publicId")


class RecoverStuckResponse(BaseModel):
    success: bool = True
    recovered: int

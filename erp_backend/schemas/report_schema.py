# erp_backend/schemas/report_schema.py
from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class ReportRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    # validated by the report service so bad types answer 400, not 422
    report_type: Optional[str] = Field(default=None, alias="reportType")
    user_id: Optional[int] = Field(default=None, alias="userId")
    project_id: Optional[int] = Field(default=None, alias="projectId")
    date_from: Optional[datetime] = Field(default=None, alias="dateFrom")
    date_to: Optional[datetime] = Field(default=None, alias="dateTo")

    def audit_params(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ReportData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    title: str
    generated_by: str = Field(alias="generatedBy")
    generated_at: str = Field(alias="generatedAt")
    content: Dict[str, Any]


class ReportAuditRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    generated_by: int
    report_type: str
    report_params: Dict[str, Any]
    generation_duration_ms: Optional[int] = None
    status: str
    error_message: Optional[str] = None
    created_at: datetime

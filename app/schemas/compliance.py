from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from app.schemas.proposals import ComplianceDocument, ComplianceStatus


class ComplianceStatusUpdate(BaseModel):
    status: Literal["pending", "compliant", "overdue"]
    comment: str | None = Field(default=None, max_length=5000)


class ComplianceItemDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    uuid: str
    organization_name: str
    event_name: str | None = None
    contact_email: str
    compliance_status: ComplianceStatus
    compliance_due_date: datetime | None = None
    approved_at: datetime | None = None
    compliance_documents: list[ComplianceDocument] = Field(default_factory=list)


class ComplianceListResponse(BaseModel):
    items: list[ComplianceItemDTO]
    total: int


class ComplianceStatsResponse(BaseModel):
    total: int
    pending: int
    compliant: int
    overdue: int
    compliance_rate: float


class ComplianceSweepResponse(BaseModel):
    marked: int
    proposal_ids: list[str]

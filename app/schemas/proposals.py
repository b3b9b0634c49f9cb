from __future__ import annotations

from datetime import date, datetime, time
from enum import Enum
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from app.schemas.audit import AuditLogEntry


class ProposalStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    DENIED = "denied"
    REVISION_REQUESTED = "revision_requested"


class ComplianceStatus(str, Enum):
    NOT_APPLICABLE = "not_applicable"
    PENDING = "pending"
    COMPLIANT = "compliant"
    OVERDUE = "overdue"


class DocumentType(str, Enum):
    GPOA = "gpoa"
    PROPOSAL = "proposal"
    ACCOMPLISHMENT_REPORT = "accomplishment_report"


class EventMode(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"
    HYBRID = "hybrid"


class ReviewDecision(str, Enum):
    APPROVE = "approve"
    REJECT = "reject"
    REVISE = "revise"
    COMPLIANCE = "compliance"


class ComplianceDocument(BaseModel):
    name: str
    required: bool = True
    submitted: bool = False
    blob_key: str | None = None
    submitted_at: datetime | None = None


class ReviewComment(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    reviewer_id: str | None = None
    comment: str
    decision: ReviewDecision
    created_at: datetime


def _check_event_window(values: BaseModel) -> None:
    start = getattr(values, "event_start_date", None)
    end = getattr(values, "event_end_date", None)
    if start and end and end < start:
        raise ValueError("event_end_date must be on or after event_start_date")


class EventDetailsUpdate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    event_name: str | None = Field(default=None, max_length=255)
    event_venue: str | None = None
    event_start_date: date | None = None
    event_end_date: date | None = None
    event_start_time: time | None = None
    event_end_time: time | None = None
    event_mode: EventMode | None = None
    event_type: str | None = Field(default=None, max_length=50)
    current_section: str | None = Field(default=None, max_length=50)
    form_completion_percentage: int | None = Field(default=None, ge=0, le=100)

    @model_validator(mode="after")
    def _validate_window(self) -> "EventDetailsUpdate":
        _check_event_window(self)
        return self


class ProposalCreate(BaseModel):
    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    id: UUID | None = None
    organization_name: str = Field(min_length=1, max_length=255)
    organization_description: str | None = None
    organization_type: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    contact_person: str = Field(min_length=1, max_length=255)
    contact_email: EmailStr
    contact_phone: str | None = Field(default=None, max_length=50)
    event_name: str | None = Field(default=None, max_length=255)
    event_venue: str | None = None
    event_start_date: date | None = None
    event_end_date: date | None = None
    event_start_time: time | None = None
    event_end_time: time | None = None
    event_mode: EventMode | None = None
    event_type: str | None = Field(default=None, max_length=50)
    current_section: str | None = Field(default=None, max_length=50)
    form_completion_percentage: int = Field(default=0, ge=0, le=100)
    status: Literal["draft", "pending"] = "draft"

    @model_validator(mode="after")
    def _validate_window(self) -> "ProposalCreate":
        _check_event_window(self)
        return self


class ProposalUpdate(BaseModel):
    """Partial content update. ``status`` is only honoured for reviewers."""

    model_config = ConfigDict(use_enum_values=True, extra="ignore")

    organization_name: str | None = Field(default=None, min_length=1, max_length=255)
    organization_description: str | None = None
    organization_type: str | None = Field(default=None, max_length=50)
    category: str | None = Field(default=None, max_length=100)
    contact_person: str | None = Field(default=None, min_length=1, max_length=255)
    contact_email: EmailStr | None = None
    contact_phone: str | None = Field(default=None, max_length=50)
    event_name: str | None = Field(default=None, max_length=255)
    event_venue: str | None = None
    event_start_date: date | None = None
    event_end_date: date | None = None
    event_start_time: time | None = None
    event_end_time: time | None = None
    event_mode: EventMode | None = None
    event_type: str | None = Field(default=None, max_length=50)
    current_section: str | None = Field(default=None, max_length=50)
    form_completion_percentage: int | None = Field(default=None, ge=0, le=100)
    admin_comments: str | None = None
    status: ProposalStatus | None = None

    @model_validator(mode="after")
    def _validate_window(self) -> "ProposalUpdate":
        _check_event_window(self)
        return self


class ProposalReviewRequest(BaseModel):
    # Free-form so unknown actions surface as a domain validation error
    action: str = Field(min_length=1, max_length=50)
    note: str | None = Field(default=None, max_length=5000)


class CommentRequest(BaseModel):
    model_config = ConfigDict(use_enum_values=True)

    comment: str = Field(min_length=1, max_length=5000)
    decision: ReviewDecision = ReviewDecision.REVISE


class ProposalDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: int | None = None
    uuid: str
    organization_name: str
    organization_description: str | None = None
    organization_type: str | None = None
    category: str | None = None
    contact_person: str
    contact_email: str
    contact_phone: str | None = None
    event_name: str | None = None
    event_venue: str | None = None
    event_start_date: date | None = None
    event_end_date: date | None = None
    event_start_time: time | None = None
    event_end_time: time | None = None
    event_mode: EventMode | None = None
    event_type: str | None = None
    status: ProposalStatus
    current_section: str | None = None
    form_completion_percentage: int = 0
    admin_comments: str | None = None
    review_comments: list[ReviewComment] = Field(default_factory=list)
    compliance_status: ComplianceStatus = ComplianceStatus.NOT_APPLICABLE
    compliance_due_date: datetime | None = None
    compliance_documents: list[ComplianceDocument] = Field(default_factory=list)
    submitted_by: str | None = None
    reviewed_by: str | None = None
    version: int = 1
    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    reviewed_at: datetime | None = None
    approved_at: datetime | None = None


class FileEntryDTO(BaseModel):
    blob_key: str
    original_name: str
    size: int
    mime_type: str
    uploaded_at: datetime | None = None


class FileLinkDTO(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    proposal_id: str
    organization_name: str
    files: dict[str, FileEntryDTO] = Field(default_factory=dict)
    version: int | None = None
    updated_at: datetime | None = None


class ProposalWithFilesDTO(ProposalDTO):
    files: dict[str, FileEntryDTO] = Field(default_factory=dict)
    data_source: Literal["hybrid", "degraded"] = "hybrid"


class ProposalListResponse(BaseModel):
    items: list[ProposalWithFilesDTO]
    total: int
    page: int
    page_size: int
    total_pages: int


class ProposalStatsResponse(BaseModel):
    total: int = 0
    draft: int = 0
    pending: int = 0
    approved: int = 0
    denied: int = 0
    revision_requested: int = 0
    reviewed: int = 0
    created_last_7_days: int = 0


class SearchSuggestionsResponse(BaseModel):
    query: str
    items: list[str]


class ProposalDebugResponse(BaseModel):
    proposal: ProposalDTO
    file_link: FileLinkDTO | None = None
    data_source: Literal["hybrid", "degraded"]
    history: list[AuditLogEntry]

import uuid

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


PROPOSAL_STATUSES = ("draft", "pending", "approved", "denied", "revision_requested")

COMPLIANCE_STATUSES = ("not_applicable", "pending", "compliant", "overdue")

EVENT_MODES = ("online", "offline", "hybrid")


class Proposal(Base):
    __tablename__ = "proposals"
    __allow_unmapped__ = True
    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'pending', 'approved', 'denied', 'revision_requested')",
            name="ck_proposal_status",
        ),
        CheckConstraint(
            "compliance_status IN ('not_applicable', 'pending', 'compliant', 'overdue')",
            name="ck_proposal_compliance_status",
        ),
        CheckConstraint(
            "event_mode IS NULL OR event_mode IN ('online', 'offline', 'hybrid')",
            name="ck_proposal_event_mode",
        ),
        CheckConstraint(
            "form_completion_percentage >= 0 AND form_completion_percentage <= 100",
            name="ck_proposal_form_completion_range",
        ),
        CheckConstraint("version >= 1", name="ck_proposal_version_positive"),
        CheckConstraint(
            "status <> 'approved' OR compliance_due_date IS NOT NULL",
            name="ck_proposal_approved_has_due_date",
        ),
        Index(
            "ix_proposals_compliance_sweep",
            "status",
            "compliance_status",
            "compliance_due_date",
        ),
    )

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    uuid = Column(
        String(36),
        nullable=False,
        unique=True,
        index=True,
        default=lambda: str(uuid.uuid4()),
    )

    organization_name = Column(String(255), nullable=False)
    organization_description = Column(Text, nullable=True)
    organization_type = Column(String(50), nullable=True, index=True)
    category = Column(String(100), nullable=True, index=True)
    contact_person = Column(String(255), nullable=False)
    contact_email = Column(String(255), nullable=False)
    contact_phone = Column(String(50), nullable=True)

    event_name = Column(String(255), nullable=True)
    event_venue = Column(Text, nullable=True)
    event_start_date = Column(Date, nullable=True)
    event_end_date = Column(Date, nullable=True)
    event_start_time = Column(Time, nullable=True)
    event_end_time = Column(Time, nullable=True)
    event_mode = Column(String(20), nullable=True)
    event_type = Column(String(50), nullable=True)

    status = Column(String(30), nullable=False, default="draft", index=True)
    current_section = Column(String(50), nullable=True)
    form_completion_percentage = Column(Integer, nullable=False, default=0)
    admin_comments = Column(Text, nullable=True)
    review_comments = Column(JSONB, nullable=False, default=list)

    compliance_status = Column(String(30), nullable=False, default="not_applicable")
    compliance_due_date = Column(DateTime(timezone=True), nullable=True)
    compliance_documents = Column(JSONB, nullable=False, default=list)

    submitted_by = Column(String(255), nullable=True, index=True)
    reviewed_by = Column(String(255), nullable=True)
    version = Column(Integer, nullable=False, default=1)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
    submitted_at = Column(DateTime(timezone=True), nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    approved_at = Column(DateTime(timezone=True), nullable=True)

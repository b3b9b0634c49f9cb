from sqlalchemy import BigInteger, Column, DateTime, Index, String, func
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


AUDIT_ACTIONS = (
    "created",
    "updated",
    "submitted",
    "approved",
    "denied",
    "revision_requested",
    "report_submitted",
    "file_uploaded",
    "file_deleted",
    "deleted",
    "commented",
    "compliance_updated",
    "compliance_overdue",
)


class ProposalAuditLog(Base):
    __tablename__ = "proposal_audit_logs"
    __table_args__ = (
        Index("ix_proposal_audit_logs_proposal_created", "proposal_id", "created_at", "id"),
    )

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    proposal_id = Column(String(36), nullable=False)
    action = Column(String(50), nullable=False)
    actor_id = Column(String(255), nullable=True)
    # "metadata" is reserved on declarative classes
    entry_metadata = Column("metadata", JSONB, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    Column,
    DateTime,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


NOTIFICATION_KINDS = (
    "proposal_approved",
    "proposal_denied",
    "proposal_revision_requested",
    "compliance_overdue",
    "compliance_updated",
)

NOTIFICATION_STATUSES = ("pending", "sent", "failed")


class NotificationOutbox(Base):
    __tablename__ = "notification_outbox"
    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'sent', 'failed')",
            name="ck_notification_outbox_status",
        ),
        CheckConstraint("attempts >= 0", name="ck_notification_outbox_attempts_nonneg"),
        Index("ix_notification_outbox_due", "status", "next_attempt_at"),
    )

    id = Column(BigInteger, primary_key=True, autoincrement=True)
    proposal_id = Column(String(36), nullable=False, index=True)
    kind = Column(String(50), nullable=False)
    recipient = Column(String(255), nullable=False)
    payload = Column(JSONB, nullable=False, default=dict)
    status = Column(String(20), nullable=False, default="pending")
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    next_attempt_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    sent_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

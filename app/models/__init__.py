from app.models.audit_log import ProposalAuditLog
from app.models.notification_outbox import NotificationOutbox
from app.models.proposal import Proposal
from app.models.proposal_file_link import ProposalFileLink

__all__ = [
    "NotificationOutbox",
    "Proposal",
    "ProposalAuditLog",
    "ProposalFileLink",
]

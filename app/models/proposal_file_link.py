from sqlalchemy import Column, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB

from app.db.base import Base


DOCUMENT_TYPES = ("gpoa", "proposal", "accomplishment_report")


class ProposalFileLink(Base):
    """Maps a proposal's external id to the blob keys of its documents.

    ``files`` is ``{document_type: {blob_key, original_name, size, mime_type, uploaded_at}}``.
    No foreign key to ``proposals``: the link table is keyed by the string id only.
    """

    __tablename__ = "proposal_file_links"

    proposal_id = Column(String(36), primary_key=True)
    organization_name = Column(String(255), nullable=False)
    files = Column(JSONB, nullable=False, default=dict)
    version = Column(Integer, nullable=False, default=1)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )

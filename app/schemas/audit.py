from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class AuditLogEntry(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int | None = None
    proposal_id: str
    action: str
    actor_id: str | None = None
    # The ORM attribute is renamed because "metadata" is reserved on declarative models
    metadata: dict[str, Any] = Field(default_factory=dict, validation_alias="entry_metadata")
    created_at: datetime | None = None


class ProposalHistoryResponse(BaseModel):
    proposal_id: str
    items: list[AuditLogEntry]

from pydantic import BaseModel, Field


class NotificationDispatchRequest(BaseModel):
    limit: int | None = Field(default=None, ge=1, le=500)


class NotificationDispatchResponse(BaseModel):
    claimed: int
    sent: int
    retried: int
    failed: int

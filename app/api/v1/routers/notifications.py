from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.schemas.notifications import NotificationDispatchRequest, NotificationDispatchResponse
from app.services import notifications

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post("/dispatch", response_model=NotificationDispatchResponse)
async def dispatch_notifications(
    payload: NotificationDispatchRequest | None = None,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.NOTIFICATION_DISPATCH)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> NotificationDispatchResponse:
    summary = await notifications.dispatch_pending(db, limit=payload.limit if payload else None)
    return NotificationDispatchResponse(
        claimed=summary.claimed,
        sent=summary.sent,
        retried=summary.retried,
        failed=summary.failed,
    )

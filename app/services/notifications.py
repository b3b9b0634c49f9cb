"""Notification outbox.

State changes enqueue rows in the same transaction that performs them;
``dispatch_pending`` delivers due rows later with exponential backoff.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.settings import settings
from app.models.notification_outbox import NOTIFICATION_KINDS, NotificationOutbox
from app.services.audit import serialize_for_audit
from app.services.proposal_store import utcnow

logger = logging.getLogger(__name__)


class NotificationDeliveryError(Exception):
    pass


class NotificationSender(Protocol):
    async def send(self, notification: NotificationOutbox) -> None: ...


class LoggingNotificationSender:
    """Writes the notification to the application log instead of sending it."""

    async def send(self, notification: NotificationOutbox) -> None:
        logger.info(
            "Notification %s to %s",
            notification.kind,
            notification.recipient,
            extra={"proposal_id": notification.proposal_id, "action": notification.kind},
        )


def get_sender() -> NotificationSender:
    if settings.notification_sender == "log":
        return LoggingNotificationSender()
    raise ValueError(f"Unsupported notification sender: {settings.notification_sender}")


@dataclass(slots=True)
class DispatchSummary:
    claimed: int = 0
    sent: int = 0
    retried: int = 0
    failed: int = 0


def enqueue(
    db: AsyncSession,
    *,
    proposal_id: str,
    kind: str,
    recipient: str,
    payload: dict[str, Any] | None = None,
) -> NotificationOutbox:
    if kind not in NOTIFICATION_KINDS:
        raise ValueError(f"Unknown notification kind: {kind}")
    notification = NotificationOutbox(
        proposal_id=proposal_id,
        kind=kind,
        recipient=recipient,
        payload=serialize_for_audit(payload or {}),
        status="pending",
        attempts=0,
        next_attempt_at=utcnow(),
    )
    db.add(notification)
    return notification


def retry_delay(attempts: int) -> timedelta:
    base = max(settings.notification_retry_base_seconds, 1)
    return timedelta(seconds=base * (2 ** max(attempts - 1, 0)))


async def dispatch_pending(
    db: AsyncSession,
    sender: NotificationSender | None = None,
    *,
    now: datetime | None = None,
    limit: int | None = None,
) -> DispatchSummary:
    sender = sender or get_sender()
    now = now or utcnow()
    stmt = (
        select(NotificationOutbox)
        .where(
            NotificationOutbox.status == "pending",
            NotificationOutbox.next_attempt_at <= now,
        )
        .order_by(NotificationOutbox.next_attempt_at.asc(), NotificationOutbox.id.asc())
        .limit(limit or settings.notification_batch_size)
        .with_for_update(skip_locked=True)
    )
    result = await db.execute(stmt)
    notifications = result.scalars().all()

    summary = DispatchSummary(claimed=len(notifications))
    for notification in notifications:
        notification.attempts = (notification.attempts or 0) + 1
        try:
            await sender.send(notification)
        except Exception as exc:
            notification.last_error = str(exc)[:1000]
            if notification.attempts >= settings.notification_max_attempts:
                notification.status = "failed"
                summary.failed += 1
                logger.error(
                    "Notification %s failed permanently after %s attempts",
                    notification.id,
                    notification.attempts,
                    extra={"proposal_id": notification.proposal_id, "action": notification.kind},
                )
            else:
                notification.next_attempt_at = now + retry_delay(notification.attempts)
                summary.retried += 1
                logger.warning(
                    "Notification %s delivery failed, retrying at %s",
                    notification.id,
                    notification.next_attempt_at.isoformat(),
                    extra={"proposal_id": notification.proposal_id, "action": notification.kind},
                )
        else:
            notification.status = "sent"
            notification.sent_at = now
            notification.last_error = None
            summary.sent += 1
        db.add(notification)

    await db.commit()
    return summary

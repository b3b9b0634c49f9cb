from datetime import datetime, timedelta, timezone

import pytest

from app.core.settings import settings
from app.services import notifications
from conftest import FakeAsyncSession


class _RecordingSender:
    def __init__(self, failures: int = 0) -> None:
        self.failures = failures
        self.sent: list[str] = []

    async def send(self, notification) -> None:
        if self.failures > 0:
            self.failures -= 1
            raise RuntimeError("smtp timeout")
        self.sent.append(notification.kind)


async def _enqueue(tables, kind: str = "proposal_approved", **payload):
    db = FakeAsyncSession(tables)
    notification = notifications.enqueue(
        db, proposal_id="p-1", kind=kind, recipient="ada@school.edu", payload=payload
    )
    await db.commit()
    return notification


def test_enqueue_rejects_unknown_kind(fake_db):
    with pytest.raises(ValueError):
        notifications.enqueue(fake_db, proposal_id="p-1", kind="birthday", recipient="a@school.edu")


@pytest.mark.asyncio
async def test_enqueue_serializes_payload(tables):
    due = datetime(2026, 6, 1, tzinfo=timezone.utc)

    notification = await _enqueue(tables, compliance_due_date=due)

    assert notification.payload == {"compliance_due_date": due.isoformat()}
    assert notification.status == "pending"
    assert tables.notifications == [notification]


@pytest.mark.asyncio
async def test_dispatch_sends_due_notifications(tables):
    await _enqueue(tables, "proposal_approved")
    await _enqueue(tables, "compliance_overdue")
    sender = _RecordingSender()

    summary = await notifications.dispatch_pending(FakeAsyncSession(tables), sender)

    assert (summary.claimed, summary.sent, summary.retried, summary.failed) == (2, 2, 0, 0)
    assert sender.sent == ["proposal_approved", "compliance_overdue"]
    assert all(item.status == "sent" and item.sent_at for item in tables.notifications)

    again = await notifications.dispatch_pending(FakeAsyncSession(tables), sender)
    assert again.claimed == 0


@pytest.mark.asyncio
async def test_failed_delivery_backs_off_exponentially(tables, monkeypatch):
    monkeypatch.setattr(settings, "notification_retry_base_seconds", 60)
    notification = await _enqueue(tables)
    now = datetime.now(timezone.utc) + timedelta(seconds=1)

    summary = await notifications.dispatch_pending(FakeAsyncSession(tables), _RecordingSender(failures=1), now=now)

    assert summary.retried == 1
    assert notification.status == "pending"
    assert notification.attempts == 1
    assert notification.last_error == "smtp timeout"
    assert notification.next_attempt_at == now + timedelta(seconds=60)

    # Not due yet
    early = await notifications.dispatch_pending(FakeAsyncSession(tables), _RecordingSender(), now=now)
    assert early.claimed == 0


@pytest.mark.asyncio
async def test_delivery_gives_up_after_max_attempts(tables, monkeypatch):
    monkeypatch.setattr(settings, "notification_max_attempts", 2)
    notification = await _enqueue(tables)
    sender = _RecordingSender(failures=5)
    now = datetime.now(timezone.utc) + timedelta(seconds=1)

    await notifications.dispatch_pending(FakeAsyncSession(tables), sender, now=now)
    later = notification.next_attempt_at
    summary = await notifications.dispatch_pending(FakeAsyncSession(tables), sender, now=later)

    assert summary.failed == 1
    assert notification.status == "failed"
    assert notification.attempts == 2


def test_retry_delay_doubles():
    base = settings.notification_retry_base_seconds
    assert notifications.retry_delay(1) == timedelta(seconds=base)
    assert notifications.retry_delay(2) == timedelta(seconds=base * 2)
    assert notifications.retry_delay(4) == timedelta(seconds=base * 8)


@pytest.mark.asyncio
async def test_logging_sender_logs(caplog):
    notification = notifications.NotificationOutbox(
        proposal_id="p-1", kind="proposal_denied", recipient="ada@school.edu"
    )

    with caplog.at_level("INFO", logger="app.services.notifications"):
        await notifications.LoggingNotificationSender().send(notification)

    assert "proposal_denied" in caplog.text

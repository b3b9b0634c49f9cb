from __future__ import annotations

from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Iterable

from fastapi.encoders import jsonable_encoder
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_audit_logger
from app.db.session import AsyncSessionLocal
from app.models.audit_log import AUDIT_ACTIONS, ProposalAuditLog

audit_logger = get_audit_logger()


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
            time: lambda v: v.isoformat(),
        },
    )


def changed_fields(before: dict[str, Any], after: dict[str, Any]) -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    for key in sorted(set(before) | set(after)):
        old, new = before.get(key), after.get(key)
        if old != new:
            changes[key] = {"from": old, "to": new}
    return serialize_for_audit(changes)


def model_snapshot(model: Any, fields: Iterable[str]) -> dict[str, Any]:
    if model is None:
        return {}
    return serialize_for_audit({name: getattr(model, name, None) for name in fields})


class AuditLogWriter:
    """Append-only proposal history.

    ``append`` runs in its own session after the caller's transaction has
    committed. A failed write is logged on the ``app.audit`` stream and never
    propagated to the mutating request it describes.
    """

    def __init__(self, session_factory: Callable[[], Any] = AsyncSessionLocal) -> None:
        self._session_factory = session_factory

    async def append(
        self,
        proposal_id: str,
        action: str,
        actor_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ProposalAuditLog | None:
        log_extra = {"proposal_id": proposal_id, "action": action}
        if action not in AUDIT_ACTIONS:
            audit_logger.error("Refusing unknown audit action %s", action, extra=log_extra)
            return None
        entry = ProposalAuditLog(
            proposal_id=proposal_id,
            action=action,
            actor_id=actor_id,
            entry_metadata=serialize_for_audit(metadata or {}),
        )
        try:
            async with self._session_factory() as session:
                session.add(entry)
                await session.commit()
        except Exception:
            audit_logger.exception("Audit log write failed", extra=log_extra)
            return None
        audit_logger.info("proposal.%s", action, extra=log_extra)
        return entry

    async def history(self, db: AsyncSession, proposal_id: str) -> list[ProposalAuditLog]:
        stmt = (
            select(ProposalAuditLog)
            .where(ProposalAuditLog.proposal_id == proposal_id)
            .order_by(ProposalAuditLog.created_at.asc(), ProposalAuditLog.id.asc())
        )
        result = await db.execute(stmt)
        return list(result.scalars().all())


audit_writer = AuditLogWriter()

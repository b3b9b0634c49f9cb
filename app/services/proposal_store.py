"""Record Store access shared by the proposal services.

Every write that touches ``status`` goes through :func:`conditional_update`,
which compares and swaps on the status (and optionally the row version) in a
single ``UPDATE`` statement.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import AuthorizationError, ConflictError, NotFoundError
from app.core.permissions import Actor, PermissionCode, has_permission
from app.models.proposal import Proposal

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _lookup_clause(proposal_id: str | int):
    value = str(proposal_id).strip()
    if value.isdigit():
        return Proposal.id == int(value)
    return Proposal.uuid == value


async def get_proposal(
    db: AsyncSession,
    proposal_id: str | int,
    *,
    refresh: bool = False,
) -> Proposal | None:
    """Load a proposal by external uuid, or by numeric id when given digits."""
    stmt = select(Proposal).where(_lookup_clause(proposal_id))
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await db.execute(stmt)
    return result.scalar_one_or_none()


async def get_proposal_or_404(db: AsyncSession, proposal_id: str | int) -> Proposal:
    proposal = await get_proposal(db, proposal_id)
    if proposal is None:
        raise NotFoundError("Proposal not found", reason="proposal_not_found")
    return proposal


def ensure_access(proposal: Proposal, actor: Actor | None) -> None:
    if actor is None or has_permission(actor.role, PermissionCode.PROPOSAL_VIEW_ALL):
        return
    if proposal.submitted_by and proposal.submitted_by != actor.id:
        raise AuthorizationError("Not authorized to access this proposal")


async def get_accessible_proposal(
    db: AsyncSession,
    proposal_id: str | int,
    actor: Actor | None,
) -> Proposal:
    proposal = await get_proposal_or_404(db, proposal_id)
    ensure_access(proposal, actor)
    return proposal


async def current_status(db: AsyncSession, proposal_uuid: str) -> str | None:
    result = await db.execute(select(Proposal.status).where(Proposal.uuid == proposal_uuid))
    return result.scalar_one_or_none()


async def conditional_update(
    db: AsyncSession,
    proposal: Proposal,
    *,
    expected_status: str,
    values: dict[str, Any],
    expected_version: int | None = None,
) -> Proposal:
    """Apply ``values`` only if the row still has ``expected_status``.

    Bumps ``version`` and returns the re-read row. Zero rows affected means a
    concurrent writer got there first; the caller's transaction is rolled back
    and a :class:`ConflictError` carrying the current status is raised.
    """
    stmt = update(Proposal).where(
        Proposal.uuid == proposal.uuid,
        Proposal.status == expected_status,
    )
    if expected_version is not None:
        stmt = stmt.where(Proposal.version == expected_version)
    stmt = (
        stmt.values(**values, version=Proposal.version + 1, updated_at=func.now())
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    if result.rowcount != 1:
        await db.rollback()
        status_now = await current_status(db, proposal.uuid)
        if status_now is None:
            raise NotFoundError("Proposal not found", reason="proposal_not_found")
        logger.info(
            "Conditional write lost for proposal %s (expected %s, found %s)",
            proposal.uuid,
            expected_status,
            status_now,
            extra={"proposal_id": proposal.uuid, "reason": "conflict"},
        )
        raise ConflictError(
            "Proposal was modified concurrently"
            if status_now == expected_status
            else f"Proposal status is {status_now}",
            current_status=status_now,
        )
    refreshed = await get_proposal(db, proposal.uuid, refresh=True)
    if refreshed is None:
        raise NotFoundError("Proposal not found", reason="proposal_not_found")
    return refreshed

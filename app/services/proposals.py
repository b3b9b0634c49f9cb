from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.core.permissions import Actor, can_review
from app.core.settings import settings
from app.models.proposal import Proposal
from app.schemas.proposals import (
    CommentRequest,
    EventDetailsUpdate,
    ProposalCreate,
    ProposalReviewRequest,
    ProposalStatus,
    ProposalUpdate,
    ReviewDecision,
)
from app.services import audit, notifications, status_machine
from app.services.file_links import FileLinker
from app.services.proposal_store import (
    conditional_update,
    ensure_access,
    get_accessible_proposal,
    get_proposal,
    get_proposal_or_404,
    utcnow,
)
from app.services.status_machine import ProposalAction
from app.services.storage.adapter import StorageAdapter

logger = logging.getLogger(__name__)

_NOTIFICATION_KINDS = {
    ProposalAction.APPROVE: "proposal_approved",
    ProposalAction.DENY: "proposal_denied",
    ProposalAction.REQUEST_REVISION: "proposal_revision_requested",
}


def _snapshot(proposal: Proposal, fields) -> dict[str, Any]:
    return audit.model_snapshot(proposal, fields)


def _review_comment(actor_id: str | None, comment: str, decision: ReviewDecision) -> dict[str, Any]:
    return {
        "reviewer_id": actor_id,
        "comment": comment,
        "decision": decision.value,
        "created_at": utcnow().isoformat(),
    }


async def create_proposal(
    db: AsyncSession,
    payload: ProposalCreate,
    *,
    actor: Actor,
) -> tuple[Proposal, bool]:
    """Create a proposal, or return the existing one for a repeated client id.

    Returns ``(proposal, created)``.
    """
    proposal_uuid = str(payload.id) if payload.id else str(uuid4())
    if payload.id is not None:
        existing = await get_proposal(db, proposal_uuid)
        if existing is not None:
            ensure_access(existing, actor)
            return existing, False

    initial = ProposalStatus.DRAFT
    if payload.status == ProposalStatus.PENDING.value:
        initial = status_machine.transition(ProposalStatus.DRAFT, ProposalAction.SUBMIT, actor.role)

    content = payload.model_dump(exclude={"id", "status"})
    proposal = Proposal(
        uuid=proposal_uuid,
        **content,
        status=initial.value,
        compliance_status="not_applicable",
        compliance_documents=[],
        review_comments=[],
        submitted_by=actor.id,
        submitted_at=utcnow() if initial is ProposalStatus.PENDING else None,
        version=1,
    )
    db.add(proposal)
    try:
        await db.commit()
    except IntegrityError:
        # Lost a race with a concurrent create for the same client id
        await db.rollback()
        existing = await get_proposal(db, proposal_uuid)
        if existing is None:
            raise
        ensure_access(existing, actor)
        return existing, False
    await db.refresh(proposal)

    await audit.audit_writer.append(
        proposal.uuid,
        "created",
        actor.id,
        {"status": proposal.status, "organization_name": proposal.organization_name},
    )
    return proposal, True


async def _apply_transition(
    db: AsyncSession,
    proposal: Proposal,
    action: ProposalAction,
    actor: Actor,
    *,
    note: str | None = None,
) -> Proposal:
    """Decide and conditionally write one transition. Does not commit."""
    current = proposal.status
    next_status = status_machine.transition(current, action, actor.role)
    values: dict[str, Any] = {"status": next_status.value}
    values.update(
        status_machine.side_effects(
            action,
            now=utcnow(),
            actor_id=actor.id,
            window_days=settings.compliance_window_days,
        )
    )
    if note and action in status_machine.REVIEW_ACTIONS:
        values["review_comments"] = [
            *(proposal.review_comments or []),
            _review_comment(actor.id, note, status_machine.REVIEW_DECISIONS[action]),
        ]
    refreshed = await conditional_update(
        db,
        proposal,
        expected_status=current,
        expected_version=proposal.version,
        values=values,
    )
    if action in _NOTIFICATION_KINDS:
        notifications.enqueue(
            db,
            proposal_id=refreshed.uuid,
            kind=_NOTIFICATION_KINDS[action],
            recipient=refreshed.contact_email,
            payload={
                "organization_name": refreshed.organization_name,
                "event_name": refreshed.event_name,
                "status": refreshed.status,
                "note": note,
                "compliance_due_date": refreshed.compliance_due_date,
            },
        )
    return refreshed


async def _run_transition(
    db: AsyncSession,
    proposal_id: str,
    action: ProposalAction,
    actor: Actor,
    *,
    note: str | None = None,
) -> Proposal:
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    previous = proposal.status
    refreshed = await _apply_transition(db, proposal, action, actor, note=note)
    await db.commit()
    await audit.audit_writer.append(
        refreshed.uuid,
        status_machine.AUDIT_ACTIONS[action],
        actor.id,
        {"from": previous, "to": refreshed.status, "note": note},
    )
    return refreshed


async def submit_proposal(db: AsyncSession, proposal_id: str, *, actor: Actor) -> Proposal:
    return await _run_transition(db, proposal_id, ProposalAction.SUBMIT, actor)


async def review_proposal(
    db: AsyncSession,
    proposal_id: str,
    request: ProposalReviewRequest,
    *,
    actor: Actor,
) -> Proposal:
    action = status_machine.parse_action(request.action)
    if action not in status_machine.REVIEW_ACTIONS:
        message = f"{action.value} is not a review action"
        raise ValidationError(
            message,
            code="unknown_action",
            errors=[{"loc": ["action"], "msg": message, "type": "value_error"}],
        )
    return await _run_transition(db, proposal_id, action, actor, note=request.note)


async def update_content(
    db: AsyncSession,
    proposal_id: str,
    payload: ProposalUpdate,
    *,
    actor: Actor,
) -> Proposal:
    """Partial content update that writes the read status back unchanged.

    A ``status`` in the body is dropped for non-reviewers. For reviewers it is
    routed through the state machine as the matching action.
    """
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    changes = payload.model_dump(exclude_unset=True)
    requested_status = changes.pop("status", None)
    if requested_status is not None and not can_review(actor.role):
        logger.warning(
            "Ignoring status change to %s from role %s",
            requested_status,
            actor.role.value,
            extra={"proposal_id": proposal.uuid, "action": "update", "reason": "status_dropped"},
        )
        requested_status = None
    if not changes and requested_status in (None, proposal.status):
        return proposal

    before = _snapshot(proposal, changes.keys())
    read_status = proposal.status
    updated = proposal
    if changes:
        updated = await conditional_update(
            db,
            proposal,
            expected_status=read_status,
            values={**changes, "status": read_status},
        )

    transition_action = None
    if requested_status is not None and requested_status != read_status:
        target = ProposalStatus(requested_status)
        transition_action = status_machine.ACTION_FOR_TARGET.get(target)
        if transition_action is None:
            await db.rollback()
            message = f"Status cannot be set to {target.value}"
            raise ValidationError(
                message,
                code="invalid_status",
                errors=[{"loc": ["status"], "msg": message, "type": "value_error"}],
            )
        updated = await _apply_transition(db, updated, transition_action, actor)
    await db.commit()

    if changes:
        await audit.audit_writer.append(
            updated.uuid,
            "updated",
            actor.id,
            {"changes": audit.changed_fields(before, _snapshot(updated, changes.keys()))},
        )
    if transition_action is not None:
        await audit.audit_writer.append(
            updated.uuid,
            status_machine.AUDIT_ACTIONS[transition_action],
            actor.id,
            {"from": read_status, "to": updated.status, "via": "update"},
        )
    return updated


async def save_event_details(
    db: AsyncSession,
    proposal_id: str,
    payload: EventDetailsUpdate,
    *,
    actor: Actor,
) -> Proposal:
    """Save event fields; a draft is promoted to pending by the same write."""
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    changes = payload.model_dump(exclude_unset=True)
    read_status = proposal.status
    next_status = status_machine.transition(
        read_status, ProposalAction.SAVE_EVENT_DETAILS, actor.role
    )
    promoted = next_status.value != read_status

    values: dict[str, Any] = {**changes, "status": next_status.value}
    if promoted:
        values.update(
            status_machine.side_effects(
                ProposalAction.SAVE_EVENT_DETAILS, now=utcnow(), actor_id=actor.id
            )
        )
    before = _snapshot(proposal, changes.keys())
    updated = await conditional_update(
        db,
        proposal,
        expected_status=read_status,
        values=values,
    )
    # The conditional write already guards this; the re-read makes a violation loud
    if updated.status != next_status.value:
        await db.rollback()
        raise RuntimeError(
            f"Proposal {updated.uuid} status changed during event details save: {updated.status}"
        )
    await db.commit()

    await audit.audit_writer.append(
        updated.uuid,
        "submitted" if promoted else "updated",
        actor.id,
        {
            "changes": audit.changed_fields(before, _snapshot(updated, changes.keys())),
            "from": read_status,
            "to": updated.status,
        },
    )
    return updated


async def add_review_comment(
    db: AsyncSession,
    proposal_id: str,
    request: CommentRequest,
    *,
    actor: Actor,
) -> Proposal:
    proposal = await get_proposal_or_404(db, proposal_id)
    comments = [
        *(proposal.review_comments or []),
        _review_comment(actor.id, request.comment, ReviewDecision(request.decision)),
    ]
    updated = await conditional_update(
        db,
        proposal,
        expected_status=proposal.status,
        expected_version=proposal.version,
        values={"review_comments": comments},
    )
    await db.commit()
    await audit.audit_writer.append(
        updated.uuid, "commented", actor.id, {"comment": request.comment, "decision": request.decision}
    )
    return updated


async def delete_proposal(
    db: AsyncSession,
    storage: StorageAdapter,
    proposal_id: str,
    *,
    actor: Actor,
) -> None:
    """Delete the record and its link row together, then release blobs.

    Blob failures are logged and never block the record deletion.
    """
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    proposal_uuid = proposal.uuid
    compliance_keys = [
        doc.get("blob_key") for doc in (proposal.compliance_documents or []) if doc.get("blob_key")
    ]
    snapshot = _snapshot(proposal, ("status", "organization_name", "event_name"))
    await db.execute(delete(Proposal).where(Proposal.uuid == proposal_uuid))
    released = await FileLinker(db, storage).release_all(proposal_uuid, extra_keys=compliance_keys)
    await audit.audit_writer.append(
        proposal_uuid, "deleted", actor.id, {**snapshot, "released_blobs": len(released)}
    )

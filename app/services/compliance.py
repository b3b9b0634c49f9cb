from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Iterable, Sequence

from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ConflictError, NotFoundError, StorageError, ValidationError
from app.core.permissions import Actor
from app.models.proposal import Proposal
from app.schemas.compliance import ComplianceStatsResponse
from app.schemas.proposals import ComplianceStatus, ProposalStatus, ReviewDecision
from app.services import audit, notifications
from app.services.file_links import discard_blobs, write_blobs
from app.services.proposal_store import conditional_update, get_accessible_proposal, get_proposal_or_404, utcnow
from app.services.storage.adapter import StorageAdapter
from app.services.storage.key_generator import KeyGenerator
from app.services.uploads import ValidatedUpload

logger = logging.getLogger(__name__)


DEFAULT_CHECKLIST = (
    "Final Report",
    "Attendance Sheets",
    "Budget Report",
    "Photo Documentation",
)


def default_checklist() -> list[dict[str, Any]]:
    return [
        {"name": name, "required": True, "submitted": False, "blob_key": None, "submitted_at": None}
        for name in DEFAULT_CHECKLIST
    ]


def missing_required(documents: Iterable[dict[str, Any]]) -> list[str]:
    return [doc["name"] for doc in documents if doc.get("required") and not doc.get("submitted")]


def recompute_status(documents: Sequence[dict[str, Any]], current: str) -> str:
    """``compliant`` exactly when every required document is in; otherwise keep
    ``current`` unless it claims compliance it no longer has."""
    required = [doc for doc in documents if doc.get("required")]
    if required and not missing_required(required):
        return ComplianceStatus.COMPLIANT.value
    if current == ComplianceStatus.COMPLIANT.value:
        return ComplianceStatus.PENDING.value
    return current


def apply_submissions(
    documents: Sequence[dict[str, Any]],
    submissions: Iterable[tuple[str, str]],
    *,
    now: datetime,
) -> list[dict[str, Any]]:
    """Mark matching checklist entries submitted.

    Names that match no entry are appended as submitted, non-required
    documents rather than rejected.
    """
    updated = [dict(doc) for doc in documents]
    by_name = {doc["name"]: doc for doc in updated}
    stamp = now.isoformat()
    for name, blob_key in submissions:
        doc = by_name.get(name)
        if doc is None:
            doc = {"name": name, "required": False}
            updated.append(doc)
            by_name[name] = doc
        doc.update(submitted=True, blob_key=blob_key, submitted_at=stamp)
    return updated


def _normalize_names(names: Sequence[str], count: int) -> list[str]:
    cleaned = [str(name).strip() for name in names]
    if len(cleaned) != count or any(not name for name in cleaned):
        message = "Document names must match the number of uploaded files"
        raise ValidationError(
            message,
            code="document_names_mismatch",
            errors=[{"loc": ["document_names"], "msg": message, "type": "value_error"}],
        )
    return cleaned


async def submit_report(
    db: AsyncSession,
    storage: StorageAdapter,
    proposal_id: str,
    names: Sequence[str],
    uploads: Sequence[ValidatedUpload],
    *,
    actor: Actor | None = None,
) -> Proposal:
    """Store compliance documents and tick them off the checklist."""
    document_names = _normalize_names(names, len(uploads))
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    if proposal.status != ProposalStatus.APPROVED.value:
        raise ConflictError(
            "Only approved proposals can receive compliance documents",
            current_status=proposal.status,
        )
    read_version = proposal.version
    documents = list(proposal.compliance_documents or [])
    await db.commit()

    keyed = [
        (
            KeyGenerator.generate_compliance_key(
                proposal.uuid, proposal.organization_name, name, upload.extension
            ),
            name,
            upload,
        )
        for name, upload in zip(document_names, uploads)
    ]
    written = await write_blobs(storage, [(key, upload) for key, _, upload in keyed])

    now = utcnow()
    updated_documents = apply_submissions(documents, [(name, key) for key, name, _ in keyed], now=now)
    previous_status = proposal.compliance_status
    next_status = recompute_status(updated_documents, previous_status)
    try:
        refreshed = await conditional_update(
            db,
            proposal,
            expected_status=ProposalStatus.APPROVED.value,
            expected_version=read_version,
            values={"compliance_documents": updated_documents, "compliance_status": next_status},
        )
        await db.commit()
    except (ConflictError, NotFoundError):
        await discard_blobs(storage, written)
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error(
            "Compliance checklist write failed for proposal %s; discarding %s blob(s)",
            proposal.uuid,
            len(written),
            exc_info=True,
            extra={"proposal_id": proposal.uuid, "reason": "checklist_write_failed"},
        )
        await discard_blobs(storage, written)
        raise StorageError() from exc

    resubmitted = set(document_names)
    replaced = [
        doc.get("blob_key")
        for doc in documents
        if doc.get("blob_key") and doc["name"] in resubmitted
    ]
    await discard_blobs(storage, replaced)

    await audit.audit_writer.append(
        refreshed.uuid,
        "report_submitted",
        actor.id if actor else None,
        {
            "documents": document_names,
            "blob_keys": written,
            "compliance_status": {"from": previous_status, "to": next_status},
        },
    )
    return refreshed


async def set_compliance_status(
    db: AsyncSession,
    proposal_id: str,
    status: ComplianceStatus | str,
    *,
    comment: str | None = None,
    actor: Actor,
) -> Proposal:
    target = ComplianceStatus(status)
    if target is ComplianceStatus.NOT_APPLICABLE:
        raise ValidationError(
            "Compliance status cannot be reset to not_applicable",
            errors=[{"loc": ["status"], "msg": "not_applicable is not allowed", "type": "value_error"}],
        )
    proposal = await get_proposal_or_404(db, proposal_id)
    if proposal.status != ProposalStatus.APPROVED.value:
        raise ConflictError(
            "Compliance is only tracked for approved proposals", current_status=proposal.status
        )
    documents = list(proposal.compliance_documents or [])
    if target is ComplianceStatus.COMPLIANT:
        missing = missing_required(documents)
        if missing:
            raise ValidationError(
                "Required compliance documents are missing",
                code="compliance_documents_missing",
                errors=[
                    {"loc": ["compliance_documents", name], "msg": "not submitted", "type": "missing"}
                    for name in missing
                ],
            )

    now = utcnow()
    review_comments = list(proposal.review_comments or [])
    review_comments.append(
        {
            "reviewer_id": actor.id,
            "comment": comment or f"Compliance status set to {target.value}",
            "decision": ReviewDecision.COMPLIANCE.value,
            "created_at": now.isoformat(),
        }
    )
    previous_status = proposal.compliance_status
    refreshed = await conditional_update(
        db,
        proposal,
        expected_status=ProposalStatus.APPROVED.value,
        expected_version=proposal.version,
        values={"compliance_status": target.value, "review_comments": review_comments},
    )
    if previous_status != target.value:
        notifications.enqueue(
            db,
            proposal_id=refreshed.uuid,
            kind="compliance_updated",
            recipient=refreshed.contact_email,
            payload={"from": previous_status, "to": target.value, "comment": comment},
        )
    await db.commit()

    await audit.audit_writer.append(
        refreshed.uuid,
        "compliance_updated",
        actor.id,
        {"from": previous_status, "to": target.value, "comment": comment},
    )
    return refreshed


async def sweep_overdue(db: AsyncSession, *, now: datetime | None = None) -> list[str]:
    """Mark approved proposals past their due date as overdue.

    One ``UPDATE ... RETURNING``: a row already overdue or compliant is not
    matched, so a second sweep marks and notifies nothing.
    """
    now = now or utcnow()
    stmt = (
        update(Proposal)
        .where(
            Proposal.status == ProposalStatus.APPROVED.value,
            Proposal.compliance_due_date < now,
            Proposal.compliance_status.notin_(
                [ComplianceStatus.COMPLIANT.value, ComplianceStatus.OVERDUE.value]
            ),
        )
        .values(
            compliance_status=ComplianceStatus.OVERDUE.value,
            version=Proposal.version + 1,
            updated_at=func.now(),
        )
        .returning(
            Proposal.uuid,
            Proposal.organization_name,
            Proposal.event_name,
            Proposal.contact_email,
            Proposal.compliance_due_date,
        )
        .execution_options(synchronize_session=False)
    )
    result = await db.execute(stmt)
    rows = result.all()
    for row in rows:
        notifications.enqueue(
            db,
            proposal_id=row.uuid,
            kind="compliance_overdue",
            recipient=row.contact_email,
            payload={
                "organization_name": row.organization_name,
                "event_name": row.event_name,
                "compliance_due_date": row.compliance_due_date,
            },
        )
    await db.commit()

    marked = [row.uuid for row in rows]
    for proposal_uuid in marked:
        await audit.audit_writer.append(
            proposal_uuid, "compliance_overdue", None, {"swept_at": now}
        )
    if marked:
        logger.info("Compliance sweep marked %s proposal(s) overdue", len(marked))
    return marked


async def list_compliance(
    db: AsyncSession,
    *,
    compliance_status: ComplianceStatus | str | None = None,
) -> list[Proposal]:
    stmt = select(Proposal).where(Proposal.status == ProposalStatus.APPROVED.value)
    if compliance_status:
        stmt = stmt.where(Proposal.compliance_status == ComplianceStatus(compliance_status).value)
    stmt = stmt.order_by(Proposal.compliance_due_date.asc().nulls_last(), Proposal.id.asc())
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def compliance_stats(db: AsyncSession) -> ComplianceStatsResponse:
    stmt = (
        select(Proposal.compliance_status, func.count())
        .where(Proposal.status == ProposalStatus.APPROVED.value)
        .group_by(Proposal.compliance_status)
    )
    result = await db.execute(stmt)
    counts = {status: int(count) for status, count in result.all()}
    total = sum(counts.values())
    compliant = counts.get(ComplianceStatus.COMPLIANT.value, 0)
    return ComplianceStatsResponse(
        total=total,
        pending=counts.get(ComplianceStatus.PENDING.value, 0),
        compliant=compliant,
        overdue=counts.get(ComplianceStatus.OVERDUE.value, 0),
        compliance_rate=round(compliant / total * 100, 2) if total else 0.0,
    )

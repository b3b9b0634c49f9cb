"""Read path joining proposal rows with their file links.

Filtering, sorting and paging happen on the proposals table only. File links
are fetched per row inside a savepoint so one failed lookup degrades that row
instead of failing the page.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import timedelta
from typing import Any

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationError
from app.core.permissions import Actor, PermissionCode, has_permission
from app.models.proposal import Proposal
from app.models.proposal_file_link import ProposalFileLink
from app.schemas.proposals import (
    ProposalDTO,
    ProposalListResponse,
    ProposalStatsResponse,
    ProposalStatus,
    ProposalWithFilesDTO,
    SearchSuggestionsResponse,
)
from app.services.proposal_store import get_accessible_proposal, utcnow

logger = logging.getLogger(__name__)


SORTABLE_FIELDS = {
    "created_at": Proposal.created_at,
    "updated_at": Proposal.updated_at,
    "submitted_at": Proposal.submitted_at,
    "event_start_date": Proposal.event_start_date,
    "event_name": Proposal.event_name,
    "organization_name": Proposal.organization_name,
    "status": Proposal.status,
    "compliance_due_date": Proposal.compliance_due_date,
}

MAX_PAGE_SIZE = 100
SUGGESTION_LIMIT = 10


@dataclass(slots=True)
class ProposalFilters:
    status: str | None = None
    category: str | None = None
    organization_type: str | None = None
    search: str | None = None
    submitted_by: str | None = None


@dataclass(slots=True)
class PageRequest:
    page: int = 1
    page_size: int = 20
    sort_by: str = "created_at"
    sort_order: str = "desc"

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.page_size


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def filters_for_actor(filters: ProposalFilters, actor: Actor | None) -> ProposalFilters:
    """Submitters only ever see their own proposals."""
    if actor is not None and not has_permission(actor.role, PermissionCode.PROPOSAL_VIEW_ALL):
        filters.submitted_by = actor.id
    return filters


def _apply_filters(stmt, filters: ProposalFilters):
    if filters.status:
        stmt = stmt.where(Proposal.status == ProposalStatus(filters.status).value)
    if filters.category:
        stmt = stmt.where(Proposal.category == filters.category)
    if filters.organization_type:
        stmt = stmt.where(Proposal.organization_type == filters.organization_type)
    if filters.submitted_by:
        stmt = stmt.where(Proposal.submitted_by == filters.submitted_by)
    if filters.search and filters.search.strip():
        pattern = f"%{_escape_like(filters.search.strip())}%"
        stmt = stmt.where(
            or_(
                Proposal.event_name.ilike(pattern, escape="\\"),
                Proposal.organization_name.ilike(pattern, escape="\\"),
                Proposal.contact_person.ilike(pattern, escape="\\"),
                Proposal.contact_email.ilike(pattern, escape="\\"),
            )
        )
    return stmt


def _validate_page(page: PageRequest) -> None:
    errors = []
    if page.page < 1:
        errors.append({"loc": ["page"], "msg": "must be at least 1", "type": "value_error"})
    if page.page_size < 1 or page.page_size > MAX_PAGE_SIZE:
        errors.append(
            {"loc": ["page_size"], "msg": f"must be between 1 and {MAX_PAGE_SIZE}", "type": "value_error"}
        )
    if page.sort_by not in SORTABLE_FIELDS:
        errors.append(
            {
                "loc": ["sort_by"],
                "msg": f"must be one of {', '.join(sorted(SORTABLE_FIELDS))}",
                "type": "value_error",
            }
        )
    if page.sort_order not in ("asc", "desc"):
        errors.append({"loc": ["sort_order"], "msg": "must be asc or desc", "type": "value_error"})
    if errors:
        raise ValidationError("Invalid list parameters", errors=errors)


async def fetch_files(db: AsyncSession, proposal_uuid: str) -> tuple[dict[str, Any], str]:
    """Return ``(files, data_source)``; never raises for a failed lookup."""
    try:
        async with db.begin_nested():
            result = await db.execute(
                select(ProposalFileLink).where(ProposalFileLink.proposal_id == proposal_uuid)
            )
            link = result.scalar_one_or_none()
    except SQLAlchemyError:
        logger.warning(
            "File link lookup failed for proposal %s",
            proposal_uuid,
            exc_info=True,
            extra={"proposal_id": proposal_uuid, "reason": "file_link_lookup_failed"},
        )
        return {}, "degraded"
    if link is None or not link.files:
        return {}, "degraded"
    return dict(link.files), "hybrid"


async def _project(db: AsyncSession, proposal: Proposal) -> ProposalWithFilesDTO:
    files, data_source = await fetch_files(db, proposal.uuid)
    record = ProposalDTO.model_validate(proposal).model_dump()
    return ProposalWithFilesDTO(**record, files=files, data_source=data_source)


async def list_with_files(
    db: AsyncSession,
    filters: ProposalFilters,
    page: PageRequest,
) -> ProposalListResponse:
    _validate_page(page)
    count_stmt = _apply_filters(select(func.count()).select_from(Proposal), filters)
    total = int((await db.execute(count_stmt)).scalar_one())

    column = SORTABLE_FIELDS[page.sort_by]
    ordering = column.asc() if page.sort_order == "asc" else column.desc()
    stmt = (
        _apply_filters(select(Proposal), filters)
        .order_by(ordering.nulls_last(), Proposal.id.desc())
        .offset(page.offset)
        .limit(page.page_size)
    )
    result = await db.execute(stmt)
    proposals = result.scalars().all()

    items = [await _project(db, proposal) for proposal in proposals]
    return ProposalListResponse(
        items=items,
        total=total,
        page=page.page,
        page_size=page.page_size,
        total_pages=math.ceil(total / page.page_size) if total else 0,
    )


async def get_with_files(
    db: AsyncSession,
    proposal_id: str,
    *,
    actor: Actor | None = None,
) -> ProposalWithFilesDTO:
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    return await _project(db, proposal)


async def proposal_stats(db: AsyncSession) -> ProposalStatsResponse:
    result = await db.execute(
        select(Proposal.status, func.count()).group_by(Proposal.status)
    )
    counts = {status: int(count) for status, count in result.all()}
    reviewed = int(
        (
            await db.execute(
                select(func.count()).select_from(Proposal).where(Proposal.reviewed_at.is_not(None))
            )
        ).scalar_one()
    )
    recent = int(
        (
            await db.execute(
                select(func.count())
                .select_from(Proposal)
                .where(Proposal.created_at >= utcnow() - timedelta(days=7))
            )
        ).scalar_one()
    )
    return ProposalStatsResponse(
        total=sum(counts.values()),
        reviewed=reviewed,
        created_last_7_days=recent,
        **{status.value: counts.get(status.value, 0) for status in ProposalStatus},
    )


async def search_suggestions(
    db: AsyncSession,
    query: str,
    *,
    filters: ProposalFilters | None = None,
) -> SearchSuggestionsResponse:
    cleaned = (query or "").strip()
    if len(cleaned) < 2:
        return SearchSuggestionsResponse(query=cleaned, items=[])

    pattern = f"%{_escape_like(cleaned)}%"
    suggestions: list[str] = []
    for column in (Proposal.event_name, Proposal.organization_name, Proposal.contact_person):
        stmt = (
            _apply_filters(select(column), filters or ProposalFilters())
            .where(column.ilike(pattern, escape="\\"))
            .distinct()
            .order_by(column)
            .limit(SUGGESTION_LIMIT)
        )
        result = await db.execute(stmt)
        for value in result.scalars().all():
            if value and value not in suggestions:
                suggestions.append(value)
        if len(suggestions) >= SUGGESTION_LIMIT:
            break
    return SearchSuggestionsResponse(query=cleaned, items=suggestions[:SUGGESTION_LIMIT])

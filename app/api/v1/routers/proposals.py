from fastapi import APIRouter, Depends, File, Form, Query, Response, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.exceptions import ValidationError
from app.core.permissions import PermissionCode
from app.core.settings import settings
from app.schemas.audit import AuditLogEntry, ProposalHistoryResponse
from app.schemas.proposals import (
    CommentRequest,
    EventDetailsUpdate,
    FileLinkDTO,
    ProposalCreate,
    ProposalDebugResponse,
    ProposalDTO,
    ProposalListResponse,
    ProposalReviewRequest,
    ProposalStatsResponse,
    ProposalStatus,
    ProposalUpdate,
    ProposalWithFilesDTO,
    SearchSuggestionsResponse,
)
from app.services import audit, compliance, proposal_projection, proposals
from app.services.file_links import FileLinker
from app.services.proposal_store import get_accessible_proposal
from app.services.storage.adapter import StorageAdapter
from app.services.uploads import read_upload

router = APIRouter(prefix="/proposals", tags=["proposals"])


@router.post("", response_model=ProposalDTO, status_code=status.HTTP_201_CREATED)
async def create_proposal(
    payload: ProposalCreate,
    response: Response,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_CREATE)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalDTO:
    proposal, created = await proposals.create_proposal(db, payload, actor=actor)
    if not created:
        response.status_code = status.HTTP_200_OK
    return ProposalDTO.model_validate(proposal)


@router.get("", response_model=ProposalListResponse)
async def list_proposals(
    status_filter: ProposalStatus | None = Query(default=None, alias="status"),
    category: str | None = Query(default=None),
    organization_type: str | None = Query(default=None),
    search: str | None = Query(default=None, max_length=200),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=proposal_projection.MAX_PAGE_SIZE),
    sort_by: str = Query(default="created_at"),
    sort_order: str = Query(default="desc", pattern="^(asc|desc)$"),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalListResponse:
    filters = proposal_projection.filters_for_actor(
        proposal_projection.ProposalFilters(
            status=status_filter.value if status_filter else None,
            category=category,
            organization_type=organization_type,
            search=search,
        ),
        actor,
    )
    return await proposal_projection.list_with_files(
        db,
        filters,
        proposal_projection.PageRequest(
            page=page, page_size=page_size, sort_by=sort_by, sort_order=sort_order
        ),
    )


@router.get("/stats", response_model=ProposalStatsResponse)
async def proposal_stats(
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_VIEW_ALL)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalStatsResponse:
    return await proposal_projection.proposal_stats(db)


@router.get("/suggestions", response_model=SearchSuggestionsResponse)
async def search_suggestions(
    q: str = Query(default="", max_length=200),
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> SearchSuggestionsResponse:
    filters = proposal_projection.filters_for_actor(proposal_projection.ProposalFilters(), actor)
    return await proposal_projection.search_suggestions(db, q, filters=filters)


@router.get("/{proposal_id}", response_model=ProposalWithFilesDTO)
async def get_proposal(
    proposal_id: str,
    actor: deps.Actor = Depends(deps.get_current_actor),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalWithFilesDTO:
    return await proposal_projection.get_with_files(db, proposal_id, actor=actor)


@router.put("/{proposal_id}", response_model=ProposalDTO)
async def update_proposal(
    proposal_id: str,
    payload: ProposalUpdate,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_EDIT)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalDTO:
    proposal = await proposals.update_content(db, proposal_id, payload, actor=actor)
    return ProposalDTO.model_validate(proposal)


@router.put("/{proposal_id}/event-details", response_model=ProposalDTO)
async def save_event_details(
    proposal_id: str,
    payload: EventDetailsUpdate,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_EDIT)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalDTO:
    proposal = await proposals.save_event_details(db, proposal_id, payload, actor=actor)
    return ProposalDTO.model_validate(proposal)


@router.post("/{proposal_id}/submit", response_model=ProposalDTO)
async def submit_proposal(
    proposal_id: str,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_SUBMIT)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalDTO:
    proposal = await proposals.submit_proposal(db, proposal_id, actor=actor)
    return ProposalDTO.model_validate(proposal)


@router.post("/{proposal_id}/review", response_model=ProposalDTO)
async def review_proposal(
    proposal_id: str,
    payload: ProposalReviewRequest,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_REVIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalDTO:
    proposal = await proposals.review_proposal(db, proposal_id, payload, actor=actor)
    return ProposalDTO.model_validate(proposal)


@router.post("/{proposal_id}/comments", response_model=ProposalDTO)
async def add_comment(
    proposal_id: str,
    payload: CommentRequest,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_COMMENT)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalDTO:
    proposal = await proposals.add_review_comment(db, proposal_id, payload, actor=actor)
    return ProposalDTO.model_validate(proposal)


@router.post("/{proposal_id}/report", response_model=ProposalDTO)
async def submit_report(
    proposal_id: str,
    documents: list[UploadFile] = File(...),
    document_names: list[str] = Form(...),
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.REPORT_SUBMIT)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> ProposalDTO:
    if len(documents) > settings.max_files_per_request:
        message = f"At most {settings.max_files_per_request} documents per request"
        raise ValidationError(
            message, errors=[{"loc": ["documents"], "msg": message, "type": "too_long"}]
        )
    # Validate every file before anything is written
    uploads = [
        await read_upload(document, field=f"documents.{index}")
        for index, document in enumerate(documents)
    ]
    proposal = await compliance.submit_report(
        db, storage, proposal_id, document_names, uploads, actor=actor
    )
    return ProposalDTO.model_validate(proposal)


@router.delete("/{proposal_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_proposal(
    proposal_id: str,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_DELETE)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> Response:
    await proposals.delete_proposal(db, storage, proposal_id, actor=actor)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/{proposal_id}/history", response_model=ProposalHistoryResponse)
async def proposal_history(
    proposal_id: str,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.AUDIT_LOG_VIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ProposalHistoryResponse:
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    entries = await audit.audit_writer.history(db, proposal.uuid)
    return ProposalHistoryResponse(
        proposal_id=proposal.uuid,
        items=[AuditLogEntry.model_validate(entry) for entry in entries],
    )


@router.get("/{proposal_id}/debug", response_model=ProposalDebugResponse)
async def debug_proposal(
    proposal_id: str,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.PROPOSAL_DEBUG)),
    db: AsyncSession = Depends(deps.get_db_session),
    storage: StorageAdapter = Depends(deps.get_storage),
) -> ProposalDebugResponse:
    proposal = await get_accessible_proposal(db, proposal_id, actor)
    link = await FileLinker(db, storage).get_link(proposal.uuid)
    _, data_source = await proposal_projection.fetch_files(db, proposal.uuid)
    entries = await audit.audit_writer.history(db, proposal.uuid)
    return ProposalDebugResponse(
        proposal=ProposalDTO.model_validate(proposal),
        file_link=FileLinkDTO.model_validate(link) if link else None,
        data_source=data_source,
        history=[AuditLogEntry.model_validate(entry) for entry in entries],
    )

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.api import deps
from app.core.permissions import PermissionCode
from app.schemas.compliance import (
    ComplianceItemDTO,
    ComplianceListResponse,
    ComplianceStatsResponse,
    ComplianceStatusUpdate,
    ComplianceSweepResponse,
)
from app.schemas.proposals import ComplianceStatus
from app.services import compliance

router = APIRouter(prefix="/compliance", tags=["compliance"])


@router.get("", response_model=ComplianceListResponse)
async def list_compliance(
    compliance_status: ComplianceStatus | None = Query(default=None, alias="status"),
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.COMPLIANCE_VIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ComplianceListResponse:
    proposals = await compliance.list_compliance(db, compliance_status=compliance_status)
    return ComplianceListResponse(
        items=[ComplianceItemDTO.model_validate(proposal) for proposal in proposals],
        total=len(proposals),
    )


@router.get("/stats", response_model=ComplianceStatsResponse)
async def compliance_stats(
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.COMPLIANCE_VIEW)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ComplianceStatsResponse:
    return await compliance.compliance_stats(db)


@router.put("/{proposal_id}/status", response_model=ComplianceItemDTO)
async def update_compliance_status(
    proposal_id: str,
    payload: ComplianceStatusUpdate,
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.COMPLIANCE_MANAGE)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ComplianceItemDTO:
    proposal = await compliance.set_compliance_status(
        db, proposal_id, payload.status, comment=payload.comment, actor=actor
    )
    return ComplianceItemDTO.model_validate(proposal)


@router.post("/sweep", response_model=ComplianceSweepResponse)
async def run_sweep(
    actor: deps.Actor = Depends(deps.require_permission(PermissionCode.COMPLIANCE_SWEEP)),
    db: AsyncSession = Depends(deps.get_db_session),
) -> ComplianceSweepResponse:
    marked = await compliance.sweep_overdue(db)
    return ComplianceSweepResponse(marked=len(marked), proposal_ids=marked)

from fastapi import APIRouter

from app.api.v1.routers import (
    compliance,
    health,
    notifications,
    proposal_files,
    proposals,
)

api_router = APIRouter()
api_router.include_router(health.router)
api_router.include_router(proposals.router)
api_router.include_router(proposal_files.router)
api_router.include_router(compliance.router)
api_router.include_router(notifications.router)

__all__ = ["api_router"]

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.core.health import live_payload, ready_payload
from app.core.limiter import limiter

router = APIRouter(prefix="/health", tags=["health"])


@router.get("/live", summary="Service liveness check")
@limiter.exempt
async def health_live() -> dict:
    return await live_payload()


@router.get("/ready", summary="Database, Redis and blob store readiness")
@limiter.exempt
async def health_ready():
    payload = await ready_payload()
    if not payload["ready"]:
        # Error statuses bypass the envelope middleware
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={
                "code": "service_unavailable",
                "message": "Service Unavailable",
                "data": payload,
                "details": {},
            },
        )
    return payload

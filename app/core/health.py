from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import text
from starlette.concurrency import run_in_threadpool

from app.core.settings import settings
from app.db.session import engine
from app.services.storage.adapter import BlobStoreError
from app.services.storage.service import get_storage_adapter
from app.utils.redis_client import get_redis_client

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"
STORAGE_PROBE_KEY = "health/probe"


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


async def check_database() -> dict[str, str]:
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as exc:
        logger.warning("Database readiness check failed: %s", exc)
        return {"status": "error", "error": exc.__class__.__name__}
    return {"status": "ok"}


async def check_redis() -> dict[str, str]:
    try:
        await get_redis_client().ping()
    except Exception as exc:
        logger.warning("Redis readiness check failed: %s", exc)
        return {"status": "error", "error": exc.__class__.__name__}
    return {"status": "ok"}


async def check_storage() -> dict[str, str]:
    try:
        storage = get_storage_adapter()
        await run_in_threadpool(storage.object_exists, STORAGE_PROBE_KEY)
    except (BlobStoreError, ValueError) as exc:
        logger.warning("Blob store readiness check failed: %s", exc)
        return {"status": "error", "provider": settings.storage_provider, "error": exc.__class__.__name__}
    return {"status": "ok", "provider": settings.storage_provider}


async def live_payload() -> dict[str, str]:
    return {"status": "ok", "version": APP_VERSION, "timestamp": _timestamp()}


async def ready_payload() -> dict[str, Any]:
    checks = {
        "database": await check_database(),
        "redis": await check_redis(),
        "storage": await check_storage(),
    }
    ready = all(check.get("status") == "ok" for check in checks.values())
    return {
        "status": "ok" if ready else "degraded",
        "ready": ready,
        "environment": settings.environment,
        "version": APP_VERSION,
        "timestamp": _timestamp(),
        "checks": checks,
    }

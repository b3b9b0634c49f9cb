import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.core.settings import settings
from app.db.session import engine
from app.utils.redis_client import close_redis_client

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "Application startup (environment=%s, storage=%s)",
        settings.environment,
        settings.storage_provider,
    )
    yield
    logger.info("Application shutdown")
    await close_redis_client()
    await engine.dispose()

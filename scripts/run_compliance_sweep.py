#!/usr/bin/env python3
"""
Mark approved proposals whose compliance window has passed as overdue.

Meant for a scheduler (cron, Cloud Scheduler job). Safe to run repeatedly:
a proposal is marked overdue once and later runs skip it.

Usage:
    python -m scripts.run_compliance_sweep
"""

from __future__ import annotations

import asyncio
import logging

from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal, engine
from app.services.compliance import sweep_overdue

logger = logging.getLogger("scripts.run_compliance_sweep")


async def main() -> int:
    configure_logging()
    try:
        async with AsyncSessionLocal() as session:
            marked = await sweep_overdue(session)
    finally:
        await engine.dispose()
    logger.info("Compliance sweep finished: %s proposal(s) marked overdue", len(marked))
    return len(marked)


if __name__ == "__main__":
    asyncio.run(main())

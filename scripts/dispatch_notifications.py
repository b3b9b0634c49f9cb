#!/usr/bin/env python3
"""
Deliver due rows from the notification outbox.

Usage:
    python -m scripts.dispatch_notifications [--limit N] [--loop SECONDS]
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from app.core.logging import configure_logging
from app.db.session import AsyncSessionLocal, engine
from app.services.notifications import dispatch_pending

logger = logging.getLogger("scripts.dispatch_notifications")


async def run_once(limit: int | None) -> None:
    async with AsyncSessionLocal() as session:
        summary = await dispatch_pending(session, limit=limit)
    logger.info(
        "Dispatched notifications: claimed=%s sent=%s retried=%s failed=%s",
        summary.claimed,
        summary.sent,
        summary.retried,
        summary.failed,
    )


async def main(limit: int | None, loop_seconds: float | None) -> None:
    configure_logging()
    try:
        if not loop_seconds:
            await run_once(limit)
            return
        while True:
            await run_once(limit)
            await asyncio.sleep(loop_seconds)
    finally:
        await engine.dispose()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--limit", type=int, default=None, help="maximum rows per batch")
    parser.add_argument("--loop", type=float, default=None, help="keep polling every N seconds")
    args = parser.parse_args()
    asyncio.run(main(args.limit, args.loop))

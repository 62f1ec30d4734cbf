"""
Notarium Backend — Scheduled Publisher
========================================

What:  Background loop that publishes drafts whose scheduled time has passed.
How:   Started as an asyncio task in the app lifespan and cancelled on
       shutdown. Each pass uses its own session and transaction; a failed
       pass is logged and retried on the next tick.
"""

import asyncio
import logging
from typing import Optional

from notarium.config import settings
from notarium.database import async_session_factory, commit_session
from notarium.services.note_service import note_service

logger = logging.getLogger(__name__)


async def publish_once() -> int:
    async with async_session_factory() as session:
        published = await note_service.publish_due_drafts(session)
        await commit_session(session)
        return published


async def run_publisher(interval: Optional[int] = None) -> None:
    interval = interval or settings.publish_poll_interval
    logger.info("Scheduled publisher started (every %ds)", interval)
    while True:
        try:
            await publish_once()
        except Exception as e:
            # The task must outlive a failed pass (database down, driver errors)
            logger.error("Scheduled publish pass failed: %s", str(e), exc_info=True)
        await asyncio.sleep(interval)

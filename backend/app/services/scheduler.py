"""Background task scheduler: expires stale invitations once a day.

Uses FastAPI's lifespan context to start/stop an asyncio background loop.
No external dependencies (no Celery, no APScheduler): just a simple
asyncio.sleep loop that fires once per day at the configured hour.

Configuration:
    INVITATION_SWEEP_HOUR=3   (run at 03:00 UTC daily, via .env)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI
from sqlalchemy.exc import SQLAlchemyError

from app.config import settings
from app.database import async_session
from app.services.membership import expire_invitations
from app.utils.cache import close_redis

logger = logging.getLogger("civildefence.scheduler")


async def run_invitation_sweep() -> int:
    async with async_session() as db:
        try:
            expired = await expire_invitations(db)
            await db.commit()
        except Exception:
            await db.rollback()
            raise
    logger.info("Invitation sweep expired %d invitation(s)", expired)
    return expired


def seconds_until(hour: int, now: datetime) -> float:
    """Seconds from `now` until the next hour:00 UTC."""
    next_run = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    while True:
        wait_seconds = seconds_until(settings.invitation_sweep_hour, datetime.now(timezone.utc))
        logger.info("Next invitation sweep in %.0f seconds", wait_seconds)
        await asyncio.sleep(wait_seconds)

        try:
            await run_invitation_sweep()
        except SQLAlchemyError:
            logger.exception("Invitation sweep failed")

        # Small buffer to avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    task = asyncio.create_task(_scheduler_loop())
    logger.info("Invitation scheduler started")
    try:
        yield
    finally:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        await close_redis()
        logger.info("Invitation scheduler stopped")

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from zoneinfo import ZoneInfo

from sqlalchemy.ext.asyncio import async_sessionmaker

from app.config import Settings
from app.database.models import utcnow
from app.services.dispatcher import Dispatcher
from app.services.queue_processor import process_pending
from app.services.sweeper import sweep

logger = logging.getLogger(__name__)


def seconds_until_next_sweep(now: datetime, tz_name: str, hour: int = 0) -> float:
    """Seconds from `now` until the next `hour`:00 wall-clock time in `tz_name`."""
    local_now = now.astimezone(ZoneInfo(tz_name))
    next_run = local_now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if next_run <= local_now:
        next_run += timedelta(days=1)
    return (next_run.astimezone(timezone.utc) - now.astimezone(timezone.utc)).total_seconds()


async def run_worker(settings: Settings, session_factory: async_sessionmaker, dispatcher: Dispatcher):
    next_sweep = utcnow() + timedelta(
        seconds=seconds_until_next_sweep(utcnow(), settings.sweep_timezone, settings.sweep_hour)
    )
    logger.info("Next retention sweep at %s", next_sweep.isoformat())

    while True:
        try:
            states = await process_pending(session_factory, dispatcher)
            if states:
                logger.info("Processed %d queue items", len(states))
        except Exception:
            logger.exception("Queue polling failed")

        if utcnow() >= next_sweep:
            await sweep(
                session_factory,
                queue_retention_days=settings.queue_retention_days,
                token_retention_days=settings.token_retention_days,
            )
            next_sweep = utcnow() + timedelta(
                seconds=seconds_until_next_sweep(utcnow(), settings.sweep_timezone, settings.sweep_hour)
            )
            logger.info("Next retention sweep at %s", next_sweep.isoformat())

        await asyncio.sleep(settings.queue_poll_seconds)

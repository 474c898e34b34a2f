import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import List, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import async_sessionmaker

from app.database.models import AdminToken, NotificationQueueItem, utcnow

logger = logging.getLogger(__name__)


@dataclass
class SweepReport:
    queue_items_deleted: int = 0
    tokens_deleted: int = 0
    errors: List[str] = field(default_factory=list)


async def _sweep_queue(session_factory: async_sessionmaker, cutoff: datetime) -> int:
    async with session_factory() as db:
        result = await db.execute(
            select(NotificationQueueItem.id).where(
                NotificationQueueItem.processed == True,
                NotificationQueueItem.created_at < cutoff,
            )
        )
        item_ids = list(result.scalars().all())
        if not item_ids:
            return 0

        await db.execute(delete(NotificationQueueItem).where(NotificationQueueItem.id.in_(item_ids)))
        await db.commit()
        return len(item_ids)


async def _sweep_tokens(session_factory: async_sessionmaker, cutoff: datetime) -> int:
    # active or not: a token untouched for the retention window is presumed dead
    async with session_factory() as db:
        result = await db.execute(select(AdminToken.owner_id).where(AdminToken.updated_at < cutoff))
        owner_ids = list(result.scalars().all())
        if not owner_ids:
            return 0

        await db.execute(delete(AdminToken).where(AdminToken.owner_id.in_(owner_ids)))
        await db.commit()
        return len(owner_ids)


async def sweep(session_factory: async_sessionmaker, now: Optional[datetime] = None,
                queue_retention_days: int = 7, token_retention_days: int = 30) -> SweepReport:
    """
    Daily cleanup. Deletes processed queue items older than the queue window
    and admin tokens not updated within the token window. The two passes are
    independent: one failing is logged and does not stop the other.
    """
    now = now or utcnow()
    report = SweepReport()
    logger.info("Starting notification queue cleanup")

    try:
        report.queue_items_deleted = await _sweep_queue(session_factory, now - timedelta(days=queue_retention_days))
        logger.info("Deleted %d old notification queue items", report.queue_items_deleted)
    except Exception as e:
        logger.exception("Queue cleanup pass failed")
        report.errors.append(f"queue: {e}")

    try:
        report.tokens_deleted = await _sweep_tokens(session_factory, now - timedelta(days=token_retention_days))
        logger.info("Deleted %d old admin tokens", report.tokens_deleted)
    except Exception as e:
        logger.exception("Token cleanup pass failed")
        report.errors.append(f"tokens: {e}")

    logger.info("Notification queue cleanup completed")
    return report

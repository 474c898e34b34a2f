"""
Delivers notification_queue items.

An item is claimed by flipping processed false -> true in one conditional
UPDATE. Whoever flips it owns the send; everyone else sees zero rows and
skips. A claimed item is never retried: failures are written back as
failed=true with the error text.
"""
import logging
from datetime import datetime
from enum import Enum
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.database.models import NotificationQueueItem, utcnow
from app.models.notification import ADMIN_CHANNEL, ORDER_CHANNEL, NotificationMessage, QueuePayload
from app.services.dispatcher import Dispatcher
from app.services.notifier import broadcast_to_admins, send_to_token

logger = logging.getLogger(__name__)

INDIVIDUAL = "individual"
ALL_ADMINS = "all_admins"


class QueueState(str, Enum):
    DONE = "done"
    FAILED = "failed"
    SKIPPED = "skipped"


async def _claim(db: AsyncSession, item_id: str, now: datetime) -> bool:
    result = await db.execute(
        update(NotificationQueueItem)
        .where(NotificationQueueItem.id == item_id, NotificationQueueItem.processed == False)
        .values(processed=True, processed_at=now)
    )
    await db.commit()
    return result.rowcount == 1


async def _deliver(db: AsyncSession, dispatcher: Dispatcher, item: NotificationQueueItem) -> Optional[str]:
    """Returns an error message when the item could not be delivered."""
    payload = QueuePayload.model_validate(item.payload)
    channel = ADMIN_CHANNEL if payload.data.get("type") == "admin" else ORDER_CHANNEL
    message = NotificationMessage(title=payload.title, body=payload.body, data=payload.data, channel=channel)

    if item.target_type == INDIVIDUAL:
        if not payload.token:
            raise ValueError("Queue payload is missing a token")
        result = await send_to_token(db, dispatcher, message, payload.token)
        return result.first_error

    if item.target_type == ALL_ADMINS:
        await broadcast_to_admins(db, dispatcher, message)
        return None

    raise ValueError(f"Unsupported target type: {item.target_type}")


async def process_queue_item(db: AsyncSession, dispatcher: Dispatcher, item_id: str,
                             now: Optional[datetime] = None) -> QueueState:
    if not await _claim(db, item_id, now or utcnow()):
        logger.info("Queue item %s already processed, skipping", item_id)
        return QueueState.SKIPPED

    logger.info("Processing notification queue item: %s", item_id)
    item = await db.get(NotificationQueueItem, item_id)

    try:
        error = await _deliver(db, dispatcher, item)
    except Exception as e:
        logger.exception("Error processing notification queue item %s", item_id)
        await db.rollback()
        error = str(e) or e.__class__.__name__

    if error is None:
        logger.info("Notification queue item processed: %s", item_id)
        return QueueState.DONE

    await db.execute(
        update(NotificationQueueItem)
        .where(NotificationQueueItem.id == item_id)
        .values(failed=True, error=error)
    )
    await db.commit()
    logger.warning("Notification queue item %s failed: %s", item_id, error)
    return QueueState.FAILED


async def process_pending(session_factory: async_sessionmaker, dispatcher: Dispatcher,
                          limit: int = 50) -> List[QueueState]:
    """Drains unprocessed items oldest-first, one session per item."""
    async with session_factory() as db:
        result = await db.execute(
            select(NotificationQueueItem.id)
            .where(NotificationQueueItem.processed == False)
            .order_by(NotificationQueueItem.created_at)
            .limit(limit)
        )
        item_ids = list(result.scalars().all())

    states = []
    for item_id in item_ids:
        async with session_factory() as db:
            states.append(await process_queue_item(db, dispatcher, item_id))
    return states

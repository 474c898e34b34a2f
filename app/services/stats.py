from datetime import datetime, timedelta

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import AdminToken, NotificationQueueItem
from app.models.notification import NotificationStats


async def get_stats(db: AsyncSession, now: datetime) -> NotificationStats:
    active_tokens = await db.scalar(
        select(func.count()).select_from(AdminToken).where(AdminToken.is_active == True)
    )
    pending = await db.scalar(
        select(func.count()).select_from(NotificationQueueItem).where(NotificationQueueItem.processed == False)
    )
    last_24h = await db.scalar(
        select(func.count())
        .select_from(NotificationQueueItem)
        .where(
            NotificationQueueItem.processed == True,
            NotificationQueueItem.created_at > now - timedelta(hours=24),
        )
    )
    return NotificationStats(
        activeAdminTokens=active_tokens or 0,
        pendingNotifications=pending or 0,
        notificationsLast24h=last_24h or 0,
        lastUpdated=now,
    )

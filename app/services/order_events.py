# file: services/order_events.py
"""
Reactions to order document changes.

These run without a caller to answer, so errors are logged and swallowed.
"""
import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.order import OrderEvent
from app.services import token_store
from app.services.dispatcher import DeliveryResult, Dispatcher
from app.services.formatter import format_new_order, format_status_change
from app.services.notifier import broadcast_to_admins, send_to_token

logger = logging.getLogger(__name__)


async def on_order_created(db: AsyncSession, dispatcher: Dispatcher, order_id: str, order: OrderEvent,
                           currency: str = "EGP") -> Optional[DeliveryResult]:
    try:
        logger.info("New order created: %s", order_id)
        message = format_new_order(order_id, order, currency)
        return await broadcast_to_admins(db, dispatcher, message)
    except Exception:
        logger.exception("Error sending admin notification for order %s", order_id)
        return None


async def on_order_updated(db: AsyncSession, dispatcher: Dispatcher, order_id: str, before: OrderEvent,
                           after: OrderEvent) -> Optional[DeliveryResult]:
    """Tells the customer when their order is shipped, delivered or cancelled."""
    try:
        if before.order_status == after.order_status:
            return None

        new_status = after.order_status
        logger.info("Order %s status changed from %s to %s", order_id, before.order_status, new_status)

        message = format_status_change(order_id, new_status)
        if message is None:
            logger.info("No notification needed for status: %s", new_status)
            return None

        user = await token_store.get_user(db, after.user_id)
        if user is None:
            logger.info("User document not found: %s", after.user_id)
            return None
        if not user.fcm_token:
            logger.info("No FCM token found for user: %s", after.user_id)
            return None

        return await send_to_token(db, dispatcher, message, user.fcm_token)
    except Exception:
        logger.exception("Error sending customer notification for order %s", order_id)
        return None

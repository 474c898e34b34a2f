import logging

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import ADMIN_CHANNEL, NotificationMessage, Target
from app.services import token_store
from app.services.dispatcher import DeliveryResult, Dispatcher
from app.services.reconciler import reconcile

logger = logging.getLogger(__name__)


async def _dispatch(db: AsyncSession, dispatcher: Dispatcher, message: NotificationMessage,
                    target: Target) -> DeliveryResult:
    result = await dispatcher.send(message, target)
    if result.unregistered_tokens:
        # sends already went out; cleanup failures are only logged
        try:
            await reconcile(db, result.unregistered_tokens)
        except Exception:
            logger.exception("Error cleaning up %d invalid tokens", len(result.unregistered_tokens))
    return result


async def broadcast_to_admins(db: AsyncSession, dispatcher: Dispatcher,
                              message: NotificationMessage) -> DeliveryResult:
    """Sends to every active admin token. No admins is a successful no-op."""
    tokens = await token_store.get_active_admin_tokens(db)
    if not tokens:
        logger.info("No active admin tokens found for broadcast")
        return DeliveryResult()

    logger.info("Broadcasting '%s' to %d admin tokens", message.title, len(tokens))
    admin_message = message.model_copy(update={"channel": ADMIN_CHANNEL})
    return await _dispatch(db, dispatcher, admin_message, Target.for_tokens(tokens))


async def send_to_token(db: AsyncSession, dispatcher: Dispatcher, message: NotificationMessage,
                        token: str) -> DeliveryResult:
    return await _dispatch(db, dispatcher, message, Target.for_token(token))


async def send_to_topic(dispatcher: Dispatcher, message: NotificationMessage, topic: str) -> DeliveryResult:
    return await dispatcher.send(message, Target.for_topic(topic))

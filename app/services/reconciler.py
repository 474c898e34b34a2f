import logging
from typing import Iterable

from sqlalchemy import delete, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import AdminToken, User
from app.services.dispatcher import mask_token

logger = logging.getLogger(__name__)


async def reconcile(db: AsyncSession, invalid_tokens: Iterable[str]) -> int:
    """
    Forgets tokens FCM reported as unregistered.

    Deletes every admin_tokens row holding one of the tokens and clears the
    token from any user profile, all in one commit. Tokens that are already
    gone are skipped silently. Returns how many distinct tokens were handled.
    """
    tokens = sorted({token for token in invalid_tokens if token})
    if not tokens:
        return 0

    try:
        for token in tokens:
            await db.execute(delete(AdminToken).where(AdminToken.token == token))
            await db.execute(
                update(User)
                .where(User.fcm_token == token)
                .values(fcm_token=None, token_updated_at=None)
            )
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Cleaned up %d invalid tokens: %s", len(tokens), ", ".join(mask_token(t) for t in tokens))
    return len(tokens)

# file: services/operations.py
"""
Authenticated operations called from the app: token registration and the
admin panel's manual send, test send and stats.

Each returns an Outcome; controllers turn it into a response with `unwrap`.
Admin checks run before anything is written or sent.
"""
import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.models.notification import (
    ActionResponse,
    AdminTestNotificationRequest,
    ManualNotificationRequest,
)
from app.services import token_store
from app.services.dispatcher import DeliveryResult, Dispatcher
from app.services.firebase_auth import Caller
from app.services.formatter import format_manual, format_test
from app.services.notifier import broadcast_to_admins, send_to_token
from app.services.results import (
    Internal,
    InvalidArgument,
    NotFound,
    Ok,
    Outcome,
    PermissionDenied,
)
from app.services.stats import get_stats

logger = logging.getLogger(__name__)


async def _require_admin(db: AsyncSession, uid: str, action: str) -> Optional[PermissionDenied]:
    user = await token_store.get_user(db, uid)
    if user is None or not user.is_admin:
        return PermissionDenied(f"Only admins can {action}.")
    return None


def _response(message: str, result: DeliveryResult, broadcast: bool = False) -> ActionResponse:
    return ActionResponse(
        success=broadcast or result.failure_count == 0,
        message=message,
        successCount=result.success_count,
        failureCount=result.failure_count,
    )


async def register_admin_token(db: AsyncSession, caller: Caller, token: Optional[str]) -> Outcome:
    if not token:
        return InvalidArgument("Token is required.")

    denied = await _require_admin(db, caller.uid, "update admin tokens")
    if denied:
        return denied

    await token_store.upsert_admin_token(db, caller.uid, token)
    logger.info("Admin token updated for user: %s", caller.uid)
    return Ok(ActionResponse(success=True, message="Admin token updated successfully"))


async def remove_admin_token(db: AsyncSession, caller: Caller) -> Outcome:
    record = await token_store.deactivate_admin_token(db, caller.uid)
    if record is None:
        return NotFound("Admin token not found.")

    logger.info("Admin token deactivated for user: %s", caller.uid)
    return Ok(ActionResponse(success=True, message="Admin token removed successfully"))


async def register_user_token(db: AsyncSession, caller: Caller, token: Optional[str]) -> Outcome:
    if not token:
        return InvalidArgument("Token is required.")

    await token_store.set_user_token(db, caller.uid, token, email=caller.email)
    return Ok(ActionResponse(success=True, message="FCM token updated successfully"))


async def send_manual_notification(db: AsyncSession, dispatcher: Dispatcher, caller: Caller,
                                   request: ManualNotificationRequest, now: datetime) -> Outcome:
    denied = await _require_admin(db, caller.uid, "send manual notifications")
    if denied:
        return denied

    if not request.title or not request.body:
        return InvalidArgument("Title and body are required.")

    message = format_manual(request.title, request.body, sent_by=caller.uid, now=now)

    try:
        if request.targetType == "all_admins":
            result = await broadcast_to_admins(db, dispatcher, message)
            return Ok(_response("Notification sent to all admins", result, broadcast=True))

        if request.targetType == "specific_user" and request.targetUserId:
            user = await token_store.get_user(db, request.targetUserId)
            if user is None:
                return NotFound("Target user not found.")
            if not user.fcm_token:
                return NotFound("User does not have an FCM token.")

            result = await send_to_token(db, dispatcher, message, user.fcm_token)
            return Ok(_response("Notification sent to specific user", result))
    except Exception as e:
        logger.exception("Error sending manual notification")
        return Internal(f"Error sending manual notification: {e}")

    return InvalidArgument("Invalid target type or missing target user ID.")


async def send_test_notification(db: AsyncSession, dispatcher: Dispatcher, caller: Caller,
                                 request: AdminTestNotificationRequest, now: datetime) -> Outcome:
    denied = await _require_admin(db, caller.uid, "send test notifications")
    if denied:
        return denied

    if request.targetType not in ("self", "all_admins"):
        return InvalidArgument('Invalid target type. Use "self" or "all_admins".')

    message = format_test(request.targetType, now, title=request.title, body=request.body)

    try:
        if request.targetType == "self":
            record = await token_store.get_admin_token(db, caller.uid)
            if record is None or not record.token:
                return NotFound("Admin token not found.")

            result = await send_to_token(db, dispatcher, message, record.token)
            return Ok(_response("Test notification sent successfully", result))

        result = await broadcast_to_admins(db, dispatcher, message)
        return Ok(_response("Test broadcast sent to all admins", result, broadcast=True))
    except Exception as e:
        logger.exception("Error sending test notification")
        return Internal(f"Error sending test notification: {e}")


async def get_notification_stats(db: AsyncSession, caller: Caller, now: datetime) -> Outcome:
    denied = await _require_admin(db, caller.uid, "view notification statistics")
    if denied:
        return denied

    try:
        return Ok(await get_stats(db, now))
    except Exception as e:
        logger.exception("Error getting notification stats")
        return Internal(f"Error getting notification statistics: {e}")

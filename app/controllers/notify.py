# file: controllers/notify.py

import logging
import traceback
from typing import Any

from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import Settings, get_settings
from app.database.connection import get_db
from app.database.models import utcnow
from app.models.notification import (
    GENERAL_CHANNEL,
    ORDER_CHANNEL,
    CustomerNotificationRequest,
    NotificationMessage,
)
from app.models.order import OrderStatusUpdateRequest
from app.services import token_store
from app.services.dispatcher import Dispatcher
from app.services.firebase_app import get_dispatcher
from app.services.formatter import (
    UnrecognizedPayloadError,
    format_admin_request,
    format_status_change,
    parse_admin_request,
)
from app.services.notifier import broadcast_to_admins, send_to_token, send_to_topic

logger = logging.getLogger(__name__)

router = APIRouter()

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

NOTIFY_PATHS = ("/notify-admins", "/notify-customer", "/notify-order-status")

CUSTOMER_EXAMPLE = {
    "title": "Order Confirmed",
    "body": "Your order #12345 has been confirmed!",
    "data": {"orderId": "12345", "type": "order_confirmation"},
    "userId": "optional-user-id",
}


def _error(status_code: int, error: str, **extra: Any) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "error": error, **extra},
                        headers=CORS_HEADERS)


def _server_error(error: str, exc: Exception) -> JSONResponse:
    return _error(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        error,
        details=str(exc),
        stack=traceback.format_exc(),
        timestamp=utcnow().isoformat(),
    )


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


async def preflight():
    return Response(status_code=status.HTTP_200_OK, headers=CORS_HEADERS)


async def method_not_allowed():
    return _error(status.HTTP_405_METHOD_NOT_ALLOWED, "Method not allowed. Use POST.")


for _path in NOTIFY_PATHS:
    router.add_api_route(_path, preflight, methods=["OPTIONS"], include_in_schema=False)
    router.add_api_route(_path, method_not_allowed, methods=["GET", "PUT", "PATCH", "DELETE"],
                         include_in_schema=False)


@router.post("/notify-admins")
async def notify_admins(
        request: Request,
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
        settings: Settings = Depends(get_settings),
):
    """
    Broadcasts a notification to every active admin device.
    Accepts a direct {title, body, data} message or a new-order event in
    either of the two order shapes the apps send.
    """
    payload = await _read_json(request)
    try:
        admin_request = parse_admin_request(payload)
    except UnrecognizedPayloadError as e:
        logger.warning("Error parsing admin notification request: %s", e)
        return _error(
            status.HTTP_400_BAD_REQUEST,
            "Invalid request format",
            details=str(e),
            received=payload,
            expectedFormats=e.expected_formats,
        )

    try:
        message = format_admin_request(admin_request, settings.currency)
        message = message.model_copy(update={"data": {**message.data, "timestamp": utcnow().isoformat()}})
        logger.info("Processing admin notification: %s", message.title)

        result = await broadcast_to_admins(db, dispatcher, message)
        admin_count = len(result.outcomes)
        logger.info("Final results: %d successful, %d failed", result.success_count, result.failure_count)

        return JSONResponse(
            content={
                "success": True,
                "message": "Admin notifications processed" if admin_count else "No active admin tokens found",
                "successCount": result.success_count,
                "failureCount": result.failure_count,
                "adminCount": admin_count,
                "results": result.results(),
            },
            headers=CORS_HEADERS,
        )
    except Exception as e:
        logger.exception("Error sending admin notification")
        return _server_error("Failed to send notifications", e)


@router.post("/notify-customer")
async def notify_customer(
        request: Request,
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
        settings: Settings = Depends(get_settings),
):
    """Sends to one customer's device when userId is given, otherwise to the customers topic."""
    payload = await _read_json(request)
    try:
        body = CustomerNotificationRequest.model_validate(payload if isinstance(payload, dict) else {})
    except ValidationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request format", details=str(e),
                      example=CUSTOMER_EXAMPLE)

    if not body.title or not body.body:
        return _error(status.HTTP_400_BAD_REQUEST, "Missing required fields: title and body",
                      example=CUSTOMER_EXAMPLE)

    try:
        now = utcnow()
        data = {**(body.data or {}), "timestamp": now.isoformat(), "type": "customer"}

        if body.userId:
            user = await token_store.get_user(db, body.userId)
            if user is None:
                return _error(status.HTTP_404_NOT_FOUND, "User not found")
            if not user.fcm_token:
                return _error(status.HTTP_404_NOT_FOUND, "User has no FCM token")

            message = NotificationMessage(title=body.title, body=body.body, data=data, channel=ORDER_CHANNEL)
            result = await send_to_token(db, dispatcher, message, user.fcm_token)
        else:
            message = NotificationMessage(title=body.title, body=body.body, data=data, channel=GENERAL_CHANNEL)
            result = await send_to_topic(dispatcher, message, settings.customer_topic)

        delivered = result.failure_count == 0
        return JSONResponse(
            content={
                "success": delivered,
                "messageId": result.message_id,
                "message": "Customer notification sent successfully" if delivered
                else "Customer notification could not be delivered",
                "sentTo": "specific_user" if body.userId else "all_customers",
                "successCount": result.success_count,
                "failureCount": result.failure_count,
                "results": result.results(),
                "timestamp": now.isoformat(),
            },
            headers=CORS_HEADERS,
        )
    except Exception as e:
        logger.exception("Error sending customer notification")
        return _server_error("Failed to send customer notification", e)


@router.post("/notify-order-status")
async def notify_order_status(
        request: Request,
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """HTTP form of the order status trigger, for order systems that cannot emit document events."""
    payload = await _read_json(request)
    try:
        body = OrderStatusUpdateRequest.model_validate(payload if isinstance(payload, dict) else {})
    except ValidationError as e:
        return _error(status.HTTP_400_BAD_REQUEST, "Invalid request format", details=str(e))

    try:
        logger.info("Processing status update notification: %s - %s -> %s",
                    body.orderId, body.oldStatus, body.newStatus)

        message = format_status_change(body.orderId, body.newStatus)
        if message is None:
            return JSONResponse(
                content={"success": True, "message": f"No notification needed for status: {body.newStatus}"},
                headers=CORS_HEADERS,
            )

        user = await token_store.get_user(db, body.userId)
        if user is None:
            return _error(status.HTTP_404_NOT_FOUND, "User not found")
        if not user.fcm_token:
            return JSONResponse(
                content={"success": True, "message": "User does not have FCM token"},
                headers=CORS_HEADERS,
            )

        result = await send_to_token(db, dispatcher, message, user.fcm_token)
        return JSONResponse(
            content={
                "success": result.failure_count == 0,
                "message": "Customer notification sent successfully" if result.failure_count == 0
                else "Customer notification could not be delivered",
                "messageId": result.message_id,
                "results": result.results(),
            },
            headers=CORS_HEADERS,
        )
    except Exception as e:
        logger.exception("Error sending order status notification")
        return _server_error("Failed to send notification", e)

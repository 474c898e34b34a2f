"""
Turns domain events into notification messages.

Every function here is pure: same inputs, same message. Timestamps are
passed in by the caller.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from app.models.notification import (
    ADMIN_CHANNEL,
    ADMIN_REQUEST_SHAPES,
    ORDER_CHANNEL,
    AdminNotificationRequest,
    DirectNotification,
    NestedOrderEventNotification,
    NotificationMessage,
    OrderEventNotification,
)
from app.models.order import NOTIFIABLE_STATUSES, OrderEvent

NEW_ORDER_TITLE = "🛒 New Order Received!"

STATUS_TEMPLATES = {
    "Shipped": ("🚚 Order Shipped", "Your order #{order} has been shipped and is on its way!"),
    "Delivered": ("✅ Order Delivered", "Your order #{order} has been delivered successfully!"),
    "Cancelled": ("❌ Order Cancelled", "Your order #{order} has been cancelled."),
}

TEST_DEFAULTS = {
    "self": ("🧪 Test Notification", "This is a test notification sent from the admin panel."),
    "all_admins": ("📢 Admin Broadcast Test", "This is a test broadcast to all administrators."),
}

SUPPORTED_SHAPES: List[str] = [shape.shape for shape in ADMIN_REQUEST_SHAPES]


class UnrecognizedPayloadError(ValueError):
    """Raised when an admin-notify body matches none of the supported shapes."""

    def __init__(self, received_keys: List[str]):
        self.received_keys = received_keys
        self.expected_formats = list(SUPPORTED_SHAPES)
        super().__init__(f"Unable to parse order data. Received keys: {', '.join(received_keys)}")


def short_order_id(order_id: str) -> str:
    return order_id[:8].upper()


def _plain_number(value: float) -> str:
    return format(value, "f").rstrip("0").rstrip(".")


def format_new_order(order_id: str, order: OrderEvent, currency: str = "EGP") -> NotificationMessage:
    customer = order.customer_email or "Unknown Customer"
    body = (
        f"Order #{short_order_id(order_id)}\n"
        f"Customer: {customer}\n"
        f"Total: {currency} {order.total_price:.2f}\n"
        f"Items: {order.item_count}"
    )
    return NotificationMessage(
        title=NEW_ORDER_TITLE,
        body=body,
        data={
            "type": "admin",
            "action": "new_order",
            "orderId": order_id,
            "customerEmail": customer,
            "totalPrice": _plain_number(order.total_price),
            "itemCount": str(order.item_count),
            "orderStatus": order.order_status,
        },
        channel=ADMIN_CHANNEL,
    )


def format_status_change(order_id: str, new_status: Optional[str]) -> Optional[NotificationMessage]:
    """Returns None for statuses customers are not told about."""
    if new_status not in NOTIFIABLE_STATUSES:
        return None

    title, template = STATUS_TEMPLATES[new_status]
    return NotificationMessage(
        title=title,
        body=template.format(order=short_order_id(order_id)),
        data={
            "type": "order",
            "action": "view_order",
            "orderId": order_id,
            "newStatus": new_status,
        },
        channel=ORDER_CHANNEL,
    )


def format_manual(title: str, body: str, sent_by: str, now: datetime) -> NotificationMessage:
    return NotificationMessage(
        title=title,
        body=body,
        data={
            "type": "manual",
            "action": "general",
            "timestamp": now.isoformat(),
            "sentBy": sent_by,
        },
    )


def format_test(target_type: str, now: datetime, title: Optional[str] = None,
                body: Optional[str] = None) -> NotificationMessage:
    default_title, default_body = TEST_DEFAULTS[target_type]
    return NotificationMessage(
        title=title or default_title,
        body=body or default_body,
        data={"type": "test", "timestamp": now.isoformat()},
        channel=ADMIN_CHANNEL,
    )


def format_direct(title: str, body: str, data: Optional[Dict[str, Any]] = None,
                  channel: str = ADMIN_CHANNEL) -> NotificationMessage:
    return NotificationMessage(title=title, body=body, data=data or {}, channel=channel)


def parse_admin_request(payload: Any) -> AdminNotificationRequest:
    """
    Matches an admin-notify body against the supported shapes, in order.
    Raises UnrecognizedPayloadError listing the expected formats when none fits.
    """
    if not isinstance(payload, dict):
        raise UnrecognizedPayloadError([])

    for shape in ADMIN_REQUEST_SHAPES:
        try:
            return shape.model_validate(payload)
        except ValidationError:
            continue

    raise UnrecognizedPayloadError(sorted(payload.keys()))


def format_admin_request(request: AdminNotificationRequest, currency: str = "EGP") -> NotificationMessage:
    if isinstance(request, DirectNotification):
        return format_direct(request.title, request.body, request.data)
    if isinstance(request, OrderEventNotification):
        return format_new_order(request.orderId, request.orderData, currency)
    if isinstance(request, NestedOrderEventNotification):
        return format_new_order(request.data.orderId, request.data.orderData, currency)
    raise TypeError(f"Unsupported admin request: {type(request).__name__}")

# file: models/notification.py

import json
from datetime import datetime
from typing import Any, ClassVar, Dict, List, Optional, Union

from pydantic import BaseModel, Field, field_validator, model_validator

from app.models.order import OrderEvent, order_id_to_str

ADMIN_CHANNEL = "admin_notifications"
ORDER_CHANNEL = "order_notifications"
GENERAL_CHANNEL = "general_notifications"


def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value
    if isinstance(value, (bool, dict, list)):
        return json.dumps(value)
    return str(value)


class NotificationMessage(BaseModel):
    title: str
    body: str
    data: Dict[str, str] = Field(default_factory=dict)
    channel: str = ORDER_CHANNEL

    # FCM data payloads only carry strings
    @field_validator("data", mode="before")
    def validate_data(cls, v):
        if not v:
            return {}
        return {str(key): _stringify(value) for key, value in v.items() if value is not None}


class Target(BaseModel):
    """Exactly one of a single token, a list of tokens or a topic."""
    token: Optional[str] = None
    tokens: Optional[List[str]] = None
    topic: Optional[str] = None

    @model_validator(mode="after")
    def validate_single_target(self):
        chosen = [name for name in ("token", "tokens", "topic") if getattr(self, name) is not None]
        if len(chosen) != 1:
            raise ValueError("Target must be exactly one of token, tokens or topic")
        return self

    @classmethod
    def for_token(cls, token: str) -> "Target":
        return cls(token=token)

    @classmethod
    def for_tokens(cls, tokens: List[str]) -> "Target":
        return cls(tokens=list(tokens))

    @classmethod
    def for_topic(cls, topic: str) -> "Target":
        return cls(topic=topic)


# --- Admin-notify request shapes ---

class DirectNotification(BaseModel):
    shape: ClassVar[str] = "1. {title, body, data}"

    title: str = Field(min_length=1)
    body: str = Field(min_length=1)
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    def validate_data(cls, v):
        return v or {}


class OrderEventNotification(BaseModel):
    shape: ClassVar[str] = "2. {orderId, orderData: {totalPrice, userEmail, items, orderStatus}}"

    orderId: str = Field(min_length=1)
    orderData: OrderEvent

    @field_validator("orderId", mode="before")
    def validate_order_id(cls, v):
        return order_id_to_str(v)

    @model_validator(mode="before")
    @classmethod
    def fill_order_data(cls, values):
        # order fields may arrive under orderData, under data, or at the root
        if isinstance(values, dict) and not values.get("orderData"):
            fallback = values.get("data")
            if not isinstance(fallback, dict) or not fallback:
                fallback = values
            values = {**values, "orderData": fallback}
        return values


class NestedOrderData(BaseModel):
    orderId: str = "unknown"
    orderData: OrderEvent

    @field_validator("orderId", mode="before")
    def validate_order_id(cls, v):
        return order_id_to_str(v)

    @model_validator(mode="before")
    @classmethod
    def merge_summary_fields(cls, values):
        if isinstance(values, dict) and isinstance(values.get("orderData"), dict):
            summary = {
                key: values[key]
                for key in ("customerEmail", "total", "itemCount", "userId")
                if values.get(key) is not None
            }
            values = {**values, "orderData": {**summary, **values["orderData"]}}
        return values


class NestedOrderEventNotification(BaseModel):
    shape: ClassVar[str] = "3. {data: {orderId, customerName, customerEmail, total, itemCount, orderData}}"

    data: NestedOrderData


AdminNotificationRequest = Union[DirectNotification, OrderEventNotification, NestedOrderEventNotification]

ADMIN_REQUEST_SHAPES = (DirectNotification, OrderEventNotification, NestedOrderEventNotification)


class CustomerNotificationRequest(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    data: Optional[Dict[str, Any]] = None
    userId: Optional[str] = None


# --- Queue ---

class QueuePayload(BaseModel):
    token: Optional[str] = None
    title: str
    body: str
    data: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("data", mode="before")
    def validate_data(cls, v):
        return v or {}


# --- Callable operations ---

class TokenRegistration(BaseModel):
    token: Optional[str] = None


class ManualNotificationRequest(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    targetType: Optional[str] = None
    targetUserId: Optional[str] = None


class AdminTestNotificationRequest(BaseModel):
    title: Optional[str] = None
    body: Optional[str] = None
    targetType: Optional[str] = None


class ActionResponse(BaseModel):
    success: bool
    message: str
    successCount: Optional[int] = None
    failureCount: Optional[int] = None


class NotificationStats(BaseModel):
    activeAdminTokens: int
    pendingNotifications: int
    notificationsLast24h: int
    lastUpdated: datetime

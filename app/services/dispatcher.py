"""
Sends formatted messages through FCM and reports per-recipient outcomes.

The vendor SDK sits behind `PushGateway` so the dispatcher can be driven by
an in-memory gateway in tests. Token lists are sent one token at a time: a
bad token only fails its own entry, never the batch.
"""
import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Protocol

import firebase_admin
from firebase_admin import exceptions, messaging

from app.models.notification import GENERAL_CHANNEL, NotificationMessage, Target

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (
    exceptions.UnavailableError,
    exceptions.InternalError,
    exceptions.DeadlineExceededError,
    exceptions.ResourceExhaustedError,
)


def mask_token(token: str) -> str:
    return token[:20] + "..."


class FailureKind(str, Enum):
    UNREGISTERED = "unregistered"
    TRANSIENT = "transient"
    REJECTED = "rejected"


def classify_error(error: exceptions.FirebaseError) -> FailureKind:
    if isinstance(error, messaging.UnregisteredError):
        return FailureKind.UNREGISTERED
    if isinstance(error, TRANSIENT_ERRORS):
        return FailureKind.TRANSIENT
    return FailureKind.REJECTED


@dataclass
class TokenOutcome:
    recipient: str
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    failure_kind: Optional[FailureKind] = None

    def as_dict(self) -> Dict[str, Any]:
        entry: Dict[str, Any] = {"token": mask_token(self.recipient), "success": self.success}
        if self.success:
            entry["messageId"] = self.message_id
        else:
            entry["error"] = self.error
            entry["failureKind"] = self.failure_kind.value if self.failure_kind else None
        return entry


@dataclass
class DeliveryResult:
    outcomes: List[TokenOutcome] = field(default_factory=list)

    @property
    def success_count(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.success)

    @property
    def failure_count(self) -> int:
        return len(self.outcomes) - self.success_count

    @property
    def unregistered_tokens(self) -> List[str]:
        return [
            outcome.recipient
            for outcome in self.outcomes
            if outcome.failure_kind is FailureKind.UNREGISTERED
        ]

    @property
    def message_id(self) -> Optional[str]:
        return next((outcome.message_id for outcome in self.outcomes if outcome.success), None)

    @property
    def first_error(self) -> Optional[str]:
        return next((outcome.error for outcome in self.outcomes if not outcome.success), None)

    def results(self) -> List[Dict[str, Any]]:
        return [outcome.as_dict() for outcome in self.outcomes]


class PushGateway(Protocol):
    async def send(self, message: messaging.Message) -> str:
        ...


class FirebasePushGateway:
    """PushGateway backed by firebase_admin.messaging, bound to one app handle."""

    def __init__(self, app: Optional[firebase_admin.App] = None, dry_run: bool = False):
        self._app = app
        self._dry_run = dry_run

    async def send(self, message: messaging.Message) -> str:
        # messaging.send blocks on HTTP
        return await asyncio.to_thread(messaging.send, message, self._dry_run, self._app)


def build_message(message: NotificationMessage, token: Optional[str] = None,
                  topic: Optional[str] = None) -> messaging.Message:
    priority = "default" if message.channel == GENERAL_CHANNEL else "high"
    return messaging.Message(
        notification=messaging.Notification(title=message.title, body=message.body),
        data=dict(message.data),
        token=token,
        topic=topic,
        android=messaging.AndroidConfig(
            notification=messaging.AndroidNotification(
                channel_id=message.channel,
                priority=priority,
                sound="default",
                icon="ic_launcher",
            ),
        ),
        apns=messaging.APNSConfig(
            payload=messaging.APNSPayload(
                aps=messaging.Aps(
                    alert=messaging.ApsAlert(title=message.title, body=message.body),
                    badge=1,
                    sound="default",
                ),
            ),
        ),
    )


class Dispatcher:
    def __init__(self, gateway: PushGateway):
        self._gateway = gateway

    async def send(self, message: NotificationMessage, target: Target) -> DeliveryResult:
        result = DeliveryResult()

        if target.topic is not None:
            result.outcomes.append(await self._deliver(target.topic, build_message(message, topic=target.topic)))
            return result

        tokens = [target.token] if target.token is not None else target.tokens
        for token in tokens:
            result.outcomes.append(await self._deliver(token, build_message(message, token=token)))

        logger.info(
            "Dispatched '%s': %d successful, %d failed",
            message.title, result.success_count, result.failure_count,
        )
        return result

    async def _deliver(self, recipient: str, fcm_message: messaging.Message) -> TokenOutcome:
        try:
            message_id = await self._gateway.send(fcm_message)
        except exceptions.FirebaseError as error:
            kind = classify_error(error)
            logger.warning("Failed to send to %s (%s): %s", mask_token(recipient), kind.value, error)
            return TokenOutcome(recipient=recipient, success=False, error=str(error), failure_kind=kind)

        logger.debug("Sent to %s: %s", mask_token(recipient), message_id)
        return TokenOutcome(recipient=recipient, success=True, message_id=message_id)

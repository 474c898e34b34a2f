from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.connection import get_db
from app.database.models import utcnow
from app.models.notification import (
    ActionResponse,
    AdminTestNotificationRequest,
    ManualNotificationRequest,
    NotificationStats,
)
from app.services import operations
from app.services.dispatcher import Dispatcher
from app.services.firebase_app import get_dispatcher
from app.services.firebase_auth import Caller, get_caller
from app.services.results import unwrap

router = APIRouter()


@router.post("/notifications/manual", response_model=ActionResponse)
async def send_manual_notification(
        request: ManualNotificationRequest,
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
):
    """
    Sends a notification typed in the admin panel, either to all admins
    (targetType=all_admins) or to one user (targetType=specific_user).
    """
    return unwrap(await operations.send_manual_notification(db, dispatcher, caller, request, utcnow()))


@router.post("/notifications/test", response_model=ActionResponse)
async def send_test_notification(
        request: AdminTestNotificationRequest,
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
):
    return unwrap(await operations.send_test_notification(db, dispatcher, caller, request, utcnow()))


@router.get("/notifications/stats", response_model=NotificationStats)
async def get_notification_stats(
        caller: Caller = Depends(get_caller),
        db: AsyncSession = Depends(get_db),
):
    return unwrap(await operations.get_notification_stats(db, caller, utcnow()))

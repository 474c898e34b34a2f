# file: controllers/events.py
"""
Push endpoints for the event system: order document changes, queue item
creation and the daily retention sweep. Handlers never fail the delivery;
errors are logged by the services and reported in the body.
"""
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Header
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from app.database.connection import get_db, get_session_factory
from app.models.order import OrderEvent, OrderUpdateEvent
from app.services.dispatcher import Dispatcher
from app.services.firebase_app import get_dispatcher
from app.services.order_events import on_order_created, on_order_updated
from app.services.queue_processor import process_queue_item
from app.services.sweeper import sweep

router = APIRouter()


def verify_event_key(x_api_key: Optional[str] = Header(None), settings: Settings = Depends(get_settings)):
    if not settings.events_api_key or x_api_key != settings.events_api_key:
        raise HTTPException(status_code=401, detail="Invalid event key")


@router.post("/orders/{order_id}/created", dependencies=[Depends(verify_event_key)])
async def order_created(
        order_id: str,
        order: OrderEvent,
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
        settings: Settings = Depends(get_settings),
):
    result = await on_order_created(db, dispatcher, order_id, order, settings.currency)
    if result is None:
        return {"status": "error"}
    return {"status": "ok", "successCount": result.success_count, "failureCount": result.failure_count}


@router.post("/orders/{order_id}/updated", dependencies=[Depends(verify_event_key)])
async def order_updated(
        order_id: str,
        change: OrderUpdateEvent,
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
):
    result = await on_order_updated(db, dispatcher, order_id, change.before, change.after)
    if result is None:
        return {"status": "skipped"}
    return {"status": "ok", "successCount": result.success_count, "failureCount": result.failure_count}


@router.post("/notification-queue/{queue_id}/created", dependencies=[Depends(verify_event_key)])
async def queue_item_created(
        queue_id: str,
        db: AsyncSession = Depends(get_db),
        dispatcher: Dispatcher = Depends(get_dispatcher),
):
    state = await process_queue_item(db, dispatcher, queue_id)
    return {"status": state.value}


@router.post("/retention-sweep", dependencies=[Depends(verify_event_key)])
async def retention_sweep(
        session_factory: async_sessionmaker = Depends(get_session_factory),
        settings: Settings = Depends(get_settings),
):
    report = await sweep(
        session_factory,
        queue_retention_days=settings.queue_retention_days,
        token_retention_days=settings.token_retention_days,
    )
    return {
        "status": "error" if report.errors else "ok",
        "queueItemsDeleted": report.queue_items_deleted,
        "tokensDeleted": report.tokens_deleted,
        "errors": report.errors,
    }

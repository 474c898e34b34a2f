import pytest
from datetime import datetime, timedelta, timezone

from firebase_admin import messaging
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.database.models import AdminToken, NotificationQueueItem, User
from app.models.order import OrderEvent
from app.services.order_events import on_order_created, on_order_updated
from app.services.queue_processor import QueueState, process_pending, process_queue_item
from app.services.reconciler import reconcile
from app.services.sweeper import sweep

NOW = datetime(2026, 3, 10, 12, 0, tzinfo=timezone.utc)


async def queue_item(db: AsyncSession, target_type: str, payload: dict, **fields) -> str:
    item = NotificationQueueItem(payload=payload, target_type=target_type, **fields)
    db.add(item)
    await db.commit()
    return item.id


async def queue_row(db: AsyncSession, item_id: str):
    result = await db.execute(
        select(
            NotificationQueueItem.processed,
            NotificationQueueItem.failed,
            NotificationQueueItem.error,
            NotificationQueueItem.processed_at,
        ).where(NotificationQueueItem.id == item_id)
    )
    return result.one_or_none()


# =================================================================================
# Queue processor
# =================================================================================

@pytest.mark.asyncio
async def test_wrk_001_individual_item_is_delivered(db_session: AsyncSession, dispatcher, gateway):
    item_id = await queue_item(db_session, "individual",
                               {"token": "device-1", "title": "Hi", "body": "There", "data": {"orderId": "o1"}})

    state = await process_queue_item(db_session, dispatcher, item_id, now=NOW)

    assert state is QueueState.DONE
    assert gateway.recipients == ["device-1"]
    assert gateway.sent[0].data == {"orderId": "o1"}
    row = await queue_row(db_session, item_id)
    assert row.processed is True
    assert row.failed is False


@pytest.mark.asyncio
async def test_wrk_002_processed_item_is_never_resent(db_session: AsyncSession, dispatcher, gateway):
    item_id = await queue_item(db_session, "individual", {"token": "device-1", "title": "T", "body": "B"},
                               processed=True, processed_at=NOW - timedelta(hours=1))
    before = await queue_row(db_session, item_id)

    state = await process_queue_item(db_session, dispatcher, item_id, now=NOW)

    assert state is QueueState.SKIPPED
    assert gateway.sent == []
    assert await queue_row(db_session, item_id) == before


@pytest.mark.asyncio
async def test_wrk_003_redelivered_event_sends_once(db_session: AsyncSession, dispatcher, gateway):
    item_id = await queue_item(db_session, "individual", {"token": "device-1", "title": "T", "body": "B"})

    first = await process_queue_item(db_session, dispatcher, item_id, now=NOW)
    second = await process_queue_item(db_session, dispatcher, item_id, now=NOW)

    assert (first, second) == (QueueState.DONE, QueueState.SKIPPED)
    assert len(gateway.sent) == 1


@pytest.mark.asyncio
async def test_wrk_004_all_admins_item(db_session: AsyncSession, dispatcher, gateway):
    db_session.add_all([
        AdminToken(owner_id="a1", token="admin-1"),
        AdminToken(owner_id="a2", token="admin-2"),
    ])
    await db_session.commit()
    item_id = await queue_item(db_session, "all_admins", {"title": "T", "body": "B", "data": {"type": "admin"}})

    state = await process_queue_item(db_session, dispatcher, item_id, now=NOW)

    assert state is QueueState.DONE
    assert sorted(gateway.recipients) == ["admin-1", "admin-2"]
    assert gateway.sent[0].android.notification.channel_id == "admin_notifications"


@pytest.mark.asyncio
async def test_wrk_005_failed_send_is_recorded(db_session: AsyncSession, dispatcher, gateway):
    gateway.fail("device-1", messaging.UnregisteredError("Requested entity was not found."))
    item_id = await queue_item(db_session, "individual", {"token": "device-1", "title": "T", "body": "B"})

    state = await process_queue_item(db_session, dispatcher, item_id, now=NOW)

    assert state is QueueState.FAILED
    row = await queue_row(db_session, item_id)
    assert row.processed is True
    assert row.failed is True
    assert row.error == "Requested entity was not found."


@pytest.mark.asyncio
@pytest.mark.parametrize("target_type, payload, error", [
    ("broadcast", {"title": "T", "body": "B"}, "Unsupported target type: broadcast"),
    ("individual", {"title": "T", "body": "B"}, "Queue payload is missing a token"),
])
async def test_wrk_006_unusable_items_fail(db_session: AsyncSession, dispatcher, gateway, target_type, payload,
                                           error):
    item_id = await queue_item(db_session, target_type, payload)

    state = await process_queue_item(db_session, dispatcher, item_id, now=NOW)

    assert state is QueueState.FAILED
    assert gateway.sent == []
    row = await queue_row(db_session, item_id)
    assert (row.processed, row.failed, row.error) == (True, True, error)


@pytest.mark.asyncio
async def test_wrk_007_process_pending_drains_queue(db_session: AsyncSession, session_factory, dispatcher,
                                                    gateway):
    await queue_item(db_session, "individual", {"token": "device-1", "title": "T", "body": "B"},
                     created_at=NOW - timedelta(minutes=2))
    await queue_item(db_session, "individual", {"token": "device-2", "title": "T", "body": "B"},
                     created_at=NOW - timedelta(minutes=1))
    await queue_item(db_session, "individual", {"token": "device-3", "title": "T", "body": "B"}, processed=True)

    states = await process_pending(session_factory, dispatcher)

    assert states == [QueueState.DONE, QueueState.DONE]
    assert gateway.recipients == ["device-1", "device-2"]


# =================================================================================
# Token reconciliation
# =================================================================================

@pytest.mark.asyncio
async def test_wrk_008_reconcile_removes_only_dead_tokens(db_session: AsyncSession):
    db_session.add_all([
        AdminToken(owner_id="a1", token="dead"),
        AdminToken(owner_id="a2", token="alive"),
        User(id="u1", fcm_token="dead", token_updated_at=NOW),
        User(id="u2", fcm_token="alive", token_updated_at=NOW),
    ])
    await db_session.commit()

    removed = await reconcile(db_session, ["dead"])

    assert removed == 1
    tokens = (await db_session.execute(select(AdminToken.token))).scalars().all()
    assert tokens == ["alive"]
    users = (await db_session.execute(select(User.id, User.fcm_token, User.token_updated_at))).all()
    assert {row.id: (row.fcm_token, row.token_updated_at is None) for row in users} == {
        "u1": (None, True),
        "u2": ("alive", False),
    }


@pytest.mark.asyncio
async def test_wrk_009_reconcile_nothing(db_session: AsyncSession):
    assert await reconcile(db_session, []) == 0


# =================================================================================
# Retention sweep
# =================================================================================

@pytest.mark.asyncio
async def test_wrk_010_sweep_queue_retention(db_session: AsyncSession, session_factory):
    old_processed = await queue_item(db_session, "individual", {}, processed=True,
                                     created_at=NOW - timedelta(days=8))
    recent_processed = await queue_item(db_session, "individual", {}, processed=True,
                                        created_at=NOW - timedelta(days=6))
    old_unprocessed = await queue_item(db_session, "individual", {}, created_at=NOW - timedelta(days=8))

    report = await sweep(session_factory, now=NOW)

    assert report.queue_items_deleted == 1
    assert report.errors == []
    assert await queue_row(db_session, old_processed) is None
    assert await queue_row(db_session, recent_processed) is not None
    assert await queue_row(db_session, old_unprocessed) is not None


@pytest.mark.asyncio
async def test_wrk_011_sweep_token_retention(db_session: AsyncSession, session_factory):
    db_session.add_all([
        AdminToken(owner_id="stale", token="t1", updated_at=NOW - timedelta(days=31)),
        AdminToken(owner_id="stale-inactive", token="t2", is_active=False, updated_at=NOW - timedelta(days=40)),
        AdminToken(owner_id="fresh", token="t3", updated_at=NOW - timedelta(days=29)),
    ])
    await db_session.commit()

    report = await sweep(session_factory, now=NOW)

    assert report.tokens_deleted == 2
    owners = (await db_session.execute(select(AdminToken.owner_id))).scalars().all()
    assert owners == ["fresh"]


@pytest.mark.asyncio
async def test_wrk_012_one_sweep_pass_failing_does_not_stop_the_other(db_session: AsyncSession, session_factory,
                                                                      mocker):
    db_session.add(AdminToken(owner_id="stale", token="t1", updated_at=NOW - timedelta(days=31)))
    await db_session.commit()
    mocker.patch("app.services.sweeper._sweep_queue", side_effect=RuntimeError("queue unavailable"))

    report = await sweep(session_factory, now=NOW)

    assert report.errors == ["queue: queue unavailable"]
    assert report.tokens_deleted == 1


# =================================================================================
# Order triggers
# =================================================================================

@pytest.mark.asyncio
async def test_wrk_013_order_created_broadcasts(db_session: AsyncSession, dispatcher, gateway):
    db_session.add(AdminToken(owner_id="a1", token="admin-1"))
    await db_session.commit()

    result = await on_order_created(db_session, dispatcher, "abc12345xyz",
                                    OrderEvent(userEmail="jane@example.com", totalPrice=20, items=[{}]))

    assert result.success_count == 1
    assert gateway.sent[0].notification.title == "🛒 New Order Received!"


@pytest.mark.asyncio
async def test_wrk_014_order_created_without_admins(db_session: AsyncSession, dispatcher, gateway):
    result = await on_order_created(db_session, dispatcher, "abc12345xyz", OrderEvent())
    assert result.outcomes == []
    assert gateway.sent == []


@pytest.mark.asyncio
@pytest.mark.parametrize("before, after", [
    ("Shipped", "Shipped"),
    ("Pending", "Processing"),
    ("Shipped", "Returned"),
])
async def test_wrk_015_status_changes_without_notification(db_session: AsyncSession, dispatcher, gateway,
                                                           before, after):
    db_session.add(User(id="u1", fcm_token="customer-token"))
    await db_session.commit()

    result = await on_order_updated(db_session, dispatcher, "order-1",
                                    OrderEvent(userId="u1", orderStatus=before),
                                    OrderEvent(userId="u1", orderStatus=after))

    assert result is None
    assert gateway.sent == []


@pytest.mark.asyncio
async def test_wrk_016_cancelled_order_notifies_customer(db_session: AsyncSession, dispatcher, gateway):
    db_session.add(User(id="u1", fcm_token="customer-token"))
    await db_session.commit()

    result = await on_order_updated(db_session, dispatcher, "abcdefgh-1",
                                    OrderEvent(userId="u1", orderStatus="Pending"),
                                    OrderEvent(userId="u1", orderStatus="Cancelled"))

    assert result.success_count == 1
    assert gateway.sent[0].token == "customer-token"
    assert gateway.sent[0].notification.body == "Your order #ABCDEFGH has been cancelled."
    assert gateway.sent[0].android.notification.channel_id == "order_notifications"


@pytest.mark.asyncio
async def test_wrk_017_status_change_for_user_without_token(db_session: AsyncSession, dispatcher, gateway):
    db_session.add(User(id="u1"))
    await db_session.commit()

    result = await on_order_updated(db_session, dispatcher, "order-1",
                                    OrderEvent(userId="u1", orderStatus="Pending"),
                                    OrderEvent(userId="u1", orderStatus="Shipped"))

    assert result is None
    assert gateway.sent == []


@pytest.mark.asyncio
async def test_wrk_018_trigger_errors_are_swallowed(db_session: AsyncSession, gateway, dispatcher):
    db_session.add(AdminToken(owner_id="a1", token="admin-1"))
    await db_session.commit()
    gateway.fail("admin-1", RuntimeError("network down"))

    result = await on_order_created(db_session, dispatcher, "order-1", OrderEvent())

    assert result is None


@pytest.mark.asyncio
async def test_wrk_019_token_cleanup_error_keeps_item_done(db_session: AsyncSession, dispatcher, gateway, mocker):
    db_session.add_all([
        AdminToken(owner_id="a1", token="admin-1"),
        AdminToken(owner_id="a2", token="admin-2"),
    ])
    await db_session.commit()
    gateway.fail("admin-2", messaging.UnregisteredError("Requested entity was not found."))
    mocker.patch("app.services.notifier.reconcile", side_effect=RuntimeError("db down"))
    item_id = await queue_item(db_session, "all_admins", {"title": "T", "body": "B"})

    state = await process_queue_item(db_session, dispatcher, item_id, now=NOW)

    assert state is QueueState.DONE
    row = await queue_row(db_session, item_id)
    assert (row.processed, row.failed, row.error) == (True, False, None)

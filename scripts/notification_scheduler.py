# file: scripts/notification_scheduler.py
#
# Standalone worker: drains the notification queue and runs the daily
# retention sweep. Run after `pip install -e .` with
#   python scripts/notification_scheduler.py

import asyncio
import logging

from app.config import configure_logging, get_settings
from app.database.connection import AsyncSessionLocal, init_db
from app.services.firebase_app import build_dispatcher, init_firebase_app
from app.services.scheduler import run_worker

logger = logging.getLogger("notification_scheduler")


async def main():
    settings = get_settings()
    configure_logging(settings.log_level)
    await init_db()

    dispatcher = build_dispatcher(init_firebase_app(settings), dry_run=settings.fcm_dry_run)
    logger.info(
        "Worker started: polling every %ss, sweeping daily at %02d:00 %s",
        settings.queue_poll_seconds, settings.sweep_hour, settings.sweep_timezone,
    )
    await run_worker(settings, AsyncSessionLocal, dispatcher)


if __name__ == "__main__":
    asyncio.run(main())

"""
Celery task that runs the day-before reminder sweep.
"""

import asyncio
import logging
from typing import Any, Dict

from .celery_app import celery_app
from ..cache import LockKeys, RedisCache, try_lock
from ..config import get_settings
from ..database import create_database_engine, create_session_factory
from ..services.notification_service import NotificationService, build_notification_sender
from ..services.reminder_scheduler import ReminderSweep

logger = logging.getLogger(__name__)


async def run_reminder_sweep() -> Dict[str, Any]:
    """
    Run one sweep while holding the sweep lock.

    Another worker already sweeping makes this run a no-op.
    """
    settings = get_settings()
    redis_cache = RedisCache()
    await redis_cache.initialize()
    engine = create_database_engine()

    try:
        # Lock outlives one interval so a slow sweep is never joined by the next
        async with try_lock(redis_cache, LockKeys.reminder_sweep(), timeout=settings.reminder_interval_seconds * 2) as acquired:
            if not acquired:
                logger.info("Reminder sweep already running elsewhere, skipping")
                return {"skipped": True}

            sweep = ReminderSweep(
                create_session_factory(engine),
                NotificationService(build_notification_sender(settings)),
                settings,
            )
            stats = await sweep.run_once()
            return {"skipped": False, **stats.as_dict()}
    finally:
        await engine.dispose()
        await redis_cache.close()


@celery_app.task(name="send_event_reminders_task")
def send_event_reminders_task():
    """Periodic task sending reminders for events starting in about a day."""
    logger.info("Starting reminder sweep task")
    result = asyncio.run(run_reminder_sweep())
    logger.info(f"Reminder sweep task finished: {result}")
    return result

"""
Celery application configuration for background tasks.
"""

from celery import Celery
from ..config import get_settings

settings = get_settings()

celery_app = Celery(
    "register_path",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=[
        "register_path.tasks.reminder_tasks",
    ]
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    task_time_limit=15 * 60,
    task_soft_time_limit=10 * 60,
    worker_prefetch_multiplier=1,
    worker_max_tasks_per_child=1000,
)

# Periodic tasks configuration
celery_app.conf.beat_schedule = {
    "send-event-reminders": {
        "task": "send_event_reminders_task",
        "schedule": float(settings.reminder_interval_seconds),
    },
}

"""
Celery Configuration - Shared app instance
"""
import os

from celery import Celery
from celery.schedules import crontab

celery_app = Celery(
    "reasoning",
    broker=os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0"),
    backend=os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1"),
    include=["insight_worker"],
)
celery_app.conf.task_routes = {
    "insight_worker.*": {"queue": "insights"},
}
celery_app.conf.task_acks_late = True

celery_app.conf.beat_schedule = {
    # Outbox relay: re-dispatch pending insight entries
    "relay-pending-insights": {
        "task": "insight_worker.relay_pending_insights",
        "schedule": crontab(minute="*/5"),
    },
}

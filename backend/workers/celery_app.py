"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "pharmadispatch",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.reorder", "workers.plan_notifications"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.reorder.*": {"queue": "dispatch"},
        "workers.plan_notifications.*": {"queue": "dispatch"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Run a single beat instance: overlapping cycles are tolerated by the
    # store constraints but double the email traffic on failures.
    beat_schedule={
        # ── Replenishment ──────────────────────────────────────────
        "check-reorder-rules": {
            "task": "workers.reorder.check_reorder_rules",
            "schedule": settings.reorder_poll_interval_seconds,
            "options": {"queue": "dispatch", "expires": settings.reorder_poll_interval_seconds},
        },
        # ── Prescription Plan Emails ───────────────────────────────
        "dispatch-plan-notifications": {
            "task": "workers.plan_notifications.dispatch_plan_notifications",
            "schedule": settings.dispatch_poll_interval_seconds,
            "options": {"queue": "dispatch", "expires": settings.dispatch_poll_interval_seconds},
        },
        "backfill-plan-notifications-daily": {
            "task": "workers.plan_notifications.schedule_missing_plan_notifications",
            "schedule": crontab(hour=0, minute=30),
            "options": {"queue": "dispatch"},
        },
    },
)

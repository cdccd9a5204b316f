"""
Prescription Plan Email Workers.

Workers:
  1. dispatch_plan_notifications: send due plan emails (every DISPATCH_POLL_INTERVAL_SECONDS)
  2. schedule_missing_plan_notifications: backfill jobs for ongoing plans (daily)
"""

import asyncio

import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()


def _run_with_engine(action):
    """Build the engine from settings, run `action(dispatch_engine)`, dispose."""

    async def _run():
        from core.config import get_settings
        from db.session import build_session_factory
        from notifications.email import build_email_gateway
        from workers.components import build_dispatch_engine

        settings = get_settings()
        engine, session_factory = build_session_factory(settings.database_url)
        try:
            dispatch_engine = build_dispatch_engine(settings, session_factory, build_email_gateway(settings))
            return await action(dispatch_engine)
        finally:
            await engine.dispose()

    return asyncio.run(_run())


@celery_app.task(
    name="workers.plan_notifications.dispatch_plan_notifications",
    bind=True,
    max_retries=0,
    acks_late=True,
)
def dispatch_plan_notifications(self):
    """Send every due, eligible, unsent plan email in one bounded batch."""
    run_id = self.request.id or "manual"
    logger.info("plan_email.task.started", run_id=run_id)

    try:
        summary = _run_with_engine(lambda e: e.dispatch_loop.run_cycle())
    except Exception as exc:
        logger.error("plan_email.task.failed", run_id=run_id, error=str(exc), exc_info=True)
        raise

    return {"status": "success", "run_id": run_id, **summary}


@celery_app.task(
    name="workers.plan_notifications.schedule_missing_plan_notifications",
    bind=True,
    max_retries=2,
    default_retry_delay=300,
    acks_late=True,
)
def schedule_missing_plan_notifications(self):
    """Idempotent backfill of notification jobs for ongoing plans."""
    run_id = self.request.id or "manual"

    try:
        summary = _run_with_engine(lambda e: e.scheduler.schedule_missing_plans())
    except Exception as exc:
        logger.error("plan_email.backfill_task.failed", run_id=run_id, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)

    return {"status": "success", "run_id": run_id, **summary}

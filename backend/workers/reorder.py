"""
Reorder Worker — automated replenishment orders.

Runs one InventoryThresholdMonitor cycle per beat tick.

Schedule: every REORDER_POLL_INTERVAL_SECONDS (default 30s)
Queue: dispatch
"""

import asyncio

import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()


@celery_app.task(
    name="workers.reorder.check_reorder_rules",
    bind=True,
    max_retries=0,
    acks_late=True,
)
def check_reorder_rules(self):
    """
    Compare sellable stock to every reorder rule and place automated orders.

    No retry on failure: the next tick re-evaluates every rule anyway.
    """
    run_id = self.request.id or "manual"
    logger.info("reorder.task.started", run_id=run_id)

    async def _run():
        from core.config import get_settings
        from db.session import build_session_factory
        from notifications.email import build_email_gateway
        from workers.components import build_dispatch_engine

        settings = get_settings()
        engine, session_factory = build_session_factory(settings.database_url)
        try:
            dispatch_engine = build_dispatch_engine(settings, session_factory, build_email_gateway(settings))
            return await dispatch_engine.monitor.run_cycle()
        finally:
            await engine.dispose()

    try:
        summary = asyncio.run(_run())
    except Exception as exc:
        logger.error("reorder.task.failed", run_id=run_id, error=str(exc), exc_info=True)
        raise

    return {"status": "success", "run_id": run_id, **summary}

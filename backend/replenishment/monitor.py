"""
Inventory Threshold Monitor — one pass over every reorder rule.

For each rule with a product and a branch:
  1. Compute sellable stock (lots expiring inside the grace window excluded)
  2. Stock <= threshold (inclusive) and no pending automated order
     → ReorderDispatcher.create()

Each rule runs in its own session; a failing rule is logged and the
cycle moves on. Scheduling lives in workers/.
"""

from dataclasses import asdict, dataclass

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker

from core.clock import Clock, SystemClock, local_today
from db.models import ReorderRule
from inventory.stock import DEFAULT_EXPIRY_GRACE_DAYS, sellable_quantity
from replenishment.dispatcher import ReorderDispatcher, has_pending_automated_order

logger = structlog.get_logger()


@dataclass
class ReorderCycleSummary:
    rules: int = 0
    ordered: int = 0
    above_threshold: int = 0
    pending_exists: int = 0
    skipped: int = 0
    errors: int = 0

    def as_dict(self) -> dict[str, int]:
        return asdict(self)


class InventoryThresholdMonitor:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        dispatcher: ReorderDispatcher,
        tz_name: str,
        clock: Clock | None = None,
        grace_days: int = DEFAULT_EXPIRY_GRACE_DAYS,
    ):
        self.session_factory = session_factory
        self.dispatcher = dispatcher
        self.tz_name = tz_name
        self.clock = clock or SystemClock()
        self.grace_days = grace_days

    async def run_cycle(self) -> dict[str, int]:
        today = local_today(self.clock.now(), self.tz_name)

        async with self.session_factory() as db:
            result = await db.execute(
                select(ReorderRule.reorder_id)
                .where(ReorderRule.product_id.isnot(None), ReorderRule.branch_id > 0)
                .order_by(ReorderRule.reorder_id)
            )
            rule_ids = [row[0] for row in result.all()]

        summary = ReorderCycleSummary(rules=len(rule_ids))
        logger.info("reorder.cycle_started", rules=len(rule_ids), today=today.isoformat())

        for rule_id in rule_ids:
            try:
                outcome = await self.process_rule(rule_id, today)
            except Exception as exc:  # noqa: BLE001
                summary.errors += 1
                logger.error("reorder.rule_failed", reorder_id=rule_id, error=str(exc), exc_info=True)
                continue
            setattr(summary, outcome, getattr(summary, outcome) + 1)

        logger.info("reorder.cycle_completed", **summary.as_dict())
        return summary.as_dict()

    async def process_rule(self, rule_id: int, today) -> str:
        """Returns the ReorderCycleSummary field this rule counts towards."""
        async with self.session_factory() as db:
            rule = await db.get(ReorderRule, rule_id)
            if rule is None or rule.product_id is None or not rule.branch_id or rule.branch_id <= 0:
                return "skipped"

            current = await sellable_quantity(db, rule.product_id, rule.branch_id, today, self.grace_days)
            logger.debug(
                "reorder.rule_checked",
                reorder_id=rule.reorder_id,
                product_id=rule.product_id,
                branch_id=rule.branch_id,
                current_inventory=current,
                threshold=rule.threshold_quantity,
            )

            if current > rule.threshold_quantity:
                return "above_threshold"

            if await has_pending_automated_order(db, rule.product_id, rule.branch_id):
                logger.info(
                    "reorder.pending_order_exists",
                    reorder_id=rule.reorder_id,
                    product_id=rule.product_id,
                    branch_id=rule.branch_id,
                )
                return "pending_exists"

            order = await self.dispatcher.create(db, rule, current)
            return "ordered" if order is not None else "pending_exists"

"""
Reorder Dispatcher — places the automated supplier order for a breached rule.

Order + audit record commit together. Notification runs afterwards and
is best-effort: whatever happens while emailing, the order stays.
"""

import structlog
from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import Clock, SystemClock, naive_utc
from db.event_log import append_add_record
from db.models import ORDER_STATUS_PENDING, ORDER_TYPE_AUTOMATED, ReorderRule, SupplierOrder
from notifications.email import EmailGateway
from replenishment.notify import notify_reorder

logger = structlog.get_logger()

AUDIT_TABLE_NAME = "SupplierOrder (Automated)"


async def has_pending_automated_order(db: AsyncSession, product_id: int, branch_id: int) -> bool:
    result = await db.execute(
        select(
            exists().where(
                SupplierOrder.product_id == product_id,
                SupplierOrder.branch_id == branch_id,
                SupplierOrder.status == ORDER_STATUS_PENDING,
                SupplierOrder.order_type == ORDER_TYPE_AUTOMATED,
            )
        )
    )
    return bool(result.scalar())


def audit_details(rule: ReorderRule, order: SupplierOrder, current_inventory: int) -> str:
    supplier = rule.supplier.supplier_name if rule.supplier else "Unknown"
    product = rule.product.product_name if rule.product else "Unknown"
    branch = (rule.branch.city_name if rule.branch else None) or "Unknown"
    creator = rule.owner.full_name if rule.owner else "Unknown"
    return (
        f"AUTOMATED ORDER - Supplier: {supplier}, "
        f"Product: {product}, "
        f"Quantity: {order.quantity}, "
        f"Branch: {branch}, "
        f"Triggered by: Inventory ({current_inventory}) reached threshold ({rule.threshold_quantity}), "
        f"Reorder Rule ID: {rule.reorder_id}, "
        f"Created by: {creator}"
    )


class ReorderDispatcher:
    """Creates automated orders and notifies staff."""

    def __init__(self, gateway: EmailGateway, tz_name: str, clock: Clock | None = None):
        self.gateway = gateway
        self.tz_name = tz_name
        self.clock = clock or SystemClock()

    async def create(
        self,
        db: AsyncSession,
        rule: ReorderRule,
        current_inventory: int,
    ) -> SupplierOrder | None:
        """
        Persist a pending automated order for `rule`.

        Returns None when the store already holds a pending automated order
        for the product/branch (unique index hit).
        """
        now = self.clock.now()
        reorder_id, product_id, branch_id = rule.reorder_id, rule.product_id, rule.branch_id
        order = SupplierOrder(
            supplier_id=rule.supplier_id,
            product_id=rule.product_id,
            branch_id=rule.branch_id,
            employee_id=rule.owner_user_id,
            quantity=rule.reorder_quantity,
            status=ORDER_STATUS_PENDING,
            order_type=ORDER_TYPE_AUTOMATED,
            created_at=naive_utc(now),
        )
        db.add(order)
        try:
            await db.flush()
        except IntegrityError:
            await db.rollback()
            logger.info(
                "reorder.pending_order_conflict",
                reorder_id=reorder_id,
                product_id=product_id,
                branch_id=branch_id,
            )
            return None

        await append_add_record(
            db,
            user_id=rule.owner_user_id,
            table_name=AUDIT_TABLE_NAME,
            record_id=order.supplier_order_id,
            details=audit_details(rule, order, current_inventory),
        )
        await db.commit()

        logger.info(
            "reorder.order_created",
            order_id=order.supplier_order_id,
            reorder_id=rule.reorder_id,
            product_id=rule.product_id,
            branch_id=rule.branch_id,
            quantity=order.quantity,
            current_inventory=current_inventory,
            threshold=rule.threshold_quantity,
        )

        try:
            await notify_reorder(
                db,
                self.gateway,
                order=order,
                rule=rule,
                now_utc=now,
                tz_name=self.tz_name,
            )
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "reorder.notify_failed",
                order_id=order.supplier_order_id,
                error=str(exc),
                exc_info=True,
            )

        return order

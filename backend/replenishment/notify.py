"""
Automated order notification — tells the branch manager and every admin
that the engine placed an order.
"""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.clock import local_now
from db.models import ROLE_ADMIN, ReorderRule, SupplierOrder, User
from notifications.email import EmailGateway
from notifications.templates import reorder_notice_html, reorder_subject

logger = structlog.get_logger()


async def resolve_recipients(db: AsyncSession, rule: ReorderRule) -> list[User]:
    """Branch manager first, then admins; users without an email are dropped."""
    recipients: list[User] = []
    seen: set[int] = set()

    manager = rule.branch.manager if rule.branch else None
    if manager is not None and (manager.email_address or "").strip():
        recipients.append(manager)
        seen.add(manager.user_id)
    else:
        logger.warning("reorder.notify.no_branch_manager", branch_id=rule.branch_id)

    result = await db.execute(select(User).where(User.role == ROLE_ADMIN).order_by(User.user_id))
    for admin in result.scalars().all():
        if admin.user_id in seen or not (admin.email_address or "").strip():
            continue
        recipients.append(admin)
        seen.add(admin.user_id)

    return recipients


async def notify_reorder(
    db: AsyncSession,
    gateway: EmailGateway,
    *,
    order: SupplierOrder,
    rule: ReorderRule,
    now_utc: datetime,
    tz_name: str,
) -> int:
    """
    Email every recipient about `order`. Returns the number of accepted sends.

    Gateway exceptions propagate; the caller owns the failure policy.
    """
    product_name = rule.product.product_name if rule.product else "Unknown Product"
    supplier_name = rule.supplier.supplier_name if rule.supplier else "Unknown Supplier"
    branch_name = (rule.branch.city_name if rule.branch else None) or "Unknown Branch"

    placed = local_now(now_utc, tz_name)
    subject = reorder_subject(product_name)

    accepted = 0
    for recipient in await resolve_recipients(db, rule):
        body = reorder_notice_html(
            recipient_name=recipient.full_name,
            product_name=product_name,
            supplier_name=supplier_name,
            branch_name=branch_name,
            threshold=rule.threshold_quantity,
            ordered_quantity=order.quantity,
            order_date=placed.strftime("%B %d, %Y"),
            order_time=placed.strftime("%I:%M %p"),
        )
        if await gateway.send(recipient.email_address, subject, body):
            accepted += 1
        else:
            logger.warning(
                "reorder.notify.rejected",
                order_id=order.supplier_order_id,
                recipient=recipient.email_address,
            )

    logger.info("reorder.notify.completed", order_id=order.supplier_order_id, accepted=accepted)
    return accepted

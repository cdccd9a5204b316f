"""
Stock queries over inventory lots.

  sellable_quantity   - what the reorder monitor compares to thresholds;
                        lots inside the expiry grace window don't count
  available_quantity  - what can be handed over today (unexpired lots)
  consume_fefo        - take a quantity out, first-expiry-first-out
"""

from datetime import date, timedelta

import structlog
from sqlalchemy import func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import InventoryLot

logger = structlog.get_logger()

DEFAULT_EXPIRY_GRACE_DAYS = 29


async def sellable_quantity(
    db: AsyncSession,
    product_id: int,
    branch_id: int,
    today: date,
    grace_days: int = DEFAULT_EXPIRY_GRACE_DAYS,
) -> int:
    """
    Sum of positive lots with no expiry date, or expiring after today + grace_days.
    """
    cutoff = today + timedelta(days=grace_days)
    return await _sum_lots(
        db,
        product_id,
        branch_id,
        or_(InventoryLot.expiry_date.is_(None), InventoryLot.expiry_date > cutoff),
    )


async def available_quantity(db: AsyncSession, product_id: int, branch_id: int, today: date) -> int:
    """Sum of positive lots that have not expired as of today."""
    return await _sum_lots(
        db,
        product_id,
        branch_id,
        or_(InventoryLot.expiry_date.is_(None), InventoryLot.expiry_date >= today),
    )


async def _sum_lots(db: AsyncSession, product_id: int, branch_id: int, expiry_clause) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(InventoryLot.quantity), 0)).where(
            InventoryLot.product_id == product_id,
            InventoryLot.branch_id == branch_id,
            InventoryLot.quantity > 0,
            expiry_clause,
        )
    )
    return int(result.scalar_one())


async def consume_fefo(
    db: AsyncSession,
    product_id: int,
    branch_id: int,
    quantity: int,
    today: date,
) -> bool:
    """
    Decrement `quantity` units across unexpired lots, earliest expiry first and
    undated lots last. All-or-nothing: returns False and changes nothing when
    stock is short. Changes are flushed, not committed.
    """
    if quantity <= 0:
        return False

    result = await db.execute(
        select(InventoryLot)
        .where(
            InventoryLot.product_id == product_id,
            InventoryLot.branch_id == branch_id,
            InventoryLot.quantity > 0,
            or_(InventoryLot.expiry_date.is_(None), InventoryLot.expiry_date >= today),
        )
        .order_by(InventoryLot.expiry_date.is_(None), InventoryLot.expiry_date, InventoryLot.inventory_id)
    )
    lots = list(result.scalars().all())

    if sum(lot.quantity for lot in lots) < quantity:
        return False

    remaining = quantity
    for lot in lots:
        if remaining <= 0:
            break
        take = min(lot.quantity, remaining)
        lot.quantity -= take
        remaining -= take

    await db.flush()
    logger.info(
        "stock.consumed_fefo",
        product_id=product_id,
        branch_id=branch_id,
        quantity=quantity,
    )
    return True

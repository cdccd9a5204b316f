"""
Tests for automated order creation and staff notification.
"""

from datetime import datetime, timezone

import pytest
from sqlalchemy import func, select

from db.event_log import find_entries
from db.models import ReorderRule, SupplierOrder, User
from replenishment.dispatcher import ReorderDispatcher, has_pending_automated_order
from replenishment.monitor import InventoryThresholdMonitor

TZ = "Asia/Bahrain"


async def _order_count(session_factory) -> int:
    async with session_factory() as db:
        return (await db.execute(select(func.count()).select_from(SupplierOrder))).scalar_one()


@pytest.mark.asyncio
class TestNotification:
    async def test_manager_then_admins_are_emailed(self, session_factory, add_lot, add_rule, gateway, clock):
        await add_lot(3)
        await add_rule(threshold=10, reorder_quantity=40)

        monitor = InventoryThresholdMonitor(session_factory, ReorderDispatcher(gateway, TZ, clock), TZ, clock)
        await monitor.run_cycle()

        assert [m["to"] for m in gateway.sent] == ["manager@quickpharma.test", "admin@quickpharma.test"]
        message = gateway.sent[0]
        assert message["subject"] == "[QuickPharma+] Automated Order Notification: Metformin 500mg Threshold Reached"
        assert "Manama" in message["html"]
        assert "Gulf Pharma" in message["html"]
        assert "40 units" in message["html"]
        # 09:00 UTC is 12:00 PM in Bahrain
        assert "March 01, 2024" in message["html"]
        assert "12:00 PM" in message["html"]

    async def test_manager_who_is_also_admin_is_emailed_once(
        self, session_factory, world, add_lot, add_rule, gateway, clock
    ):
        async with session_factory() as db:
            manager = await db.get(User, world.manager_id)
            manager.role = "admin"
            await db.commit()
        await add_lot(3)
        await add_rule(threshold=10)

        monitor = InventoryThresholdMonitor(session_factory, ReorderDispatcher(gateway, TZ, clock), TZ, clock)
        await monitor.run_cycle()

        recipients = [m["to"] for m in gateway.sent]
        assert recipients.count("manager@quickpharma.test") == 1
        assert len(recipients) == 2

    async def test_rejected_send_keeps_the_order(self, session_factory, add_lot, add_rule, rejecting_gateway, clock):
        await add_lot(3)
        await add_rule(threshold=10)

        monitor = InventoryThresholdMonitor(
            session_factory, ReorderDispatcher(rejecting_gateway, TZ, clock), TZ, clock
        )
        summary = await monitor.run_cycle()

        assert summary["ordered"] == 1
        assert await _order_count(session_factory) == 1

    async def test_gateway_exception_keeps_the_order(
        self, session_factory, add_lot, add_rule, exploding_gateway, clock
    ):
        await add_lot(3)
        await add_rule(threshold=10)

        monitor = InventoryThresholdMonitor(
            session_factory, ReorderDispatcher(exploding_gateway, TZ, clock), TZ, clock
        )
        summary = await monitor.run_cycle()

        assert exploding_gateway.attempts == 1
        assert summary["ordered"] == 1
        assert summary["errors"] == 0
        assert await _order_count(session_factory) == 1


@pytest.mark.asyncio
class TestAuditRecord:
    async def test_order_is_audited_with_rule_context(self, session_factory, world, add_lot, add_rule, gateway, clock):
        await add_lot(4)
        rule_id = await add_rule(threshold=10, reorder_quantity=60)

        monitor = InventoryThresholdMonitor(session_factory, ReorderDispatcher(gateway, TZ, clock), TZ, clock)
        await monitor.run_cycle()

        async with session_factory() as db:
            entries = await find_entries(db, contains="SupplierOrder (Automated)")
            order = (await db.execute(select(SupplierOrder))).scalar_one()

        assert len(entries) == 1
        entry = entries[0]
        assert entry.log_type == "add_record"
        assert entry.user_id == world.admin_id
        assert entry.description.startswith(
            f"Amal Admin added a record to SupplierOrder (Automated) (Record ID: {order.supplier_order_id})"
        )
        assert "AUTOMATED ORDER - Supplier: Gulf Pharma" in entry.description
        assert "Quantity: 60" in entry.description
        assert "Triggered by: Inventory (4) reached threshold (10)" in entry.description
        assert f"Reorder Rule ID: {rule_id}" in entry.description
        assert entry.description.endswith("Created by: Amal Admin")


@pytest.mark.asyncio
class TestPendingOrderConstraint:
    async def test_duplicate_pending_automated_order_is_refused(
        self, session_factory, world, add_rule, gateway, clock
    ):
        rule_id = await add_rule(threshold=10)
        async with session_factory() as db:
            db.add(
                SupplierOrder(
                    supplier_id=world.supplier_id,
                    product_id=world.product_id,
                    branch_id=world.branch_id,
                    quantity=50,
                    status="pending",
                    order_type="automated",
                    created_at=datetime(2024, 2, 28),
                )
            )
            await db.commit()

        dispatcher = ReorderDispatcher(gateway, TZ, clock)
        async with session_factory() as db:
            assert await has_pending_automated_order(db, world.product_id, world.branch_id) is True
            rule = await db.get(ReorderRule, rule_id)
            # Bypass the existence check, as a concurrent worker would.
            result = await dispatcher.create(db, rule, current_inventory=2)

        assert result is None
        assert gateway.sent == []
        assert await _order_count(session_factory) == 1

    async def test_created_at_comes_from_the_clock(self, session_factory, add_lot, add_rule, gateway, clock):
        await add_lot(1)
        await add_rule(threshold=10)

        monitor = InventoryThresholdMonitor(session_factory, ReorderDispatcher(gateway, TZ, clock), TZ, clock)
        await monitor.run_cycle()

        async with session_factory() as db:
            order = (await db.execute(select(SupplierOrder))).scalar_one()
        assert order.created_at == clock.now().astimezone(timezone.utc).replace(tzinfo=None)

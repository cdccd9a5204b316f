"""
Test Configuration — file-backed SQLite per test, seeded reference data,
a pinned clock and in-memory email gateways.

Every component under test opens its own sessions from the factory, so
tests use a real file database instead of a shared transaction.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from core.clock import FixedClock
from db.models import (
    Address,
    Approval,
    Branch,
    City,
    InventoryLot,
    Prescription,
    PrescriptionPlan,
    Product,
    ReorderRule,
    Shipping,
    Supplier,
    User,
)
from db.session import Base


class RecordingGateway:
    """Accepts (or rejects) every message and remembers it."""

    def __init__(self, accept: bool = True):
        self.accept = accept
        self.sent: list[dict[str, str]] = []

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        self.sent.append({"to": to_address, "subject": subject, "html": html_body})
        return self.accept


class ExplodingGateway:
    def __init__(self):
        self.attempts = 0

    async def send(self, to_address: str, subject: str, html_body: str) -> bool:
        self.attempts += 1
        raise RuntimeError("smtp relay unreachable")


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'dispatch.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    await engine.dispose()


@pytest.fixture
def clock():
    # 2024-03-01 12:00 in Bahrain
    return FixedClock(datetime(2024, 3, 1, 9, 0, tzinfo=timezone.utc))


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def rejecting_gateway():
    return RecordingGateway(accept=False)


@pytest.fixture
def exploding_gateway():
    return ExplodingGateway()


@pytest.fixture
async def world(session_factory):
    """Admin, branch manager, customer, one Manama branch, one supplier, one product."""
    async with session_factory() as db:
        admin = User(first_name="Amal", last_name="Admin", email_address="admin@quickpharma.test", role="admin")
        manager = User(
            first_name="Mona", last_name="Manager", email_address="manager@quickpharma.test", role="manager"
        )
        customer = User(first_name="Sara", last_name="Ali", email_address="sara@example.com", role="customer")
        db.add_all([admin, manager, customer])
        await db.flush()

        city = City(city_name="Manama")
        db.add(city)
        await db.flush()

        address = Address(street="2803", block="428", building_number="1180", city_id=city.city_id)
        db.add(address)
        await db.flush()

        branch = Branch(address_id=address.address_id, manager_user_id=manager.user_id)
        db.add(branch)
        await db.flush()
        city.branch_id = branch.branch_id

        supplier = Supplier(supplier_name="Gulf Pharma", supplier_email="orders@gulfpharma.test")
        db.add(supplier)
        await db.flush()

        product = Product(product_name="Metformin 500mg", supplier_id=supplier.supplier_id)
        db.add(product)
        await db.flush()

        ids = SimpleNamespace(
            admin_id=admin.user_id,
            manager_id=manager.user_id,
            customer_id=customer.user_id,
            city_id=city.city_id,
            address_id=address.address_id,
            branch_id=branch.branch_id,
            supplier_id=supplier.supplier_id,
            product_id=product.product_id,
        )
        await db.commit()
    return ids


@pytest.fixture
def add_lot(session_factory, world):
    async def _add(quantity: int, expiry_date: date | None = None, *, product_id=None, branch_id=None) -> int:
        async with session_factory() as db:
            lot = InventoryLot(
                product_id=product_id or world.product_id,
                branch_id=branch_id or world.branch_id,
                quantity=quantity,
                expiry_date=expiry_date,
            )
            db.add(lot)
            await db.commit()
            return lot.inventory_id

    return _add


@pytest.fixture
def add_rule(session_factory, world):
    async def _add(
        threshold: int = 10,
        reorder_quantity: int = 50,
        *,
        product_id=...,
        branch_id=...,
    ) -> int:
        async with session_factory() as db:
            rule = ReorderRule(
                product_id=world.product_id if product_id is ... else product_id,
                branch_id=world.branch_id if branch_id is ... else branch_id,
                supplier_id=world.supplier_id,
                owner_user_id=world.admin_id,
                threshold_quantity=threshold,
                reorder_quantity=reorder_quantity,
            )
            db.add(rule)
            await db.commit()
            return rule.reorder_id

    return _add


@pytest.fixture
def add_plan(session_factory, world):
    async def _add(
        *,
        creation_date: date = date(2024, 1, 1),
        is_delivery: bool = False,
        with_address: bool = True,
        quantity: int = 10,
        status: str = "ongoing",
        prescription_name: str | None = "Diabetes refill",
        product_name: str = "Metformin 500mg",
        link_product: bool = True,
        expiry_date: date | None = None,
        total_amount: Decimal = Decimal("12.500"),
    ) -> int:
        async with session_factory() as db:
            prescription = Prescription(user_id=world.customer_id, prescription_name=prescription_name)
            db.add(prescription)
            await db.flush()

            approval = Approval(
                prescription_id=prescription.prescription_id,
                product_id=world.product_id if link_product else None,
                product_name=product_name,
                quantity=quantity,
                prescription_expiry_date=expiry_date,
            )
            if is_delivery:
                shipping = Shipping(
                    user_id=world.customer_id,
                    is_delivery=True,
                    address_id=world.address_id if with_address else None,
                )
            else:
                shipping = Shipping(user_id=world.customer_id, is_delivery=False, branch_id=world.branch_id)
            db.add_all([approval, shipping])
            await db.flush()

            plan = PrescriptionPlan(
                user_id=world.customer_id,
                approval_id=approval.approval_id,
                shipping_id=shipping.shipping_id,
                creation_date=creation_date,
                status=status,
                total_amount=total_amount,
            )
            db.add(plan)
            await db.commit()
            return plan.plan_id

    return _add

"""
PharmaDispatch Database Models

Tables read or written by the dispatch engine. Catalog, cart and order
tables owned by the storefront are not mapped here.

Tables:
  Reference (1-6):
  1. users                    - Staff and customers (role-based)
  2. cities                   - City lookup (+ branch link for pickup labels)
  3. addresses                - Delivery / branch addresses
  4. branches                 - Pharmacy branches (+ manager)
  5. suppliers                - Product suppliers
  6. products                 - Product catalog (name + supplier only)

  Replenishment (7-9):
  7. inventory                - Stock lots per product/branch with expiry
  8. reorder_rules            - Threshold + reorder quantity per product/branch
  9. supplier_orders          - Manual and automated replenishment orders

  Audit (10):
  10. event_log               - Append-only audit trail

  Prescription plans (11-15):
  11. prescriptions           - Uploaded prescriptions
  12. approvals               - Pharmacist approval (product, quantity, expiry)
  13. shippings               - Pickup branch or delivery address
  14. prescription_plans      - Monthly refill plans
  15. plan_notification_jobs  - Future-dated plan emails (job queue)
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Text,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import relationship

from db.session import Base


def utcnow() -> datetime:
    """Naive UTC timestamp (storage convention for every DateTime column)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ─── Status / type vocabularies ─────────────────────────────────────────────

ROLE_ADMIN = "admin"
ROLE_MANAGER = "manager"

ORDER_STATUS_PENDING = "pending"
ORDER_TYPE_MANUAL = "manual"
ORDER_TYPE_AUTOMATED = "automated"

PLAN_STATUS_ONGOING = "ongoing"

LOG_TYPE_INVENTORY_CHANGE = "inventory_change"
LOG_TYPE_ADD_RECORD = "add_record"
LOG_TYPE_PLAN_EMAIL = "plan_email"


# ─── 1. Users ───────────────────────────────────────────────────────────────


class User(Base):
    __tablename__ = "users"

    user_id = Column(Integer, primary_key=True, autoincrement=True)
    first_name = Column(String(100))
    last_name = Column(String(100))
    email_address = Column(String(255))
    role = Column(String(20), nullable=False, default="customer")
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_users_role", "role"),
        CheckConstraint(
            "role IN ('admin', 'manager', 'pharmacist', 'driver', 'customer')",
            name="ck_user_role",
        ),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name or ''} {self.last_name or ''}".strip()


# ─── 2. Cities ──────────────────────────────────────────────────────────────


class City(Base):
    __tablename__ = "cities"

    city_id = Column(Integer, primary_key=True, autoincrement=True)
    city_name = Column(String(100))
    branch_id = Column(Integer, nullable=True)  # branch located in this city


# ─── 3. Addresses ───────────────────────────────────────────────────────────


class Address(Base):
    __tablename__ = "addresses"

    address_id = Column(Integer, primary_key=True, autoincrement=True)
    street = Column(String(100))  # "Road" in Bahraini addressing
    block = Column(String(20))
    building_number = Column(String(50))
    city_id = Column(Integer, ForeignKey("cities.city_id"), nullable=True)

    city = relationship("City", lazy="joined")


# ─── 4. Branches ────────────────────────────────────────────────────────────


class Branch(Base):
    __tablename__ = "branches"

    branch_id = Column(Integer, primary_key=True, autoincrement=True)
    address_id = Column(Integer, ForeignKey("addresses.address_id"), nullable=True)
    manager_user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)

    address = relationship("Address", lazy="joined")
    manager = relationship("User", foreign_keys=[manager_user_id], lazy="joined")

    @property
    def city_name(self) -> str | None:
        if self.address is None or self.address.city is None:
            return None
        return self.address.city.city_name


# ─── 5. Suppliers ───────────────────────────────────────────────────────────


class Supplier(Base):
    __tablename__ = "suppliers"

    supplier_id = Column(Integer, primary_key=True, autoincrement=True)
    supplier_name = Column(String(255), nullable=False)
    supplier_email = Column(String(255))


# ─── 6. Products ────────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    product_id = Column(Integer, primary_key=True, autoincrement=True)
    product_name = Column(String(255), nullable=False)
    supplier_id = Column(Integer, ForeignKey("suppliers.supplier_id"), nullable=True)

    __table_args__ = (Index("ix_products_name", "product_name"),)


# ─── 7. Inventory lots ──────────────────────────────────────────────────────


class InventoryLot(Base):
    __tablename__ = "inventory"

    inventory_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    expiry_date = Column(Date, nullable=True)

    __table_args__ = (
        Index("ix_inventory_product_branch", "product_id", "branch_id"),
        CheckConstraint("quantity >= 0", name="ck_inventory_qty_positive"),
    )


# ─── 8. Reorder Rules ───────────────────────────────────────────────────────


class ReorderRule(Base):
    """Staff-maintained replenishment policy; read-only to the engine."""

    __tablename__ = "reorder_rules"

    reorder_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=True)
    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.supplier_id"), nullable=True)
    owner_user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    threshold_quantity = Column(Integer, nullable=False, default=0)
    reorder_quantity = Column(Integer, nullable=False, default=0)

    product = relationship("Product", lazy="joined")
    supplier = relationship("Supplier", lazy="joined")
    branch = relationship("Branch", lazy="joined")
    owner = relationship("User", lazy="joined")

    __table_args__ = (
        Index("ix_reorder_rules_product_branch", "product_id", "branch_id"),
        CheckConstraint("threshold_quantity >= 0", name="ck_reorder_threshold_positive"),
    )


# ─── 9. Supplier Orders ─────────────────────────────────────────────────────


class SupplierOrder(Base):
    __tablename__ = "supplier_orders"

    supplier_order_id = Column(Integer, primary_key=True, autoincrement=True)
    supplier_id = Column(Integer, ForeignKey("suppliers.supplier_id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=False)
    employee_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    quantity = Column(Integer, nullable=False)
    status = Column(String(20), nullable=False, default=ORDER_STATUS_PENDING)
    order_type = Column(String(20), nullable=False, default=ORDER_TYPE_MANUAL)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        Index("ix_supplier_orders_product_branch", "product_id", "branch_id"),
        # At most one open automated order per product/branch.
        Index(
            "uq_supplier_orders_pending_automated",
            "product_id",
            "branch_id",
            unique=True,
            postgresql_where=text("status = 'pending' AND order_type = 'automated'"),
            sqlite_where=text("status = 'pending' AND order_type = 'automated'"),
        ),
        CheckConstraint(
            "status IN ('pending', 'approved', 'delivered', 'cancelled')",
            name="ck_supplier_order_status",
        ),
        CheckConstraint("order_type IN ('manual', 'automated')", name="ck_supplier_order_type"),
    )


# ─── 10. Event Log ──────────────────────────────────────────────────────────


class EventLogRecord(Base):
    """Append-only audit record. Never updated in place."""

    __tablename__ = "event_log"

    log_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    log_type = Column(String(30), nullable=False)
    timestamp_utc = Column(DateTime, nullable=False, default=utcnow)
    description = Column(Text, nullable=False)

    __table_args__ = (
        Index("ix_event_log_type_time", "log_type", "timestamp_utc"),
        CheckConstraint(
            "log_type IN ('inventory_change', 'add_record', 'edit_record', 'plan_email')",
            name="ck_event_log_type",
        ),
    )


# ─── 11. Prescriptions ──────────────────────────────────────────────────────


class Prescription(Base):
    __tablename__ = "prescriptions"

    prescription_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    prescription_name = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=utcnow)


# ─── 12. Approvals ──────────────────────────────────────────────────────────


class Approval(Base):
    __tablename__ = "approvals"

    approval_id = Column(Integer, primary_key=True, autoincrement=True)
    prescription_id = Column(Integer, ForeignKey("prescriptions.prescription_id"), nullable=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=True)
    product_name = Column(String(255))  # approved product as written by the pharmacist
    quantity = Column(Integer)
    prescription_expiry_date = Column(Date)

    prescription = relationship("Prescription", lazy="joined")


# ─── 13. Shippings ──────────────────────────────────────────────────────────


class Shipping(Base):
    __tablename__ = "shippings"

    shipping_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    is_delivery = Column(Boolean, nullable=False, default=False)
    branch_id = Column(Integer, ForeignKey("branches.branch_id"), nullable=True)
    address_id = Column(Integer, ForeignKey("addresses.address_id"), nullable=True)

    branch = relationship("Branch", lazy="joined")
    address = relationship("Address", lazy="joined")


# ─── 14. Prescription Plans ─────────────────────────────────────────────────


class PrescriptionPlan(Base):
    __tablename__ = "prescription_plans"

    plan_id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    approval_id = Column(Integer, ForeignKey("approvals.approval_id"), nullable=True)
    shipping_id = Column(Integer, ForeignKey("shippings.shipping_id"), nullable=True)
    creation_date = Column(Date)  # local business date
    status = Column(String(20), nullable=False, default=PLAN_STATUS_ONGOING)
    total_amount = Column(Numeric(10, 3))

    user = relationship("User", lazy="joined")
    approval = relationship("Approval", lazy="joined")
    shipping = relationship("Shipping", lazy="joined")

    __table_args__ = (
        CheckConstraint("status IN ('ongoing', 'expired', 'cancelled')", name="ck_plan_status"),
    )


# ─── 15. Plan Notification Jobs ─────────────────────────────────────────────


class PlanNotificationJob(Base):
    """One future-dated plan email.

    The row existing means the job is scheduled; sent_at being set means it
    was delivered. dedup_key is unique so neither can happen twice.
    """

    __tablename__ = "plan_notification_jobs"

    job_id = Column(Integer, primary_key=True, autoincrement=True)
    plan_id = Column(Integer, nullable=False)  # no FK: jobs outlive deleted plans
    user_id = Column(Integer, ForeignKey("users.user_id"), nullable=True)
    stage = Column(String(20), nullable=False)
    offset_days = Column(Integer, nullable=False)
    send_on_utc = Column(DateTime, nullable=False)
    dedup_key = Column(String(100), nullable=False)
    sent_at = Column(DateTime, nullable=True)
    stock_applied_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("dedup_key", name="uq_plan_notification_dedup_key"),
        Index("ix_plan_notification_due", "sent_at", "send_on_utc"),
        Index("ix_plan_notification_plan", "plan_id"),
    )

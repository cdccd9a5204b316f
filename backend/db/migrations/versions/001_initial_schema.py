"""
Initial schema - dispatch engine tables

Revision ID: 001
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Users
    op.create_table(
        "users",
        sa.Column("user_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("first_name", sa.String(100)),
        sa.Column("last_name", sa.String(100)),
        sa.Column("email_address", sa.String(255)),
        sa.Column("role", sa.String(20), nullable=False, server_default="customer"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "role IN ('admin', 'manager', 'pharmacist', 'driver', 'customer')",
            name="ck_user_role",
        ),
    )
    op.create_index("ix_users_role", "users", ["role"])

    # 2. Cities
    op.create_table(
        "cities",
        sa.Column("city_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("city_name", sa.String(100)),
        sa.Column("branch_id", sa.Integer),
    )

    # 3. Addresses
    op.create_table(
        "addresses",
        sa.Column("address_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("street", sa.String(100)),
        sa.Column("block", sa.String(20)),
        sa.Column("building_number", sa.String(50)),
        sa.Column("city_id", sa.Integer, sa.ForeignKey("cities.city_id")),
    )

    # 4. Branches
    op.create_table(
        "branches",
        sa.Column("branch_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("address_id", sa.Integer, sa.ForeignKey("addresses.address_id")),
        sa.Column("manager_user_id", sa.Integer, sa.ForeignKey("users.user_id")),
    )

    # 5. Suppliers
    op.create_table(
        "suppliers",
        sa.Column("supplier_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("supplier_name", sa.String(255), nullable=False),
        sa.Column("supplier_email", sa.String(255)),
    )

    # 6. Products
    op.create_table(
        "products",
        sa.Column("product_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_name", sa.String(255), nullable=False),
        sa.Column("supplier_id", sa.Integer, sa.ForeignKey("suppliers.supplier_id")),
    )
    op.create_index("ix_products_name", "products", ["product_name"])

    # 7. Inventory lots
    op.create_table(
        "inventory",
        sa.Column("inventory_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("branch_id", sa.Integer, sa.ForeignKey("branches.branch_id"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("expiry_date", sa.Date),
        sa.CheckConstraint("quantity >= 0", name="ck_inventory_qty_positive"),
    )
    op.create_index("ix_inventory_product_branch", "inventory", ["product_id", "branch_id"])

    # 8. Reorder rules
    op.create_table(
        "reorder_rules",
        sa.Column("reorder_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id")),
        sa.Column("branch_id", sa.Integer, sa.ForeignKey("branches.branch_id")),
        sa.Column("supplier_id", sa.Integer, sa.ForeignKey("suppliers.supplier_id")),
        sa.Column("owner_user_id", sa.Integer, sa.ForeignKey("users.user_id")),
        sa.Column("threshold_quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("reorder_quantity", sa.Integer, nullable=False, server_default="0"),
        sa.CheckConstraint("threshold_quantity >= 0", name="ck_reorder_threshold_positive"),
    )
    op.create_index("ix_reorder_rules_product_branch", "reorder_rules", ["product_id", "branch_id"])

    # 9. Supplier orders
    op.create_table(
        "supplier_orders",
        sa.Column("supplier_order_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("supplier_id", sa.Integer, sa.ForeignKey("suppliers.supplier_id")),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("branch_id", sa.Integer, sa.ForeignKey("branches.branch_id"), nullable=False),
        sa.Column("employee_id", sa.Integer, sa.ForeignKey("users.user_id")),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("order_type", sa.String(20), nullable=False, server_default="manual"),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint(
            "status IN ('pending', 'approved', 'delivered', 'cancelled')",
            name="ck_supplier_order_status",
        ),
        sa.CheckConstraint("order_type IN ('manual', 'automated')", name="ck_supplier_order_type"),
    )
    op.create_index("ix_supplier_orders_product_branch", "supplier_orders", ["product_id", "branch_id"])
    op.create_index(
        "uq_supplier_orders_pending_automated",
        "supplier_orders",
        ["product_id", "branch_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending' AND order_type = 'automated'"),
    )

    # 10. Event log
    op.create_table(
        "event_log",
        sa.Column("log_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.user_id")),
        sa.Column("log_type", sa.String(30), nullable=False),
        sa.Column("timestamp_utc", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("description", sa.Text, nullable=False),
        sa.CheckConstraint(
            "log_type IN ('inventory_change', 'add_record', 'edit_record', 'plan_email')",
            name="ck_event_log_type",
        ),
    )
    op.create_index("ix_event_log_type_time", "event_log", ["log_type", "timestamp_utc"])

    # 11. Prescriptions
    op.create_table(
        "prescriptions",
        sa.Column("prescription_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.user_id")),
        sa.Column("prescription_name", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 12. Approvals
    op.create_table(
        "approvals",
        sa.Column("approval_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("prescription_id", sa.Integer, sa.ForeignKey("prescriptions.prescription_id")),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id")),
        sa.Column("product_name", sa.String(255)),
        sa.Column("quantity", sa.Integer),
        sa.Column("prescription_expiry_date", sa.Date),
    )

    # 13. Shippings
    op.create_table(
        "shippings",
        sa.Column("shipping_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.user_id")),
        sa.Column("is_delivery", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("branch_id", sa.Integer, sa.ForeignKey("branches.branch_id")),
        sa.Column("address_id", sa.Integer, sa.ForeignKey("addresses.address_id")),
    )

    # 14. Prescription plans
    op.create_table(
        "prescription_plans",
        sa.Column("plan_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.user_id")),
        sa.Column("approval_id", sa.Integer, sa.ForeignKey("approvals.approval_id")),
        sa.Column("shipping_id", sa.Integer, sa.ForeignKey("shippings.shipping_id")),
        sa.Column("creation_date", sa.Date),
        sa.Column("status", sa.String(20), nullable=False, server_default="ongoing"),
        sa.Column("total_amount", sa.Numeric(10, 3)),
        sa.CheckConstraint("status IN ('ongoing', 'expired', 'cancelled')", name="ck_plan_status"),
    )

    # 15. Plan notification jobs
    op.create_table(
        "plan_notification_jobs",
        sa.Column("job_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("plan_id", sa.Integer, nullable=False),
        sa.Column("user_id", sa.Integer, sa.ForeignKey("users.user_id")),
        sa.Column("stage", sa.String(20), nullable=False),
        sa.Column("offset_days", sa.Integer, nullable=False),
        sa.Column("send_on_utc", sa.DateTime, nullable=False),
        sa.Column("dedup_key", sa.String(100), nullable=False),
        sa.Column("sent_at", sa.DateTime),
        sa.Column("stock_applied_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("dedup_key", name="uq_plan_notification_dedup_key"),
    )
    op.create_index("ix_plan_notification_due", "plan_notification_jobs", ["sent_at", "send_on_utc"])
    op.create_index("ix_plan_notification_plan", "plan_notification_jobs", ["plan_id"])


def downgrade() -> None:
    tables = [
        "plan_notification_jobs",
        "prescription_plans",
        "shippings",
        "approvals",
        "prescriptions",
        "event_log",
        "supplier_orders",
        "reorder_rules",
        "inventory",
        "products",
        "suppliers",
        "branches",
        "addresses",
        "cities",
        "users",
    ]
    for table in tables:
        op.drop_table(table)

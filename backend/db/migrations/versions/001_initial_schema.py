"""
Initial schema - catalog, replenishment workflow, and archive tables

Revision ID: 001
Revises: None
Create Date: 2026-10-17
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    # 1. Stores
    op.create_table(
        "stores",
        sa.Column("store_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("address", sa.String(255)),
        sa.Column("city", sa.String(50)),
        sa.Column("state", sa.String(50)),
        sa.Column("postal_code", sa.String(10)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 2. Products
    op.create_table(
        "products",
        sa.Column("product_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sku", sa.String(50), nullable=False, unique=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("package_size", sa.String(50)),
        sa.Column("unit", sa.String(20)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_products_category", "products", ["category"])

    # 3. Shelves
    op.create_table(
        "shelves",
        sa.Column("shelf_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("shelf_code", sa.String(50), nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.store_id"), nullable=False),
        sa.Column("category", sa.String(100), nullable=False),
        sa.Column("location_description", sa.String(100)),
        sa.Column("capacity", sa.Integer, nullable=False),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("store_id", "shelf_code", name="uq_shelf_code_per_store"),
        sa.CheckConstraint("capacity >= 1", name="ck_shelves_capacity_positive"),
    )
    op.create_index("ix_shelves_store", "shelves", ["store_id"])

    # 4. Staff
    op.create_table(
        "staff",
        sa.Column("staff_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.store_id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("role", sa.String(20), nullable=False, server_default="staff"),
        sa.Column("email", sa.String(150), nullable=False, unique=True),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("role IN ('staff', 'manager')", name="ck_staff_role"),
    )
    op.create_index("ix_staff_store", "staff", ["store_id"])

    # 5. Shelf stock
    op.create_table(
        "shelf_stock",
        sa.Column("shelf_stock_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("shelf_id", sa.Integer, sa.ForeignKey("shelves.shelf_id"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_restocked_at", sa.DateTime),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("product_id", "shelf_id", name="uq_shelf_stock_product_shelf"),
        sa.CheckConstraint("quantity >= 0", name="ck_shelf_stock_quantity_nonnegative"),
    )
    op.create_index("ix_shelf_stock_shelf", "shelf_stock", ["shelf_id"])

    # 6. Sales events
    op.create_table(
        "sales_events",
        sa.Column("sale_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.store_id"), nullable=False),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("sold_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.CheckConstraint("quantity > 0", name="ck_sales_events_quantity_positive"),
    )
    op.create_index("ix_sales_product_time", "sales_events", ["product_id", "sold_at"])
    op.create_index("ix_sales_store_time", "sales_events", ["store_id", "sold_at"])

    # 7. Replenishment alerts (active)
    op.create_table(
        "replenishment_alerts",
        sa.Column("alert_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("shelf_id", sa.Integer, sa.ForeignKey("shelves.shelf_id"), nullable=False),
        sa.Column("predicted_depletion_date", sa.Date, nullable=False),
        sa.Column("urgency", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="open"),
        sa.Column("warehouse_status", sa.String(20)),
        sa.Column("cancellation_reason", sa.Text),
        sa.Column("fulfillment_note", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime),
        sa.UniqueConstraint("product_id", "shelf_id", name="uq_alert_active_pair"),
    )
    op.create_index("ix_alerts_status", "replenishment_alerts", ["status"])

    # 8. Stock requests (active)
    op.create_table(
        "stock_requests",
        sa.Column("request_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.store_id"), nullable=False),
        sa.Column("shelf_id", sa.Integer, sa.ForeignKey("shelves.shelf_id")),
        sa.Column("alert_id", sa.Integer),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="requested"),
        sa.Column("requested_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("estimated_arrival", sa.DateTime),
        sa.UniqueConstraint("product_id", "store_id", name="uq_request_active_pair"),
        sa.CheckConstraint("quantity > 0", name="ck_stock_requests_quantity_positive"),
        sa.CheckConstraint("status IN ('requested', 'in_transit')", name="ck_stock_requests_active_status"),
    )
    op.create_index("ix_requests_status", "stock_requests", ["status"])

    # 9. Restock tasks
    op.create_table(
        "restock_tasks",
        sa.Column("task_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("alert_id", sa.Integer, nullable=False),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("shelf_id", sa.Integer, sa.ForeignKey("shelves.shelf_id"), nullable=False),
        sa.Column("assigned_to", sa.Integer, sa.ForeignKey("staff.staff_id"), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("quantity_restocked", sa.Integer),
        sa.Column("assigned_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("completed_at", sa.DateTime),
    )
    op.create_index(
        "uq_task_pending_pair",
        "restock_tasks",
        ["product_id", "shelf_id"],
        unique=True,
        postgresql_where=sa.text("status = 'pending'"),
    )
    op.create_index("ix_tasks_assignee", "restock_tasks", ["assigned_to"])

    # 10. Inventory reports
    op.create_table(
        "inventory_reports",
        sa.Column("report_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("shelf_id", sa.Integer, sa.ForeignKey("shelves.shelf_id"), nullable=False),
        sa.Column("report_date", sa.Date, nullable=False),
        sa.Column("quantity_on_shelf", sa.Integer, nullable=False),
        sa.Column("quantity_restocked", sa.Integer),
        sa.Column("alert_triggered", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("product_id", "shelf_id", "report_date", name="uq_report_product_shelf_day"),
    )
    op.create_index("ix_reports_date", "inventory_reports", ["report_date"])

    # 11. Closed alerts (archive)
    op.create_table(
        "closed_replenishment_alerts",
        sa.Column("closed_alert_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("original_alert_id", sa.Integer, nullable=False, unique=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("shelf_id", sa.Integer, sa.ForeignKey("shelves.shelf_id"), nullable=False),
        sa.Column("predicted_depletion_date", sa.Date, nullable=False),
        sa.Column("urgency", sa.String(20), nullable=False),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("warehouse_status", sa.String(20)),
        sa.Column("fulfillment_note", sa.String(255)),
        sa.Column("created_at", sa.DateTime, nullable=False),
        sa.Column("closed_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_closed_alerts_pair", "closed_replenishment_alerts", ["product_id", "shelf_id"])

    # 12. Delivered requests (archive)
    op.create_table(
        "delivered_stock_requests",
        sa.Column("archive_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("original_request_id", sa.Integer, nullable=False, unique=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.store_id"), nullable=False),
        sa.Column("shelf_id", sa.Integer, sa.ForeignKey("shelves.shelf_id")),
        sa.Column("alert_id", sa.Integer),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("requested_at", sa.DateTime, nullable=False),
        sa.Column("delivered_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )

    # 13. Cancelled requests (archive)
    op.create_table(
        "cancelled_stock_requests",
        sa.Column("archive_id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("original_request_id", sa.Integer, nullable=False, unique=True),
        sa.Column("product_id", sa.Integer, sa.ForeignKey("products.product_id"), nullable=False),
        sa.Column("store_id", sa.Integer, sa.ForeignKey("stores.store_id"), nullable=False),
        sa.Column("alert_id", sa.Integer),
        sa.Column("quantity", sa.Integer, nullable=False),
        sa.Column("requested_at", sa.DateTime, nullable=False),
        sa.Column("cancellation_reason", sa.Text, nullable=False),
        sa.Column("cancelled_at", sa.DateTime, nullable=False, server_default=sa.func.now()),
    )


def downgrade() -> None:
    for table in [
        "cancelled_stock_requests",
        "delivered_stock_requests",
        "closed_replenishment_alerts",
        "inventory_reports",
        "restock_tasks",
        "stock_requests",
        "replenishment_alerts",
        "sales_events",
        "shelf_stock",
        "staff",
        "shelves",
        "products",
        "stores",
    ]:
        op.drop_table(table)

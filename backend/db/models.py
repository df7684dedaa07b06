"""
ShelfSense Database Models

13 tables for shelf-level inventory and the replenishment workflow.

Tables:
  Catalog:
  1. stores                     - Physical store locations
  2. products                   - Product catalog
  3. shelves                    - Shelves per store (capacity, category)
  4. staff                      - Store employees who perform restocks
  5. shelf_stock                - Units of a product on a shelf
  6. sales_events               - Append-only sales history

  Replenishment (active tables hold non-terminal rows only):
  7. replenishment_alerts       - Open depletion risk per (product, shelf)
  8. stock_requests             - Warehouse requests per (product, store)
  9. restock_tasks              - Staff assignments tied to an alert
  10. inventory_reports         - Daily snapshot per (product, shelf, date)

  Archive (append-only, keep the original id):
  11. closed_replenishment_alerts
  12. delivered_stock_requests
  13. cancelled_stock_requests
"""

from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Enum,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    text,
)

from core.lifecycle import (
    AlertStatus,
    ClosedAlertStatus,
    RequestStatus,
    TaskStatus,
    Urgency,
    WarehouseStatus,
)
from db.session import Base


def _state_column(enum_cls, **kwargs):
    """String-backed enum column that stores the member values."""
    return Column(
        Enum(
            enum_cls,
            native_enum=False,
            length=20,
            values_callable=lambda members: [m.value for m in members],
            validate_strings=True,
        ),
        **kwargs,
    )


# ─── 1. Stores ──────────────────────────────────────────────────────────────


class Store(Base):
    __tablename__ = "stores"

    store_id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    address = Column(String(255))
    city = Column(String(50))
    state = Column(String(50))
    postal_code = Column(String(10))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)


# ─── 2. Products ────────────────────────────────────────────────────────────


class Product(Base):
    __tablename__ = "products"

    product_id = Column(Integer, primary_key=True, autoincrement=True)
    sku = Column(String(50), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    category = Column(String(100), nullable=False)
    package_size = Column(String(50))
    unit = Column(String(20))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_products_category", "category"),)


# ─── 3. Shelves ─────────────────────────────────────────────────────────────


class Shelf(Base):
    __tablename__ = "shelves"

    shelf_id = Column(Integer, primary_key=True, autoincrement=True)
    shelf_code = Column(String(50), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.store_id"), nullable=False)
    category = Column(String(100), nullable=False)
    location_description = Column(String(100))
    capacity = Column(Integer, nullable=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("store_id", "shelf_code", name="uq_shelf_code_per_store"),
        Index("ix_shelves_store", "store_id"),
        CheckConstraint("capacity >= 1", name="capacity_positive"),
    )


# ─── 4. Staff ───────────────────────────────────────────────────────────────


class Staff(Base):
    __tablename__ = "staff"

    staff_id = Column(Integer, primary_key=True, autoincrement=True)
    store_id = Column(Integer, ForeignKey("stores.store_id"), nullable=False)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default="staff")
    email = Column(String(150), nullable=False, unique=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_staff_store", "store_id"),
        CheckConstraint("role IN ('staff', 'manager')", name="role"),
    )


# ─── 5. Shelf Stock ─────────────────────────────────────────────────────────


class ShelfStock(Base):
    """Units of one product on one shelf. Capacity lives on the shelf."""

    __tablename__ = "shelf_stock"

    shelf_stock_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.shelf_id"), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)
    last_restocked_at = Column(DateTime)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("product_id", "shelf_id", name="uq_shelf_stock_product_shelf"),
        Index("ix_shelf_stock_shelf", "shelf_id"),
        CheckConstraint("quantity >= 0", name="quantity_nonnegative"),
    )


# ─── 6. Sales Events ────────────────────────────────────────────────────────


class SalesEvent(Base):
    __tablename__ = "sales_events"

    sale_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.store_id"), nullable=False)
    quantity = Column(Integer, nullable=False)
    sold_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_sales_product_time", "product_id", "sold_at"),
        Index("ix_sales_store_time", "store_id", "sold_at"),
        CheckConstraint("quantity > 0", name="quantity_positive"),
    )


# ─── 7. Replenishment Alerts ────────────────────────────────────────────────


class ReplenishmentAlert(Base):
    """Active depletion risk. One row per (product, shelf) at most."""

    __tablename__ = "replenishment_alerts"

    alert_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.shelf_id"), nullable=False)
    predicted_depletion_date = Column(Date, nullable=False)
    urgency = _state_column(Urgency, nullable=False)
    status = _state_column(AlertStatus, nullable=False, default=AlertStatus.OPEN)
    warehouse_status = _state_column(WarehouseStatus, nullable=True)
    cancellation_reason = Column(Text)
    fulfillment_note = Column(String(255))
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint("product_id", "shelf_id", name="uq_alert_active_pair"),
        Index("ix_alerts_status", "status"),
    )


# ─── 8. Stock Requests ──────────────────────────────────────────────────────


class StockRequest(Base):
    """Active warehouse request. One row per (product, store) at most."""

    __tablename__ = "stock_requests"

    request_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.store_id"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.shelf_id"), nullable=True)  # target shelf for delivery
    alert_id = Column(Integer)  # triggering alert; survives the alert's archival
    quantity = Column(Integer, nullable=False)
    status = _state_column(RequestStatus, nullable=False, default=RequestStatus.REQUESTED)
    requested_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    estimated_arrival = Column(DateTime)

    __table_args__ = (
        UniqueConstraint("product_id", "store_id", name="uq_request_active_pair"),
        Index("ix_requests_status", "status"),
        CheckConstraint("quantity > 0", name="quantity_positive"),
        CheckConstraint("status IN ('requested', 'in_transit')", name="active_status"),
    )


# ─── 9. Restock Tasks ───────────────────────────────────────────────────────


class RestockTask(Base):
    __tablename__ = "restock_tasks"

    task_id = Column(Integer, primary_key=True, autoincrement=True)
    alert_id = Column(Integer, nullable=False)  # original alert id, kept after archival
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.shelf_id"), nullable=False)
    assigned_to = Column(Integer, ForeignKey("staff.staff_id"), nullable=False)
    status = _state_column(TaskStatus, nullable=False, default=TaskStatus.PENDING)
    quantity_restocked = Column(Integer)
    assigned_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index(
            "uq_task_pending_pair",
            "product_id",
            "shelf_id",
            unique=True,
            sqlite_where=text("status = 'pending'"),
            postgresql_where=text("status = 'pending'"),
        ),
        Index("ix_tasks_assignee", "assigned_to"),
    )


# ─── 10. Inventory Reports ──────────────────────────────────────────────────


class InventoryReport(Base):
    """Daily snapshot; repeated logging on the same day updates in place."""

    __tablename__ = "inventory_reports"

    report_id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.shelf_id"), nullable=False)
    report_date = Column(Date, nullable=False)
    quantity_on_shelf = Column(Integer, nullable=False)
    quantity_restocked = Column(Integer)
    alert_triggered = Column(Boolean, nullable=False, default=False)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    __table_args__ = (
        UniqueConstraint("product_id", "shelf_id", "report_date", name="uq_report_product_shelf_day"),
        Index("ix_reports_date", "report_date"),
    )


# ═══════════════════════════════════════════════════════════════════════════
# Archive tables (11-13)
# ═══════════════════════════════════════════════════════════════════════════


class ClosedReplenishmentAlert(Base):
    __tablename__ = "closed_replenishment_alerts"

    closed_alert_id = Column(Integer, primary_key=True, autoincrement=True)
    original_alert_id = Column(Integer, nullable=False, unique=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.shelf_id"), nullable=False)
    predicted_depletion_date = Column(Date, nullable=False)
    urgency = _state_column(Urgency, nullable=False)
    status = _state_column(ClosedAlertStatus, nullable=False)
    warehouse_status = _state_column(WarehouseStatus, nullable=True)
    fulfillment_note = Column(String(255))
    created_at = Column(DateTime, nullable=False)
    closed_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (Index("ix_closed_alerts_pair", "product_id", "shelf_id"),)


class DeliveredStockRequest(Base):
    __tablename__ = "delivered_stock_requests"

    archive_id = Column(Integer, primary_key=True, autoincrement=True)
    original_request_id = Column(Integer, nullable=False, unique=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.store_id"), nullable=False)
    shelf_id = Column(Integer, ForeignKey("shelves.shelf_id"), nullable=True)
    alert_id = Column(Integer)
    quantity = Column(Integer, nullable=False)
    requested_at = Column(DateTime, nullable=False)
    delivered_at = Column(DateTime, nullable=False, default=datetime.utcnow)


class CancelledStockRequest(Base):
    __tablename__ = "cancelled_stock_requests"

    archive_id = Column(Integer, primary_key=True, autoincrement=True)
    original_request_id = Column(Integer, nullable=False, unique=True)
    product_id = Column(Integer, ForeignKey("products.product_id"), nullable=False)
    store_id = Column(Integer, ForeignKey("stores.store_id"), nullable=False)
    alert_id = Column(Integer)
    quantity = Column(Integer, nullable=False)
    requested_at = Column(DateTime, nullable=False)
    cancellation_reason = Column(Text, nullable=False)
    cancelled_at = Column(DateTime, nullable=False, default=datetime.utcnow)


def shelf_utilization_pct(quantity: int, capacity: int | None) -> float:
    """Quantity on shelf as a percentage of capacity, rounded to 2 places."""
    if not capacity or capacity <= 0:
        return 0.0
    return round(quantity * 100.0 / capacity, 2)

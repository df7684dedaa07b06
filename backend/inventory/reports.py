"""
Inventory Reports — daily shelf snapshots and read-only projections.

One report per (product, shelf, day). Logging the same pair twice on one
day updates the row in place: quantity_on_shelf is refreshed,
quantity_restocked accumulates, alert_triggered is OR-ed.
"""

from datetime import date, datetime

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError, ValidationError
from core.lifecycle import TaskStatus
from db.models import (
    InventoryReport,
    Product,
    ReplenishmentAlert,
    RestockTask,
    Shelf,
    ShelfStock,
    shelf_utilization_pct,
)

logger = structlog.get_logger()


async def log_inventory_report(
    db: AsyncSession,
    product_id: int,
    shelf_id: int,
    quantity_on_shelf: int,
    quantity_restocked: int | None = None,
    alert_triggered: bool = False,
    report_date: date | None = None,
) -> InventoryReport:
    """Upsert today's snapshot for the pair. Flushes; the caller commits."""
    report_date = report_date or datetime.utcnow().date()
    result = await db.execute(
        select(InventoryReport).where(
            InventoryReport.product_id == product_id,
            InventoryReport.shelf_id == shelf_id,
            InventoryReport.report_date == report_date,
        )
    )
    report = result.scalar_one_or_none()

    if report is None:
        report = InventoryReport(
            product_id=product_id,
            shelf_id=shelf_id,
            report_date=report_date,
            quantity_on_shelf=quantity_on_shelf,
            quantity_restocked=quantity_restocked,
            alert_triggered=alert_triggered,
        )
        db.add(report)
    else:
        report.quantity_on_shelf = quantity_on_shelf
        if quantity_restocked:
            report.quantity_restocked = (report.quantity_restocked or 0) + quantity_restocked
        report.alert_triggered = bool(report.alert_triggered or alert_triggered)
        report.updated_at = datetime.utcnow()

    await db.flush()
    logger.debug(
        "inventory.report_logged",
        product_id=product_id,
        shelf_id=shelf_id,
        report_date=report_date.isoformat(),
        quantity_on_shelf=quantity_on_shelf,
        quantity_restocked=report.quantity_restocked,
    )
    return report


async def create_inventory_report(
    db: AsyncSession,
    product_id: int,
    shelf_id: int,
    quantity_on_shelf: int,
    report_date: date,
    quantity_restocked: int | None = None,
    alert_triggered: bool = False,
) -> dict:
    """Manual report entry, shaped like get_inventory_report. A second report for the same day is a conflict."""
    if quantity_on_shelf < 0:
        raise ValidationError("quantity_on_shelf cannot be negative")
    if quantity_restocked is not None and quantity_restocked < 0:
        raise ValidationError("quantity_restocked cannot be negative")
    if await db.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    shelf = await db.get(Shelf, shelf_id)
    if shelf is None:
        raise NotFoundError(f"Shelf {shelf_id} not found")

    existing = await db.execute(
        select(InventoryReport.report_id).where(
            InventoryReport.product_id == product_id,
            InventoryReport.shelf_id == shelf_id,
            InventoryReport.report_date == report_date,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(
            f"An inventory report for product {product_id} on shelf {shelf_id} already exists for {report_date}"
        )

    report = InventoryReport(
        product_id=product_id,
        shelf_id=shelf_id,
        report_date=report_date,
        quantity_on_shelf=quantity_on_shelf,
        quantity_restocked=quantity_restocked,
        alert_triggered=alert_triggered,
    )
    db.add(report)
    await db.commit()
    await db.refresh(report)
    return _report_row(report, shelf.capacity)


async def list_inventory_reports(
    db: AsyncSession,
    report_date: date | None = None,
    shelf_id: int | None = None,
    limit: int = 200,
) -> list[dict]:
    """Reports enriched with shelf capacity and utilisation, newest first."""
    query = select(InventoryReport, Shelf.capacity).join(Shelf, Shelf.shelf_id == InventoryReport.shelf_id)
    if report_date:
        query = query.where(InventoryReport.report_date == report_date)
    if shelf_id:
        query = query.where(InventoryReport.shelf_id == shelf_id)
    query = query.order_by(InventoryReport.report_date.desc(), InventoryReport.report_id.desc()).limit(limit)

    result = await db.execute(query)
    return [_report_row(report, capacity) for report, capacity in result.all()]


async def get_inventory_report(db: AsyncSession, report_id: int) -> dict:
    result = await db.execute(
        select(InventoryReport, Shelf.capacity)
        .join(Shelf, Shelf.shelf_id == InventoryReport.shelf_id)
        .where(InventoryReport.report_id == report_id)
    )
    row = result.one_or_none()
    if row is None:
        raise NotFoundError(f"Inventory report {report_id} not found")
    report, capacity = row
    return _report_row(report, capacity)


def _report_row(report: InventoryReport, capacity: int) -> dict:
    return {
        "report_id": report.report_id,
        "product_id": report.product_id,
        "shelf_id": report.shelf_id,
        "report_date": report.report_date,
        "quantity_on_shelf": report.quantity_on_shelf,
        "quantity_restocked": report.quantity_restocked,
        "alert_triggered": report.alert_triggered,
        "capacity": capacity,
        "utilization_pct": shelf_utilization_pct(report.quantity_on_shelf, capacity),
        "created_at": report.created_at,
    }


async def get_inventory_summary(db: AsyncSession) -> list[dict]:
    """
    Current state of every shelf stock row.

    Includes utilisation, whether an active alert exists for the pair, and
    the most recent completed restock. Does not change state.
    """
    last_restock = (
        select(
            RestockTask.product_id,
            RestockTask.shelf_id,
            func.max(RestockTask.completed_at).label("last_restock_at"),
        )
        .where(RestockTask.status == TaskStatus.COMPLETED)
        .group_by(RestockTask.product_id, RestockTask.shelf_id)
        .subquery()
    )

    result = await db.execute(
        select(
            ShelfStock,
            Shelf,
            Product.name,
            ReplenishmentAlert.alert_id,
            last_restock.c.last_restock_at,
        )
        .join(Shelf, Shelf.shelf_id == ShelfStock.shelf_id)
        .join(Product, Product.product_id == ShelfStock.product_id)
        .outerjoin(
            ReplenishmentAlert,
            (ReplenishmentAlert.product_id == ShelfStock.product_id)
            & (ReplenishmentAlert.shelf_id == ShelfStock.shelf_id),
        )
        .outerjoin(
            last_restock,
            (last_restock.c.product_id == ShelfStock.product_id) & (last_restock.c.shelf_id == ShelfStock.shelf_id),
        )
        .order_by(ShelfStock.shelf_stock_id)
    )

    summary = []
    for stock, shelf, product_name, alert_id, last_restock_at in result.all():
        summary.append(
            {
                "shelf_stock_id": stock.shelf_stock_id,
                "product_id": stock.product_id,
                "product_name": product_name,
                "shelf_id": shelf.shelf_id,
                "shelf_code": shelf.shelf_code,
                "store_id": shelf.store_id,
                "quantity": stock.quantity,
                "capacity": shelf.capacity,
                "utilization_pct": shelf_utilization_pct(stock.quantity, shelf.capacity),
                "has_active_alert": alert_id is not None,
                "last_restock_at": last_restock_at,
            }
        )
    return summary

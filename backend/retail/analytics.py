"""
Replenishment analytics — read-only projections for store managers.

  restock_frequency_summary   how often each (product, shelf) raises alerts
  low_utilization_with_sales  nearly-empty shelves whose product still sells
"""

from datetime import datetime, timedelta

import pandas as pd
from sqlalchemy import func, select, union_all
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ClosedReplenishmentAlert, ReplenishmentAlert, SalesEvent, Shelf, ShelfStock, shelf_utilization_pct

LOW_UTILIZATION_PCT = 20.0
RECENT_SALES_DAYS = 7
MIN_RECENT_SALES = 2


async def restock_frequency_summary(db: AsyncSession) -> list[dict]:
    """
    Alert history per (product, shelf), active and archived alerts combined.

    avg_restock_frequency_days = day span between first and last alert / alert count
    """
    history = union_all(
        select(ReplenishmentAlert.product_id, ReplenishmentAlert.shelf_id, ReplenishmentAlert.created_at),
        select(
            ClosedReplenishmentAlert.product_id,
            ClosedReplenishmentAlert.shelf_id,
            ClosedReplenishmentAlert.created_at,
        ),
    )
    result = await db.execute(history)
    frame = pd.DataFrame(result.all(), columns=["product_id", "shelf_id", "created_at"])
    if frame.empty:
        return []

    frame["day"] = pd.to_datetime(frame["created_at"]).dt.normalize()
    grouped = (
        frame.groupby(["product_id", "shelf_id"])
        .agg(alert_count=("day", "size"), first_day=("day", "min"), last_day=("day", "max"))
        .reset_index()
    )
    grouped["total_days"] = (grouped["last_day"] - grouped["first_day"]).dt.days
    grouped["avg_restock_frequency_days"] = (grouped["total_days"] / grouped["alert_count"]).round(2)

    return [
        {
            "product_id": int(row.product_id),
            "shelf_id": int(row.shelf_id),
            "alert_count": int(row.alert_count),
            "total_days": int(row.total_days),
            "avg_restock_frequency_days": float(row.avg_restock_frequency_days),
        }
        for row in grouped.sort_values(["product_id", "shelf_id"]).itertuples(index=False)
    ]


async def low_utilization_with_sales(
    db: AsyncSession,
    threshold_pct: float = LOW_UTILIZATION_PCT,
    days: int = RECENT_SALES_DAYS,
    min_sales: int = MIN_RECENT_SALES,
    now: datetime | None = None,
) -> list[dict]:
    """Shelf stock under the utilisation threshold whose product sold at least min_sales times recently."""
    since = (now or datetime.utcnow()) - timedelta(days=days)
    recent_sales = (
        select(
            SalesEvent.product_id,
            func.count(SalesEvent.sale_id).label("sales_count"),
            func.max(SalesEvent.sold_at).label("last_sale_at"),
        )
        .where(SalesEvent.sold_at >= since)
        .group_by(SalesEvent.product_id)
        .subquery()
    )

    result = await db.execute(
        select(
            ShelfStock.product_id,
            ShelfStock.shelf_id,
            ShelfStock.quantity,
            Shelf.capacity,
            recent_sales.c.sales_count,
            recent_sales.c.last_sale_at,
        )
        .join(Shelf, Shelf.shelf_id == ShelfStock.shelf_id)
        .join(recent_sales, recent_sales.c.product_id == ShelfStock.product_id)
        .where(recent_sales.c.sales_count >= min_sales)
        .order_by(ShelfStock.shelf_stock_id)
    )

    rows = []
    for product_id, shelf_id, quantity, capacity, sales_count, last_sale_at in result.all():
        utilization = shelf_utilization_pct(quantity, capacity)
        if utilization >= threshold_pct:
            continue
        rows.append(
            {
                "product_id": product_id,
                "shelf_id": shelf_id,
                "quantity": quantity,
                "capacity": capacity,
                "utilization_pct": utilization,
                "sales_count": sales_count,
                "last_sale_at": last_sale_at,
            }
        )
    return rows

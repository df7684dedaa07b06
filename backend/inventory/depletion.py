"""
Depletion Predictor.

Projects when each (product, shelf) pair runs empty at the product's
current sales velocity and classifies the urgency.

  days_to_depletion = round(quantity / velocity, 2)     velocity > 0 only
  expected_date     = today + round(days_to_depletion) days
  is_low_stock      = days_to_depletion < low_stock_threshold_days

Pairs without a velocity signal are never low stock.
"""

from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from core.lifecycle import Urgency
from db.models import Product, Shelf, ShelfStock, shelf_utilization_pct
from inventory.velocity import load_sales_velocity

logger = structlog.get_logger()

# Upper bound (inclusive) in days → urgency, evaluated low → high
URGENCY_THRESHOLDS = (
    (1.0, Urgency.CRITICAL),
    (2.0, Urgency.HIGH),
    (4.0, Urgency.MEDIUM),
)


def classify_urgency(days_to_depletion: float) -> Urgency:
    for upper_bound, urgency in URGENCY_THRESHOLDS:
        if days_to_depletion <= upper_bound:
            return urgency
    return Urgency.LOW


@dataclass
class DepletionPrediction:
    """Projection for a single shelf stock row."""

    shelf_stock_id: int
    product_id: int
    product_name: str
    shelf_id: int
    shelf_code: str
    store_id: int
    quantity: int
    capacity: int
    utilization_pct: float
    avg_daily_sales: float | None
    days_to_depletion: float | None
    expected_depletion_date: date | None
    is_low_stock: bool
    urgency: Urgency | None

    @property
    def refill_quantity(self) -> int:
        return max(self.capacity - self.quantity, 0)

    def to_dict(self) -> dict:
        return asdict(self)


def project_depletion(
    quantity: int,
    velocity: float | None,
    today: date,
    threshold_days: float,
) -> tuple[float | None, date | None, bool, Urgency | None]:
    """Return (days_to_depletion, expected_date, is_low_stock, urgency)."""
    if not velocity or velocity <= 0:
        return None, None, False, None

    days = round(quantity / velocity, 2)
    expected = today + timedelta(days=round(days))
    return days, expected, days < threshold_days, classify_urgency(days)


async def predict_depletion(
    db: AsyncSession,
    today: date | None = None,
    settings: Settings | None = None,
) -> list[DepletionPrediction]:
    """Projection for every shelf stock row, ordered by shelf_stock_id. Read only."""
    settings = settings or get_settings()
    today = today or datetime.utcnow().date()
    velocity = await load_sales_velocity(db, today=today, settings=settings)

    result = await db.execute(
        select(ShelfStock, Shelf, Product)
        .join(Shelf, Shelf.shelf_id == ShelfStock.shelf_id)
        .join(Product, Product.product_id == ShelfStock.product_id)
        .order_by(ShelfStock.shelf_stock_id)
    )

    predictions = []
    for stock, shelf, product in result.all():
        avg = velocity.get(stock.product_id)
        days, expected, low, urgency = project_depletion(
            stock.quantity, avg, today, settings.low_stock_threshold_days
        )
        predictions.append(
            DepletionPrediction(
                shelf_stock_id=stock.shelf_stock_id,
                product_id=stock.product_id,
                product_name=product.name,
                shelf_id=stock.shelf_id,
                shelf_code=shelf.shelf_code,
                store_id=shelf.store_id,
                quantity=stock.quantity,
                capacity=shelf.capacity,
                utilization_pct=shelf_utilization_pct(stock.quantity, shelf.capacity),
                avg_daily_sales=round(avg, 2) if avg is not None else None,
                days_to_depletion=days,
                expected_depletion_date=expected,
                is_low_stock=low,
                urgency=urgency,
            )
        )

    logger.info(
        "depletion.predicted",
        pairs=len(predictions),
        low_stock=sum(1 for p in predictions if p.is_low_stock),
    )
    return predictions

"""
Sales Velocity Estimator.

Average daily units sold per product, computed from the append-only
sales history. Two window policies are supported:

  selling_days   mean of per-day summed units over days with at least one
                 sale (zero-sale days are not counted)
  calendar_days  total units divided by the calendar days in the window;
                 the window is the lookback period when one is configured,
                 otherwise first sale day through today inclusive

Products without sales in the window are absent from the result and are
treated downstream as "no velocity signal".
"""

from datetime import date, datetime, timedelta

import pandas as pd
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import Settings, get_settings
from db.models import SalesEvent

logger = structlog.get_logger()

VELOCITY_POLICIES = ("selling_days", "calendar_days")


def average_daily_units(
    sales: pd.DataFrame,
    policy: str = "selling_days",
    today: date | None = None,
    lookback_days: int | None = None,
) -> dict[int, float]:
    """
    Collapse sales rows into product_id -> average daily units.

    Args:
        sales: DataFrame with product_id, quantity, sold_at columns.
        policy: "selling_days" or "calendar_days".
        today: Reference day for the calendar window (defaults to today, UTC).
        lookback_days: Fixed window length for the calendar policy.
    """
    if policy not in VELOCITY_POLICIES:
        raise ValueError(f"Unknown velocity window policy: {policy}")
    if sales.empty:
        return {}

    frame = sales.assign(day=pd.to_datetime(sales["sold_at"]).dt.normalize())
    daily = frame.groupby(["product_id", "day"], as_index=False)["quantity"].sum()

    if policy == "selling_days":
        velocity = daily.groupby("product_id")["quantity"].mean()
    else:
        totals = daily.groupby("product_id")["quantity"].sum()
        if lookback_days:
            window_days = pd.Series(lookback_days, index=totals.index)
        else:
            reference = pd.Timestamp(today or datetime.utcnow().date())
            first_day = daily.groupby("product_id")["day"].min()
            window_days = ((reference - first_day).dt.days + 1).clip(lower=1)
        velocity = totals / window_days

    return {int(product_id): float(units) for product_id, units in velocity.items()}


async def load_sales_velocity(
    db: AsyncSession,
    today: date | None = None,
    settings: Settings | None = None,
) -> dict[int, float]:
    """Read the sales window from the database and compute velocity per product."""
    settings = settings or get_settings()
    today = today or datetime.utcnow().date()

    query = select(SalesEvent.product_id, SalesEvent.quantity, SalesEvent.sold_at)
    if settings.velocity_lookback_days:
        # Window covers the last N calendar days including today
        first_day = today - timedelta(days=settings.velocity_lookback_days - 1)
        window_start = datetime.combine(first_day, datetime.min.time())
        query = query.where(SalesEvent.sold_at >= window_start)

    result = await db.execute(query)
    rows = result.all()
    sales = pd.DataFrame(rows, columns=["product_id", "quantity", "sold_at"])

    velocity = average_daily_units(
        sales,
        policy=settings.velocity_window_policy,
        today=today,
        lookback_days=settings.velocity_lookback_days,
    )
    logger.debug(
        "velocity.computed",
        products=len(velocity),
        sales_rows=len(sales),
        policy=settings.velocity_window_policy,
    )
    return velocity

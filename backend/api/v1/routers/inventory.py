"""
Inventory Router — shelf summary, daily reports, and replenishment analytics.
"""

from datetime import date, datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_roles
from inventory.reports import (
    create_inventory_report,
    get_inventory_report,
    get_inventory_summary,
    list_inventory_reports,
)
from retail.analytics import (
    LOW_UTILIZATION_PCT,
    MIN_RECENT_SALES,
    RECENT_SALES_DAYS,
    low_utilization_with_sales,
    restock_frequency_summary,
)

router = APIRouter(prefix="/api/v1/inventory", tags=["inventory"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class InventorySummaryItem(BaseModel):
    shelf_stock_id: int
    product_id: int
    product_name: str
    shelf_id: int
    shelf_code: str
    store_id: int
    quantity: int
    capacity: int
    utilization_pct: float
    has_active_alert: bool
    last_restock_at: datetime | None


class InventoryReportCreate(BaseModel):
    product_id: int
    shelf_id: int
    report_date: date
    quantity_on_shelf: int = Field(..., ge=0)
    quantity_restocked: int | None = Field(None, ge=0)
    alert_triggered: bool = False


class InventoryReportResponse(BaseModel):
    report_id: int
    product_id: int
    shelf_id: int
    report_date: date
    quantity_on_shelf: int
    quantity_restocked: int | None
    alert_triggered: bool
    capacity: int | None = None
    utilization_pct: float | None = None
    created_at: datetime

    model_config = {"from_attributes": True}


class RestockFrequencyItem(BaseModel):
    product_id: int
    shelf_id: int
    alert_count: int
    total_days: int
    avg_restock_frequency_days: float


class LowUtilizationItem(BaseModel):
    product_id: int
    shelf_id: int
    quantity: int
    capacity: int
    utilization_pct: float
    sales_count: int
    last_sale_at: datetime | None


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/summary", response_model=list[InventorySummaryItem])
async def inventory_summary(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Current quantity, utilisation and alert state per shelf stock row."""
    return await get_inventory_summary(db)


@router.get("/reports", response_model=list[InventoryReportResponse])
async def list_reports(
    report_date: date | None = None,
    shelf_id: int | None = None,
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await list_inventory_reports(db, report_date=report_date, shelf_id=shelf_id, limit=limit)


@router.get("/reports/{report_id}", response_model=InventoryReportResponse)
async def get_report(
    report_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await get_inventory_report(db, report_id)


@router.post("/reports", response_model=InventoryReportResponse, status_code=201)
async def create_report(
    body: InventoryReportCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Manual daily report. 409 when the pair already has one for that day."""
    return await create_inventory_report(
        db,
        product_id=body.product_id,
        shelf_id=body.shelf_id,
        quantity_on_shelf=body.quantity_on_shelf,
        report_date=body.report_date,
        quantity_restocked=body.quantity_restocked,
        alert_triggered=body.alert_triggered,
    )


@router.get("/restock-frequency", response_model=list[RestockFrequencyItem])
async def restock_frequency(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Alert count and average days between alerts per (product, shelf)."""
    return await restock_frequency_summary(db)


@router.get("/low-utilization", response_model=list[LowUtilizationItem])
async def low_utilization(
    threshold_pct: float = Query(LOW_UTILIZATION_PCT, gt=0, le=100),
    days: int = Query(RECENT_SALES_DAYS, ge=1, le=365),
    min_sales: int = Query(MIN_RECENT_SALES, ge=1),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Nearly-empty shelves whose product still sells."""
    return await low_utilization_with_sales(db, threshold_pct=threshold_pct, days=days, min_sales=min_sales)

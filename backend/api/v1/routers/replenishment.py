"""
Replenishment Router — depletion prediction, the full sweep, and alerts.

  GET    /predict-depletion   projection per shelf stock row; opens missing alerts
  POST   /trigger-all         run the sweep (alerts → requests → tasks)
  GET    /alerts              active alerts
  POST   /alerts              open an alert by hand
  DELETE /alerts/{id}         requires X-Confirm-Delete: true
  GET    /closed-alerts       archived alerts, newest first
"""

from datetime import date, datetime

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from alerts import engine as alert_engine
from api.deps import get_current_user, get_db, require_roles
from core.lifecycle import AlertStatus, ClosedAlertStatus, Urgency, WarehouseStatus
from inventory.depletion import predict_depletion
from inventory.replenishment import predict_and_raise_alerts, trigger_full_replenishment

router = APIRouter(prefix="/api/v1/replenishment", tags=["replenishment"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class DepletionResponse(BaseModel):
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

    model_config = {"from_attributes": True}


class PairError(BaseModel):
    product_id: int
    shelf_id: int
    message: str


class TriggerAllResponse(BaseModel):
    alerts_created: int
    alerts_found: int
    alerts_resolved: int
    requests_created: int
    tasks_assigned: int
    pairs_processed: int
    errors: list[PairError]


class AlertCreate(BaseModel):
    product_id: int
    shelf_id: int
    predicted_depletion_date: date
    urgency: Urgency


class AlertResponse(BaseModel):
    alert_id: int
    product_id: int
    shelf_id: int
    predicted_depletion_date: date
    urgency: Urgency
    status: AlertStatus
    warehouse_status: WarehouseStatus | None
    cancellation_reason: str | None
    fulfillment_note: str | None
    created_at: datetime
    completed_at: datetime | None

    model_config = {"from_attributes": True}


class ClosedAlertResponse(BaseModel):
    closed_alert_id: int
    original_alert_id: int
    product_id: int
    shelf_id: int
    predicted_depletion_date: date
    urgency: Urgency
    status: ClosedAlertStatus
    warehouse_status: WarehouseStatus | None
    fulfillment_note: str | None
    created_at: datetime
    closed_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/predict-depletion", response_model=list[DepletionResponse])
async def get_depletion_predictions(
    low_stock_only: bool = False,
    raise_alerts: bool = True,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """
    Days to depletion and urgency for every shelf stock row.

    Opens an alert for each low-stock pair that has none, unless
    raise_alerts=false. Never files stock requests or assigns tasks.
    """
    if raise_alerts:
        predictions, _ = await predict_and_raise_alerts(db)
    else:
        predictions = await predict_depletion(db)
    if low_stock_only:
        predictions = [p for p in predictions if p.is_low_stock]
    return predictions


@router.post("/trigger-all", response_model=TriggerAllResponse)
async def trigger_all(
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Run the replenishment sweep over every shelf stock row."""
    run = await trigger_full_replenishment(db)
    return run.to_dict()


@router.get("/alerts", response_model=list[AlertResponse])
async def list_alerts(
    status: AlertStatus | None = None,
    urgency: Urgency | None = None,
    shelf_id: int | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Active alerts, newest first."""
    return await alert_engine.list_alerts(db, status=status, urgency=urgency, shelf_id=shelf_id, limit=limit)


@router.get("/alerts/{alert_id}", response_model=AlertResponse)
async def get_alert(
    alert_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await alert_engine.get_alert(db, alert_id)


@router.post("/alerts", response_model=AlertResponse, status_code=201)
async def create_alert(
    body: AlertCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Open an alert by hand. 409 when the pair already has an active alert."""
    return await alert_engine.create_manual_alert(
        db,
        product_id=body.product_id,
        shelf_id=body.shelf_id,
        predicted_depletion_date=body.predicted_depletion_date,
        urgency=body.urgency,
    )


@router.delete("/alerts/{alert_id}", status_code=204)
async def delete_alert(
    alert_id: int,
    x_confirm_delete: bool = Header(False),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Delete an active alert without archiving it."""
    if not x_confirm_delete:
        raise HTTPException(status_code=400, detail="Deletion not confirmed. Send header X-Confirm-Delete: true")
    await alert_engine.delete_alert(db, alert_id)


@router.get("/closed-alerts", response_model=list[ClosedAlertResponse])
async def list_closed_alerts(
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Archived alerts, newest first."""
    return await alert_engine.get_closed_alerts(db, limit=limit)

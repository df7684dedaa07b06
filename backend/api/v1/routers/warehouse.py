"""
Warehouse Router — the warehouse side of stock requests.

  GET /pending-requests    requested and in-transit requests, oldest first
  PUT /{id}/dispatch       requested → in_transit (ETA defaults from settings)
  PUT /{id}/deliver        → delivered; shelf restocked, alert and request archived
  PUT /{id}/cancel         → cancelled; alert reopened with the reason
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_db, require_roles
from api.v1.routers.stock_requests import StockRequestResponse
from supply_chain.receiving import mark_delivered
from supply_chain.stock_requests import list_stock_requests, mark_cancelled, mark_in_transit

router = APIRouter(prefix="/api/v1/warehouse", tags=["warehouse"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class DispatchRequest(BaseModel):
    estimated_arrival: datetime | None = None


class CancelRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=500)


class DeliveryResponse(BaseModel):
    request_id: int
    status: str
    product_id: int
    shelf_id: int
    quantity_delivered: int
    quantity_on_shelf: int
    closed_alert_id: int | None
    follow_up_request_id: int | None


class CancellationResponse(BaseModel):
    original_request_id: int
    product_id: int
    store_id: int
    alert_id: int | None
    quantity: int
    cancellation_reason: str
    cancelled_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/pending-requests", response_model=list[StockRequestResponse])
async def list_pending_requests(
    store_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("warehouse")),
):
    """Active stock requests awaiting the warehouse."""
    return await list_stock_requests(db, store_id=store_id, limit=500)


@router.put("/{request_id}/dispatch", response_model=StockRequestResponse)
async def dispatch_request(
    request_id: int,
    body: DispatchRequest | None = None,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("warehouse")),
):
    eta = body.estimated_arrival if body else None
    if eta is not None and eta.tzinfo is not None:
        eta = eta.astimezone(timezone.utc).replace(tzinfo=None)
    return await mark_in_transit(db, request_id, eta=eta)


@router.put("/{request_id}/deliver", response_model=DeliveryResponse)
async def deliver_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("warehouse")),
):
    return await mark_delivered(db, request_id)


@router.put("/{request_id}/cancel", response_model=CancellationResponse)
async def cancel_request(
    request_id: int,
    body: CancelRequest,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("warehouse")),
):
    return await mark_cancelled(db, request_id, reason=body.reason)

"""
Stock Requests Router — active requests and manual filing.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_roles
from core.lifecycle import RequestStatus
from supply_chain.stock_requests import create_stock_request, get_stock_request, list_stock_requests

router = APIRouter(prefix="/api/v1/stock-requests", tags=["stock-requests"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class StockRequestCreate(BaseModel):
    product_id: int
    store_id: int
    quantity: int = Field(..., gt=0)
    shelf_id: int | None = None
    alert_id: int | None = None


class StockRequestResponse(BaseModel):
    request_id: int
    product_id: int
    store_id: int
    shelf_id: int | None
    alert_id: int | None
    quantity: int
    status: RequestStatus
    requested_at: datetime
    estimated_arrival: datetime | None

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[StockRequestResponse])
async def list_requests(
    status: RequestStatus | None = None,
    store_id: int | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Active stock requests, oldest first."""
    return await list_stock_requests(db, status=status, store_id=store_id, limit=limit)


@router.get("/{request_id}", response_model=StockRequestResponse)
async def get_request(
    request_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await get_stock_request(db, request_id)


@router.post("/", response_model=StockRequestResponse, status_code=201)
async def create_request(
    body: StockRequestCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """File a request by hand. 409 while the store already has one active for the product."""
    return await create_stock_request(
        db,
        product_id=body.product_id,
        store_id=body.store_id,
        quantity=body.quantity,
        shelf_id=body.shelf_id,
        alert_id=body.alert_id,
    )

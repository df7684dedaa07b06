"""
Sales Router — append-only sales events feeding the velocity estimate.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_roles
from core.errors import NotFoundError
from db.models import Product, SalesEvent, Store

router = APIRouter(prefix="/api/v1/sales", tags=["sales"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class SaleCreate(BaseModel):
    product_id: int
    store_id: int
    quantity: int = Field(..., gt=0)
    sold_at: datetime | None = None


class SaleResponse(BaseModel):
    sale_id: int
    product_id: int
    store_id: int
    quantity: int
    sold_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[SaleResponse])
async def list_sales(
    product_id: int | None = None,
    store_id: int | None = None,
    since: datetime | None = None,
    limit: int = Query(200, ge=1, le=1000),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List sales events, newest first."""
    query = select(SalesEvent)
    if product_id:
        query = query.where(SalesEvent.product_id == product_id)
    if store_id:
        query = query.where(SalesEvent.store_id == store_id)
    if since:
        query = query.where(SalesEvent.sold_at >= since)
    query = query.order_by(SalesEvent.sold_at.desc(), SalesEvent.sale_id.desc()).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{sale_id}", response_model=SaleResponse)
async def get_sale(
    sale_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    sale = await db.get(SalesEvent, sale_id)
    if not sale:
        raise HTTPException(status_code=404, detail="Sale not found")
    return sale


@router.post("/", response_model=SaleResponse, status_code=201)
async def record_sale(
    sale: SaleCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Record a sale. Sales are never updated or deleted."""
    if await db.get(Store, sale.store_id) is None:
        raise NotFoundError(f"Store {sale.store_id} not found")
    if await db.get(Product, sale.product_id) is None:
        raise NotFoundError(f"Product {sale.product_id} not found")

    sold_at = sale.sold_at or datetime.utcnow()
    if sold_at.tzinfo is not None:
        # Stored as naive UTC
        sold_at = sold_at.astimezone(timezone.utc).replace(tzinfo=None)

    event = SalesEvent(
        product_id=sale.product_id,
        store_id=sale.store_id,
        quantity=sale.quantity,
        sold_at=sold_at,
    )
    db.add(event)
    await db.commit()
    await db.refresh(event)
    return event

"""
Shelf Stock Router — which products sit on which shelves, and how many.

A product can only be placed on a shelf of the same category, and only
once per shelf. Counts corrected by hand go through PUT; lowering a
count is picked up by the next replenishment sweep.
"""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_roles
from core.errors import ConflictError, NotFoundError, ValidationError
from db.models import Product, Shelf, ShelfStock, shelf_utilization_pct

logger = structlog.get_logger()

router = APIRouter(prefix="/api/v1/shelf-stock", tags=["shelf-stock"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ShelfStockCreate(BaseModel):
    product_id: int
    shelf_id: int
    quantity: int = Field(0, ge=0)


class ShelfStockUpdate(BaseModel):
    quantity: int = Field(..., ge=0)
    shelf_id: int | None = None


class ShelfStockResponse(BaseModel):
    shelf_stock_id: int
    product_id: int
    shelf_id: int
    quantity: int
    capacity: int
    utilization_pct: float
    last_restocked_at: datetime | None
    created_at: datetime


def _serialize(stock: ShelfStock, capacity: int) -> ShelfStockResponse:
    return ShelfStockResponse(
        shelf_stock_id=stock.shelf_stock_id,
        product_id=stock.product_id,
        shelf_id=stock.shelf_id,
        quantity=stock.quantity,
        capacity=capacity,
        utilization_pct=shelf_utilization_pct(stock.quantity, capacity),
        last_restocked_at=stock.last_restocked_at,
        created_at=stock.created_at,
    )


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[ShelfStockResponse])
async def list_shelf_stock(
    shelf_id: int | None = None,
    product_id: int | None = None,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List shelf stock rows with capacity and utilisation."""
    query = select(ShelfStock, Shelf.capacity).join(Shelf, Shelf.shelf_id == ShelfStock.shelf_id)
    if shelf_id:
        query = query.where(ShelfStock.shelf_id == shelf_id)
    if product_id:
        query = query.where(ShelfStock.product_id == product_id)
    result = await db.execute(query.order_by(ShelfStock.shelf_stock_id))
    return [_serialize(stock, capacity) for stock, capacity in result.all()]


@router.get("/{shelf_stock_id}", response_model=ShelfStockResponse)
async def get_shelf_stock(
    shelf_stock_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    result = await db.execute(
        select(ShelfStock, Shelf.capacity)
        .join(Shelf, Shelf.shelf_id == ShelfStock.shelf_id)
        .where(ShelfStock.shelf_stock_id == shelf_stock_id)
    )
    row = result.one_or_none()
    if row is None:
        raise HTTPException(status_code=404, detail="Shelf stock not found")
    return _serialize(*row)


@router.post("/", response_model=ShelfStockResponse, status_code=201)
async def assign_product_to_shelf(
    body: ShelfStockCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Place a product on a shelf."""
    product = await db.get(Product, body.product_id)
    if product is None:
        raise NotFoundError(f"Product {body.product_id} not found")
    shelf = await db.get(Shelf, body.shelf_id)
    if shelf is None:
        raise NotFoundError(f"Shelf {body.shelf_id} not found")
    if product.category != shelf.category:
        raise ValidationError("Product and shelf categories must match")

    existing = await db.execute(
        select(ShelfStock.shelf_stock_id).where(
            ShelfStock.product_id == body.product_id,
            ShelfStock.shelf_id == body.shelf_id,
        )
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError("This product is already assigned to this shelf")

    if body.quantity > shelf.capacity:
        logger.warning(
            "shelf_stock.over_capacity",
            product_id=body.product_id,
            shelf_id=body.shelf_id,
            quantity=body.quantity,
            capacity=shelf.capacity,
        )

    stock = ShelfStock(
        product_id=body.product_id,
        shelf_id=body.shelf_id,
        quantity=body.quantity,
        created_at=datetime.utcnow(),
    )
    db.add(stock)
    await db.commit()
    await db.refresh(stock)
    return _serialize(stock, shelf.capacity)


@router.put("/{shelf_stock_id}", response_model=ShelfStockResponse)
async def update_shelf_stock(
    shelf_stock_id: int,
    body: ShelfStockUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Correct the counted quantity, optionally moving the product to another shelf."""
    stock = await db.get(ShelfStock, shelf_stock_id)
    if stock is None:
        raise NotFoundError(f"Shelf stock {shelf_stock_id} not found")

    target_shelf_id = body.shelf_id if body.shelf_id is not None else stock.shelf_id
    shelf = await db.get(Shelf, target_shelf_id)
    if shelf is None:
        raise NotFoundError(f"Shelf {target_shelf_id} not found")

    if target_shelf_id != stock.shelf_id:
        product = await db.get(Product, stock.product_id)
        if product.category != shelf.category:
            raise ValidationError("Product and shelf categories must match")
        existing = await db.execute(
            select(ShelfStock.shelf_stock_id).where(
                ShelfStock.product_id == stock.product_id,
                ShelfStock.shelf_id == target_shelf_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise ConflictError("This product is already assigned to this shelf")

    if body.quantity > shelf.capacity:
        logger.warning(
            "shelf_stock.over_capacity",
            product_id=stock.product_id,
            shelf_id=target_shelf_id,
            quantity=body.quantity,
            capacity=shelf.capacity,
        )

    previous = stock.quantity
    stock.shelf_id = target_shelf_id
    stock.quantity = body.quantity
    await db.commit()
    await db.refresh(stock)
    logger.info(
        "shelf_stock.updated",
        shelf_stock_id=shelf_stock_id,
        shelf_id=target_shelf_id,
        previous_quantity=previous,
        quantity=stock.quantity,
    )
    return _serialize(stock, shelf.capacity)

"""
Products Router — product catalog.
"""

from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_roles
from core.errors import ConflictError
from db.models import Product

router = APIRouter(prefix="/api/v1/products", tags=["products"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class ProductCreate(BaseModel):
    sku: str = Field(..., min_length=1, max_length=50)
    name: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    package_size: str | None = Field(None, max_length=50)
    unit: str | None = Field(None, max_length=20)


class ProductResponse(BaseModel):
    product_id: int
    sku: str
    name: str
    category: str
    package_size: str | None
    unit: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[ProductResponse])
async def list_products(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=500),
    category: str | None = None,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List products with optional category filter."""
    query = select(Product)
    if category:
        query = query.where(Product.category == category)
    query = query.order_by(Product.product_id).offset(skip).limit(limit)
    result = await db.execute(query)
    return result.scalars().all()


@router.get("/{product_id}", response_model=ProductResponse)
async def get_product(
    product_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Get a single product by ID."""
    product = await db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    return product


@router.post("/", response_model=ProductResponse, status_code=201)
async def create_product(
    product: ProductCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Create a new product. SKUs are unique."""
    existing = await db.execute(select(Product.product_id).where(Product.sku == product.sku))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"SKU '{product.sku}' already exists")

    db_product = Product(**product.model_dump(), created_at=datetime.utcnow())
    db.add(db_product)
    await db.commit()
    await db.refresh(db_product)
    return db_product

"""
Stores Router — store locations, their shelves, and their staff.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_roles
from core.errors import ConflictError
from db.models import Shelf, Staff, Store

router = APIRouter(prefix="/api/v1/stores", tags=["stores"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class StoreCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    address: str | None = Field(None, max_length=255)
    city: str | None = Field(None, max_length=50)
    state: str | None = Field(None, max_length=50)
    postal_code: str | None = Field(None, max_length=10)


class StoreResponse(BaseModel):
    store_id: int
    name: str
    address: str | None
    city: str | None
    state: str | None
    postal_code: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class ShelfCreate(BaseModel):
    shelf_code: str = Field(..., min_length=1, max_length=50)
    category: str = Field(..., min_length=1, max_length=100)
    location_description: str | None = Field(None, max_length=100)
    capacity: int = Field(..., ge=1)


class ShelfResponse(BaseModel):
    shelf_id: int
    shelf_code: str
    store_id: int
    category: str
    location_description: str | None
    capacity: int
    created_at: datetime

    model_config = {"from_attributes": True}


class StaffCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    role: Literal["staff", "manager"] = "staff"
    email: str = Field(..., max_length=150, pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class StaffResponse(BaseModel):
    staff_id: int
    store_id: int
    name: str
    role: str
    email: str
    created_at: datetime

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[StoreResponse])
async def list_stores(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List all stores."""
    result = await db.execute(select(Store).order_by(Store.store_id).offset(skip).limit(limit))
    return result.scalars().all()


@router.get("/{store_id}", response_model=StoreResponse)
async def get_store(
    store_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Get a single store by ID."""
    store = await db.get(Store, store_id)
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return store


@router.post("/", response_model=StoreResponse, status_code=201)
async def create_store(
    store: StoreCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Create a new store."""
    db_store = Store(**store.model_dump(), created_at=datetime.utcnow())
    db.add(db_store)
    await db.commit()
    await db.refresh(db_store)
    return db_store


@router.get("/{store_id}/shelves", response_model=list[ShelfResponse])
async def list_shelves(
    store_id: int,
    category: str | None = None,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List the shelves of a store."""
    await _get_store_or_404(db, store_id)
    query = select(Shelf).where(Shelf.store_id == store_id)
    if category:
        query = query.where(Shelf.category == category)
    result = await db.execute(query.order_by(Shelf.shelf_id))
    return result.scalars().all()


@router.post("/{store_id}/shelves", response_model=ShelfResponse, status_code=201)
async def create_shelf(
    store_id: int,
    shelf: ShelfCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Add a shelf to a store. Shelf codes are unique per store."""
    await _get_store_or_404(db, store_id)
    existing = await db.execute(
        select(Shelf.shelf_id).where(Shelf.store_id == store_id, Shelf.shelf_code == shelf.shelf_code)
    )
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"Shelf code '{shelf.shelf_code}' already exists in store {store_id}")

    db_shelf = Shelf(**shelf.model_dump(), store_id=store_id, created_at=datetime.utcnow())
    db.add(db_shelf)
    await db.commit()
    await db.refresh(db_shelf)
    return db_shelf


@router.get("/{store_id}/staff", response_model=list[StaffResponse])
async def list_staff(
    store_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """List the staff of a store."""
    await _get_store_or_404(db, store_id)
    result = await db.execute(select(Staff).where(Staff.store_id == store_id).order_by(Staff.staff_id))
    return result.scalars().all()


@router.post("/{store_id}/staff", response_model=StaffResponse, status_code=201)
async def create_staff(
    store_id: int,
    staff: StaffCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Add a staff member to a store. Emails are unique."""
    await _get_store_or_404(db, store_id)
    existing = await db.execute(select(Staff.staff_id).where(Staff.email == staff.email.lower()))
    if existing.scalar_one_or_none() is not None:
        raise ConflictError(f"Staff email '{staff.email}' is already registered")

    db_staff = Staff(
        store_id=store_id,
        name=staff.name,
        role=staff.role,
        email=staff.email.lower(),
        created_at=datetime.utcnow(),
    )
    db.add(db_staff)
    await db.commit()
    await db.refresh(db_staff)
    return db_staff


async def _get_store_or_404(db: AsyncSession, store_id: int) -> Store:
    store = await db.get(Store, store_id)
    if not store:
        raise HTTPException(status_code=404, detail="Store not found")
    return store

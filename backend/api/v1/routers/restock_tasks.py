"""
Restock Tasks Router — staff assignments and completion.
"""

from datetime import datetime
from typing import Literal

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from api.deps import get_current_user, get_db, require_roles
from core.lifecycle import TaskStatus
from retail.restock import (
    assign_restock_task,
    complete_restock_task,
    get_restock_task,
    list_restock_tasks,
    set_task_status,
)

router = APIRouter(prefix="/api/v1/restock-tasks", tags=["restock-tasks"])


# ─── Schemas ────────────────────────────────────────────────────────────────


class RestockTaskCreate(BaseModel):
    alert_id: int
    staff_id: int


class RestockTaskComplete(BaseModel):
    quantity_restocked: int


class RestockTaskStatusUpdate(BaseModel):
    status: Literal["in_progress", "delayed"]


class RestockTaskResponse(BaseModel):
    task_id: int
    alert_id: int
    product_id: int
    shelf_id: int
    assigned_to: int
    status: TaskStatus
    quantity_restocked: int | None
    assigned_at: datetime
    completed_at: datetime | None

    model_config = {"from_attributes": True}


# ─── Endpoints ──────────────────────────────────────────────────────────────


@router.get("/", response_model=list[RestockTaskResponse])
async def list_tasks(
    status: TaskStatus | None = None,
    assigned_to: int | None = None,
    limit: int = Query(100, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    """Restock tasks, newest first."""
    return await list_restock_tasks(db, status=status, assigned_to=assigned_to, limit=limit)


@router.get("/{task_id}", response_model=RestockTaskResponse)
async def get_task(
    task_id: int,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(get_current_user),
):
    return await get_restock_task(db, task_id)


@router.post("/", response_model=RestockTaskResponse, status_code=201)
async def create_task(
    body: RestockTaskCreate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager")),
):
    """Assign an active alert to a staff member of the shelf's store."""
    return await assign_restock_task(db, alert_id=body.alert_id, staff_id=body.staff_id)


@router.put("/{task_id}/status", response_model=RestockTaskResponse)
async def update_task_status(
    task_id: int,
    body: RestockTaskStatusUpdate,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager", "staff")),
):
    return await set_task_status(db, task_id, TaskStatus(body.status))


@router.put("/{task_id}/complete", response_model=RestockTaskResponse)
async def complete_task(
    task_id: int,
    body: RestockTaskComplete,
    db: AsyncSession = Depends(get_db),
    user: dict = Depends(require_roles("manager", "staff")),
):
    """Record the units put on the shelf. quantity_restocked must be positive."""
    return await complete_restock_task(db, task_id, body.quantity_restocked)

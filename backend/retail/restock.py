"""
Restock Tasks — staff assignments that put replenished stock on the shelf.

A task references the alert that caused it by id only, so it outlives the
alert's archival. At most one pending task exists per (product, shelf).
"""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from core.errors import ConflictError, NotFoundError, PreconditionError, ShelfSenseError, StorageError, ValidationError
from core.lifecycle import TaskStatus, ensure_task_transition
from db.models import ReplenishmentAlert, RestockTask, Shelf, ShelfStock, Staff
from inventory.reports import log_inventory_report

logger = structlog.get_logger()


async def get_pending_task(db: AsyncSession, product_id: int, shelf_id: int) -> RestockTask | None:
    result = await db.execute(
        select(RestockTask).where(
            RestockTask.product_id == product_id,
            RestockTask.shelf_id == shelf_id,
            RestockTask.status == TaskStatus.PENDING,
        )
    )
    return result.scalar_one_or_none()


async def first_staff_member(db: AsyncSession, store_id: int) -> Staff | None:
    result = await db.execute(select(Staff).where(Staff.store_id == store_id).order_by(Staff.staff_id).limit(1))
    return result.scalar_one_or_none()


async def get_restock_task(db: AsyncSession, task_id: int) -> RestockTask:
    task = await db.get(RestockTask, task_id)
    if task is None:
        raise NotFoundError(f"Restock task {task_id} not found")
    return task


async def list_restock_tasks(
    db: AsyncSession,
    status: TaskStatus | None = None,
    assigned_to: int | None = None,
    limit: int = 100,
) -> list[RestockTask]:
    query = select(RestockTask)
    if status:
        query = query.where(RestockTask.status == status)
    if assigned_to:
        query = query.where(RestockTask.assigned_to == assigned_to)
    query = query.order_by(RestockTask.assigned_at.desc(), RestockTask.task_id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def assign_pending_task(
    db: AsyncSession,
    alert: ReplenishmentAlert,
    store_id: int,
    now: datetime | None = None,
) -> RestockTask | None:
    """Batch assignment: first staff member of the store, unless a task is already pending."""
    if await get_pending_task(db, alert.product_id, alert.shelf_id) is not None:
        return None

    staff = await first_staff_member(db, store_id)
    if staff is None:
        logger.warning("replenishment.no_staff_for_task", store_id=store_id, alert_id=alert.alert_id)
        return None

    task = RestockTask(
        alert_id=alert.alert_id,
        product_id=alert.product_id,
        shelf_id=alert.shelf_id,
        assigned_to=staff.staff_id,
        status=TaskStatus.PENDING,
        assigned_at=now or datetime.utcnow(),
    )
    db.add(task)
    await db.flush()
    logger.info(
        "replenishment.task_assigned",
        task_id=task.task_id,
        alert_id=alert.alert_id,
        staff_id=staff.staff_id,
    )
    return task


async def assign_restock_task(db: AsyncSession, alert_id: int, staff_id: int) -> RestockTask:
    """Manual assignment of an active alert to a staff member."""
    alert = await db.get(ReplenishmentAlert, alert_id)
    if alert is None:
        raise NotFoundError(f"Replenishment alert {alert_id} not found")
    staff = await db.get(Staff, staff_id)
    if staff is None:
        raise NotFoundError(f"Staff member {staff_id} not found")
    shelf = await db.get(Shelf, alert.shelf_id)
    if shelf.store_id != staff.store_id:
        raise ValidationError(f"Staff member {staff_id} does not work in store {shelf.store_id}")
    if await get_pending_task(db, alert.product_id, alert.shelf_id) is not None:
        raise ConflictError(
            f"A pending restock task already exists for product {alert.product_id} on shelf {alert.shelf_id}"
        )

    product_id, shelf_id = alert.product_id, alert.shelf_id
    stock = await _get_shelf_stock(db, product_id, shelf_id)
    task = RestockTask(
        alert_id=alert.alert_id,
        product_id=alert.product_id,
        shelf_id=alert.shelf_id,
        assigned_to=staff_id,
        status=TaskStatus.PENDING,
        assigned_at=datetime.utcnow(),
    )
    try:
        db.add(task)
        await log_inventory_report(
            db,
            product_id=alert.product_id,
            shelf_id=alert.shelf_id,
            quantity_on_shelf=stock.quantity,
            alert_triggered=True,
        )
        await db.commit()
    except IntegrityError as exc:
        # Another writer assigned a pending task for the pair after our check
        await db.rollback()
        raise ConflictError(
            f"A pending restock task already exists for product {product_id} on shelf {shelf_id}"
        ) from exc
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("restock.assign_failed", alert_id=alert_id, staff_id=staff_id, error=str(exc))
        raise StorageError(f"Could not assign a restock task for alert {alert_id}") from exc
    await db.refresh(task)
    logger.info("restock.task_created", task_id=task.task_id, alert_id=alert_id, staff_id=staff_id)
    return task


async def set_task_status(db: AsyncSession, task_id: int, status: TaskStatus) -> RestockTask:
    """Progress updates (in_progress, delayed). Completion goes through complete_restock_task."""
    if status == TaskStatus.COMPLETED:
        raise ValidationError("Use the complete endpoint to finish a restock task")
    task = await get_restock_task(db, task_id)
    ensure_task_transition(task.status, status)
    task.status = status
    await db.commit()
    await db.refresh(task)
    logger.info("restock.task_status_changed", task_id=task_id, status=status.value)
    return task


async def complete_restock_task(db: AsyncSession, task_id: int, quantity_restocked: int) -> RestockTask:
    """Staff put the units on the shelf."""
    if quantity_restocked is None or quantity_restocked <= 0:
        raise ValidationError("quantity_restocked must be greater than 0")

    now = datetime.utcnow()
    try:
        task = await get_restock_task(db, task_id)
        ensure_task_transition(task.status, TaskStatus.COMPLETED)

        stock = await _get_shelf_stock(db, task.product_id, task.shelf_id)
        stock.quantity += quantity_restocked
        stock.last_restocked_at = now

        task.status = TaskStatus.COMPLETED
        task.quantity_restocked = quantity_restocked
        task.completed_at = now

        await log_inventory_report(
            db,
            product_id=task.product_id,
            shelf_id=task.shelf_id,
            quantity_on_shelf=stock.quantity,
            quantity_restocked=quantity_restocked,
            alert_triggered=True,
            report_date=now.date(),
        )
        await db.commit()
    except ShelfSenseError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("restock.complete_failed", task_id=task_id, error=str(exc))
        raise StorageError(f"Could not complete restock task {task_id}") from exc

    await db.refresh(task)
    logger.info(
        "restock.task_completed",
        task_id=task_id,
        quantity_restocked=quantity_restocked,
        quantity_on_shelf=stock.quantity,
    )
    return task


async def _get_shelf_stock(db: AsyncSession, product_id: int, shelf_id: int) -> ShelfStock:
    result = await db.execute(
        select(ShelfStock).where(ShelfStock.product_id == product_id, ShelfStock.shelf_id == shelf_id)
    )
    stock = result.scalar_one_or_none()
    if stock is None:
        raise PreconditionError(f"Product {product_id} is not assigned to shelf {shelf_id}")
    return stock

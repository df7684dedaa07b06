"""
Stock Requests — warehouse replenishment requests per (product, store).

The active table holds requested and in-transit rows only, at most one per
(product, store). Delivery lives in supply_chain.receiving; dispatch and
cancellation live here.

Warehouse actions lock the request row (SELECT ... FOR UPDATE, ignored by
SQLite) and run as one unit of work. Any storage failure rolls the unit
back and surfaces as StorageError.
"""

from datetime import datetime, timedelta

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import mark_alert_completed
from core.config import Settings, get_settings
from core.errors import ConflictError, NotFoundError, PreconditionError, ShelfSenseError, StorageError, ValidationError
from core.lifecycle import (
    AlertStatus,
    RequestStatus,
    WarehouseStatus,
    ensure_alert_transition,
    ensure_request_transition,
)
from db.models import (
    CancelledStockRequest,
    DeliveredStockRequest,
    Product,
    ReplenishmentAlert,
    Shelf,
    StockRequest,
    Store,
)

logger = structlog.get_logger()


def lock_for_update(query):
    """Row-level lock for warehouse transitions. SQLite ignores it."""
    return query.with_for_update()


# ──────────────────────────────────────────────────────────────────────────
# Lookup
# ──────────────────────────────────────────────────────────────────────────


async def get_active_request(db: AsyncSession, product_id: int, store_id: int) -> StockRequest | None:
    result = await db.execute(
        select(StockRequest).where(
            StockRequest.product_id == product_id,
            StockRequest.store_id == store_id,
        )
    )
    return result.scalar_one_or_none()


async def get_stock_request(db: AsyncSession, request_id: int) -> StockRequest:
    request = await db.get(StockRequest, request_id)
    if request is None:
        await _raise_missing_request(db, request_id)
    return request


async def list_stock_requests(
    db: AsyncSession,
    status: RequestStatus | None = None,
    store_id: int | None = None,
    limit: int = 100,
) -> list[StockRequest]:
    query = select(StockRequest)
    if status:
        query = query.where(StockRequest.status == status)
    if store_id:
        query = query.where(StockRequest.store_id == store_id)
    query = query.order_by(StockRequest.requested_at.asc(), StockRequest.request_id.asc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def load_request_for_update(db: AsyncSession, request_id: int) -> StockRequest:
    result = await db.execute(lock_for_update(select(StockRequest).where(StockRequest.request_id == request_id)))
    request = result.scalar_one_or_none()
    if request is None:
        await _raise_missing_request(db, request_id)
    return request


async def _raise_missing_request(db: AsyncSession, request_id: int) -> None:
    """Distinguish an archived request (invalid transition) from an unknown id."""
    delivered = await db.execute(
        select(DeliveredStockRequest.archive_id).where(DeliveredStockRequest.original_request_id == request_id)
    )
    if delivered.scalar_one_or_none() is not None:
        raise PreconditionError(f"Stock request {request_id} was already delivered")

    cancelled = await db.execute(
        select(CancelledStockRequest.archive_id).where(CancelledStockRequest.original_request_id == request_id)
    )
    if cancelled.scalar_one_or_none() is not None:
        raise PreconditionError(f"Stock request {request_id} was already cancelled")

    raise NotFoundError(f"Stock request {request_id} not found")


async def find_linked_alert(db: AsyncSession, request: StockRequest) -> ReplenishmentAlert | None:
    """
    The alert that triggered the request.

    Falls back to the most recent open/completed alert for the pair when the
    linked alert is gone (or the request was filed without one).
    """
    if request.alert_id is not None:
        alert = await db.get(ReplenishmentAlert, request.alert_id)
        if alert is not None:
            return alert

    query = select(ReplenishmentAlert).where(
        ReplenishmentAlert.product_id == request.product_id,
        ReplenishmentAlert.status.in_([AlertStatus.OPEN, AlertStatus.COMPLETED]),
    )
    if request.shelf_id is not None:
        query = query.where(ReplenishmentAlert.shelf_id == request.shelf_id)
    else:
        store_shelves = select(Shelf.shelf_id).where(Shelf.store_id == request.store_id)
        query = query.where(ReplenishmentAlert.shelf_id.in_(store_shelves))

    result = await db.execute(
        query.order_by(ReplenishmentAlert.created_at.desc(), ReplenishmentAlert.alert_id.desc()).limit(1)
    )
    return result.scalar_one_or_none()


# ──────────────────────────────────────────────────────────────────────────
# Placement
# ──────────────────────────────────────────────────────────────────────────


async def place_request(
    db: AsyncSession,
    alert: ReplenishmentAlert,
    store_id: int,
    capacity: int,
    quantity_on_shelf: int,
    now: datetime | None = None,
) -> StockRequest | None:
    """
    File a request to refill the alert's shelf to capacity.

    Returns None when the shelf is full or the store already has an active
    request for the product. Otherwise the alert is marked completed.
    """
    refill = capacity - quantity_on_shelf
    if refill <= 0:
        return None
    if await get_active_request(db, alert.product_id, store_id) is not None:
        return None

    now = now or datetime.utcnow()
    request = StockRequest(
        product_id=alert.product_id,
        store_id=store_id,
        shelf_id=alert.shelf_id,
        alert_id=alert.alert_id,
        quantity=refill,
        status=RequestStatus.REQUESTED,
        requested_at=now,
    )
    db.add(request)
    mark_alert_completed(alert, note=f"Stock request placed for {refill} units", now=now)
    await db.flush()
    logger.info(
        "replenishment.request_placed",
        request_id=request.request_id,
        alert_id=alert.alert_id,
        product_id=alert.product_id,
        store_id=store_id,
        quantity=refill,
    )
    return request


async def create_stock_request(
    db: AsyncSession,
    product_id: int,
    store_id: int,
    quantity: int,
    shelf_id: int | None = None,
    alert_id: int | None = None,
) -> StockRequest:
    """Manual request. Rejected with ConflictError while one is active for the pair."""
    if quantity <= 0:
        raise ValidationError("Quantity must be greater than 0")
    if await db.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    if await db.get(Store, store_id) is None:
        raise NotFoundError(f"Store {store_id} not found")
    if shelf_id is not None:
        shelf = await db.get(Shelf, shelf_id)
        if shelf is None:
            raise NotFoundError(f"Shelf {shelf_id} not found")
        if shelf.store_id != store_id:
            raise ValidationError(f"Shelf {shelf_id} does not belong to store {store_id}")

    alert = None
    if alert_id is not None:
        alert = await db.get(ReplenishmentAlert, alert_id)
        if alert is None:
            raise NotFoundError(f"Replenishment alert {alert_id} not found")

    if await get_active_request(db, product_id, store_id) is not None:
        raise ConflictError(f"An active stock request already exists for product {product_id} in store {store_id}")

    now = datetime.utcnow()
    request = StockRequest(
        product_id=product_id,
        store_id=store_id,
        shelf_id=shelf_id if shelf_id is not None else (alert.shelf_id if alert else None),
        alert_id=alert_id,
        quantity=quantity,
        status=RequestStatus.REQUESTED,
        requested_at=now,
    )
    db.add(request)
    if alert is not None and alert.status == AlertStatus.OPEN:
        mark_alert_completed(alert, note=f"Stock request placed for {quantity} units", now=now)
    await db.commit()
    await db.refresh(request)
    logger.info("stock_request.created", request_id=request.request_id, product_id=product_id, store_id=store_id)
    return request


# ──────────────────────────────────────────────────────────────────────────
# Warehouse transitions
# ──────────────────────────────────────────────────────────────────────────


async def mark_in_transit(
    db: AsyncSession,
    request_id: int,
    eta: datetime | None = None,
    settings: Settings | None = None,
) -> StockRequest:
    """Warehouse dispatched the request. Annotates the linked alert if still active."""
    settings = settings or get_settings()
    try:
        request = await load_request_for_update(db, request_id)
        ensure_request_transition(request.status, RequestStatus.IN_TRANSIT)

        now = datetime.utcnow()
        request.status = RequestStatus.IN_TRANSIT
        request.estimated_arrival = eta or now + timedelta(days=settings.default_eta_days)

        alert = await find_linked_alert(db, request)
        if alert is not None:
            alert.warehouse_status = WarehouseStatus.IN_TRANSIT
            alert.fulfillment_note = f"In transit, ETA {request.estimated_arrival:%Y-%m-%d}"

        await db.commit()
    except ShelfSenseError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("warehouse.dispatch_failed", request_id=request_id, error=str(exc))
        raise StorageError(f"Could not dispatch stock request {request_id}") from exc

    await db.refresh(request)
    logger.info(
        "warehouse.request_dispatched",
        request_id=request_id,
        estimated_arrival=request.estimated_arrival.isoformat(),
        alert_id=alert.alert_id if alert else None,
    )
    return request


async def mark_cancelled(db: AsyncSession, request_id: int, reason: str) -> CancelledStockRequest:
    """
    Warehouse cannot fulfil the request.

    The linked alert is annotated with the cancellation and reopened so the
    next sweep can re-request; the request moves to the cancelled archive.
    """
    reason = (reason or "").strip()
    if not reason:
        raise ValidationError("A cancellation reason is required")

    try:
        request = await load_request_for_update(db, request_id)
        ensure_request_transition(request.status, RequestStatus.CANCELLED)

        alert = await find_linked_alert(db, request)
        if alert is not None:
            alert.warehouse_status = WarehouseStatus.CANCELLED
            alert.cancellation_reason = reason
            if alert.status == AlertStatus.COMPLETED:
                ensure_alert_transition(alert.status, AlertStatus.OPEN)
                alert.status = AlertStatus.OPEN
                alert.completed_at = None

        archived = CancelledStockRequest(
            original_request_id=request.request_id,
            product_id=request.product_id,
            store_id=request.store_id,
            alert_id=alert.alert_id if alert else request.alert_id,
            quantity=request.quantity,
            requested_at=request.requested_at,
            cancellation_reason=reason,
            cancelled_at=datetime.utcnow(),
        )
        db.add(archived)
        await db.delete(request)
        await db.commit()
    except ShelfSenseError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("warehouse.cancel_failed", request_id=request_id, error=str(exc))
        raise StorageError(f"Could not cancel stock request {request_id}") from exc

    await db.refresh(archived)
    logger.info(
        "warehouse.request_cancelled",
        request_id=request_id,
        alert_id=archived.alert_id,
        reason=reason,
    )
    return archived

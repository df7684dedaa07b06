"""
Receiving Module — stock request delivery.

Called when the warehouse confirms a stock request arrived at the store.
One unit of work:
1. Add the delivered units to the target shelf stock
2. Upsert today's inventory report
3. Archive the triggering alert (status completed)
4. Archive the request into delivered_stock_requests
5. Re-evaluate: the oldest open alert for the same product elsewhere in
   the store gets a new request, now that the store has none active
"""

from datetime import datetime

import structlog
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import archive_alert, mark_alert_completed
from core.errors import PreconditionError, ShelfSenseError, StorageError
from core.lifecycle import AlertStatus, ClosedAlertStatus, RequestStatus, ensure_request_transition
from db.models import DeliveredStockRequest, ReplenishmentAlert, Shelf, ShelfStock, StockRequest
from inventory.reports import log_inventory_report
from supply_chain.stock_requests import find_linked_alert, load_request_for_update, place_request

logger = structlog.get_logger()


async def _resolve_target_stock(db: AsyncSession, request: StockRequest) -> tuple[ShelfStock, Shelf]:
    """Shelf stock receiving the delivery: the request's shelf, else the store's first shelf holding the product."""
    query = (
        select(ShelfStock, Shelf)
        .join(Shelf, Shelf.shelf_id == ShelfStock.shelf_id)
        .where(ShelfStock.product_id == request.product_id, Shelf.store_id == request.store_id)
    )
    if request.shelf_id is not None:
        result = await db.execute(query.where(ShelfStock.shelf_id == request.shelf_id))
        row = result.one_or_none()
        if row is not None:
            return row

    result = await db.execute(query.order_by(Shelf.shelf_id).limit(1))
    row = result.one_or_none()
    if row is None:
        raise PreconditionError(
            f"Product {request.product_id} is not stocked on any shelf of store {request.store_id}"
        )
    return row


async def reevaluate_after_delivery(
    db: AsyncSession,
    product_id: int,
    store_id: int,
    now: datetime,
) -> StockRequest | None:
    """
    Secondary step of a delivery.

    The oldest open alert for the product on another shelf of the store was
    blocked by the request just delivered. If its shelf has room, file a
    new request for it and archive the alert right away.
    """
    result = await db.execute(
        select(ReplenishmentAlert, ShelfStock, Shelf)
        .join(Shelf, Shelf.shelf_id == ReplenishmentAlert.shelf_id)
        .join(
            ShelfStock,
            (ShelfStock.product_id == ReplenishmentAlert.product_id)
            & (ShelfStock.shelf_id == ReplenishmentAlert.shelf_id),
        )
        .where(
            ReplenishmentAlert.product_id == product_id,
            ReplenishmentAlert.status == AlertStatus.OPEN,
            Shelf.store_id == store_id,
        )
        .order_by(ReplenishmentAlert.created_at.asc(), ReplenishmentAlert.alert_id.asc())
        .limit(1)
    )
    row = result.one_or_none()
    if row is None:
        return None

    alert, stock, shelf = row
    follow_up = await place_request(db, alert, store_id, shelf.capacity, stock.quantity, now=now)
    if follow_up is None:
        return None

    await archive_alert(db, alert, ClosedAlertStatus.COMPLETED, now=now)
    logger.info(
        "warehouse.reevaluation_request_placed",
        request_id=follow_up.request_id,
        alert_id=alert.alert_id,
        product_id=product_id,
        store_id=store_id,
    )
    return follow_up


async def mark_delivered(db: AsyncSession, request_id: int) -> dict:
    """
    Process a delivery for an active stock request.

    Returns summary dict of what changed.
    """
    now = datetime.utcnow()
    try:
        request = await load_request_for_update(db, request_id)
        ensure_request_transition(request.status, RequestStatus.DELIVERED)

        # 1. Shelf stock
        stock, shelf = await _resolve_target_stock(db, request)
        stock.quantity += request.quantity
        stock.last_restocked_at = now
        if stock.quantity > shelf.capacity:
            logger.warning(
                "warehouse.over_capacity",
                product_id=stock.product_id,
                shelf_id=stock.shelf_id,
                quantity=stock.quantity,
                capacity=shelf.capacity,
            )

        # 2. Triggering alert
        alert = await find_linked_alert(db, request)
        closed = None
        if alert is not None:
            if alert.status == AlertStatus.OPEN:
                mark_alert_completed(alert, note=f"Delivered {request.quantity} units", now=now)
            closed = await archive_alert(db, alert, ClosedAlertStatus.COMPLETED, now=now)

        # 3. Daily snapshot
        await log_inventory_report(
            db,
            product_id=stock.product_id,
            shelf_id=stock.shelf_id,
            quantity_on_shelf=stock.quantity,
            quantity_restocked=request.quantity,
            alert_triggered=closed is not None,
            report_date=now.date(),
        )

        # 4. Request archive
        db.add(
            DeliveredStockRequest(
                original_request_id=request.request_id,
                product_id=request.product_id,
                store_id=request.store_id,
                shelf_id=stock.shelf_id,
                alert_id=closed.original_alert_id if closed else request.alert_id,
                quantity=request.quantity,
                requested_at=request.requested_at,
                delivered_at=now,
            )
        )
        await db.delete(request)
        await db.flush()

        # 5. Re-evaluation
        follow_up = await reevaluate_after_delivery(db, request.product_id, request.store_id, now)

        await db.commit()
    except ShelfSenseError:
        await db.rollback()
        raise
    except SQLAlchemyError as exc:
        await db.rollback()
        logger.error("warehouse.delivery_failed", request_id=request_id, error=str(exc))
        raise StorageError(f"Could not deliver stock request {request_id}") from exc

    result = {
        "request_id": request_id,
        "status": RequestStatus.DELIVERED.value,
        "product_id": stock.product_id,
        "shelf_id": stock.shelf_id,
        "quantity_delivered": request.quantity,
        "quantity_on_shelf": stock.quantity,
        "closed_alert_id": closed.original_alert_id if closed else None,
        "follow_up_request_id": follow_up.request_id if follow_up else None,
    }
    logger.info("warehouse.request_delivered", **result)
    return result

"""
Alert Engine — replenishment alert lifecycle and publishing.

The active table holds at most one alert per (product, shelf), enforced by
the uq_alert_active_pair constraint. Terminal alerts are copied into
closed_replenishment_alerts with their original id and removed from the
active table.

Lifecycle:
  raise_alert        low stock and no active alert for the pair → open
  archive_alert      completed (fulfilled) or resolved (stock recovered)
  publish_alerts     Redis pub/sub fan-out for newly raised alerts
"""

import json
from datetime import date, datetime
from typing import Any

import redis.asyncio as aioredis
import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.config import get_settings
from core.errors import ConflictError, NotFoundError, ValidationError
from core.lifecycle import (
    AlertStatus,
    ClosedAlertStatus,
    Urgency,
    ensure_alert_archivable,
    ensure_alert_transition,
)
from db.models import ClosedReplenishmentAlert, Product, ReplenishmentAlert, Shelf, ShelfStock
from inventory.depletion import DepletionPrediction

logger = structlog.get_logger()

# ──────────────────────────────────────────────────────────────────────────
# Lookup
# ──────────────────────────────────────────────────────────────────────────


async def get_active_alert(db: AsyncSession, product_id: int, shelf_id: int) -> ReplenishmentAlert | None:
    result = await db.execute(
        select(ReplenishmentAlert).where(
            ReplenishmentAlert.product_id == product_id,
            ReplenishmentAlert.shelf_id == shelf_id,
        )
    )
    return result.scalar_one_or_none()


async def get_alert(db: AsyncSession, alert_id: int) -> ReplenishmentAlert:
    alert = await db.get(ReplenishmentAlert, alert_id)
    if alert is None:
        raise NotFoundError(f"Replenishment alert {alert_id} not found")
    return alert


async def list_alerts(
    db: AsyncSession,
    status: AlertStatus | None = None,
    urgency: Urgency | None = None,
    shelf_id: int | None = None,
    limit: int = 100,
) -> list[ReplenishmentAlert]:
    query = select(ReplenishmentAlert)
    if status:
        query = query.where(ReplenishmentAlert.status == status)
    if urgency:
        query = query.where(ReplenishmentAlert.urgency == urgency)
    if shelf_id:
        query = query.where(ReplenishmentAlert.shelf_id == shelf_id)
    query = query.order_by(ReplenishmentAlert.created_at.desc(), ReplenishmentAlert.alert_id.desc()).limit(limit)
    result = await db.execute(query)
    return list(result.scalars().all())


async def get_closed_alerts(db: AsyncSession, limit: int = 100) -> list[ClosedReplenishmentAlert]:
    """Archived alerts, newest first."""
    result = await db.execute(
        select(ClosedReplenishmentAlert)
        .order_by(ClosedReplenishmentAlert.closed_at.desc(), ClosedReplenishmentAlert.closed_alert_id.desc())
        .limit(limit)
    )
    return list(result.scalars().all())


# ──────────────────────────────────────────────────────────────────────────
# Transitions
# ──────────────────────────────────────────────────────────────────────────


async def raise_alert(db: AsyncSession, prediction: DepletionPrediction) -> tuple[ReplenishmentAlert, bool]:
    """
    Find the active alert for the pair or open a new one.

    Returns (alert, created). The insert is flushed so a concurrent writer
    surfaces as IntegrityError here rather than at commit time.
    """
    existing = await get_active_alert(db, prediction.product_id, prediction.shelf_id)
    if existing is not None:
        return existing, False

    alert = ReplenishmentAlert(
        product_id=prediction.product_id,
        shelf_id=prediction.shelf_id,
        predicted_depletion_date=prediction.expected_depletion_date,
        urgency=prediction.urgency,
        status=AlertStatus.OPEN,
        created_at=datetime.utcnow(),
    )
    db.add(alert)
    await db.flush()
    logger.info(
        "replenishment.alert_raised",
        alert_id=alert.alert_id,
        product_id=alert.product_id,
        shelf_id=alert.shelf_id,
        urgency=alert.urgency.value,
        days_to_depletion=prediction.days_to_depletion,
    )
    return alert, True


def mark_alert_completed(alert: ReplenishmentAlert, note: str, now: datetime | None = None) -> None:
    """
    Alert fulfilled by a stock request; stays active until the delivery archives it.

    Any warehouse annotation left by an earlier cancelled request is cleared.
    """
    ensure_alert_transition(alert.status, AlertStatus.COMPLETED)
    alert.status = AlertStatus.COMPLETED
    alert.fulfillment_note = note
    alert.completed_at = now or datetime.utcnow()
    alert.warehouse_status = None
    alert.cancellation_reason = None


async def archive_alert(
    db: AsyncSession,
    alert: ReplenishmentAlert,
    final_status: ClosedAlertStatus,
    now: datetime | None = None,
) -> ClosedReplenishmentAlert:
    """Copy the alert into the closed archive and delete the active row."""
    ensure_alert_archivable(alert.status, final_status)
    closed = ClosedReplenishmentAlert(
        original_alert_id=alert.alert_id,
        product_id=alert.product_id,
        shelf_id=alert.shelf_id,
        predicted_depletion_date=alert.predicted_depletion_date,
        urgency=alert.urgency,
        status=final_status,
        warehouse_status=alert.warehouse_status,
        fulfillment_note=alert.fulfillment_note,
        created_at=alert.created_at,
        closed_at=now or datetime.utcnow(),
    )
    db.add(closed)
    await db.delete(alert)
    await db.flush()
    logger.info(
        "replenishment.alert_archived",
        alert_id=alert.alert_id,
        product_id=alert.product_id,
        shelf_id=alert.shelf_id,
        status=final_status.value,
    )
    return closed


# ──────────────────────────────────────────────────────────────────────────
# Manual management
# ──────────────────────────────────────────────────────────────────────────


async def create_manual_alert(
    db: AsyncSession,
    product_id: int,
    shelf_id: int,
    predicted_depletion_date: date,
    urgency: Urgency,
) -> ReplenishmentAlert:
    """Open an alert by hand. The pair must be stocked and have no active alert."""
    if await db.get(Product, product_id) is None:
        raise NotFoundError(f"Product {product_id} not found")
    if await db.get(Shelf, shelf_id) is None:
        raise NotFoundError(f"Shelf {shelf_id} not found")

    stocked = await db.execute(
        select(ShelfStock.shelf_stock_id).where(
            ShelfStock.product_id == product_id,
            ShelfStock.shelf_id == shelf_id,
        )
    )
    if stocked.scalar_one_or_none() is None:
        raise ValidationError(f"Product {product_id} is not assigned to shelf {shelf_id}")
    if await get_active_alert(db, product_id, shelf_id) is not None:
        raise ConflictError(f"An active alert already exists for product {product_id} on shelf {shelf_id}")

    alert = ReplenishmentAlert(
        product_id=product_id,
        shelf_id=shelf_id,
        predicted_depletion_date=predicted_depletion_date,
        urgency=urgency,
        status=AlertStatus.OPEN,
        created_at=datetime.utcnow(),
    )
    db.add(alert)
    await db.commit()
    await db.refresh(alert)
    logger.info(
        "replenishment.alert_created_manually",
        alert_id=alert.alert_id,
        product_id=product_id,
        shelf_id=shelf_id,
    )
    return alert


async def delete_alert(db: AsyncSession, alert_id: int) -> None:
    alert = await get_alert(db, alert_id)
    await db.delete(alert)
    await db.commit()
    logger.info("replenishment.alert_deleted", alert_id=alert_id)


# ──────────────────────────────────────────────────────────────────────────
# Publishing
# ──────────────────────────────────────────────────────────────────────────


def alert_payload(alert: ReplenishmentAlert) -> dict[str, Any]:
    return {
        "alert_id": alert.alert_id,
        "product_id": alert.product_id,
        "shelf_id": alert.shelf_id,
        "urgency": alert.urgency.value,
        "status": alert.status.value,
        "predicted_depletion_date": alert.predicted_depletion_date.isoformat(),
        "created_at": alert.created_at.isoformat(),
    }


async def publish_alerts(alerts: list[dict[str, Any]]) -> int:
    """
    Publish newly raised alerts to Redis pub/sub.
    Returns number of subscribers notified.
    """
    if not alerts:
        return 0

    settings = get_settings()
    redis = aioredis.from_url(settings.redis_url)
    try:
        total_subs = 0
        for payload in alerts:
            message = json.dumps({"type": "replenishment_alert", "payload": payload})
            total_subs += await redis.publish(settings.alert_channel, message)
        logger.info("replenishment.alerts_published", count=len(alerts), subscribers=total_subs)
        return total_subs
    finally:
        await redis.aclose()

"""
Replenishment Orchestrator — the full sweep over every shelf stock row.

For each (product, shelf) pair, in shelf_stock_id order:
  1. Low stock      → find or raise the active alert
  2. Not low stock  → an open alert resolved on its own and is archived
  3. Open alert     → file a stock request sized to the shelf's free space
  4. Active alert   → assign a pending restock task to the store's first
                      staff member when none is pending

Each pair is its own unit of work, committed on success. A unique
constraint violation means a concurrent writer got there first: the pair
is rolled back and retried once, and the retry's existence checks see the
other writer's row. Any other failure is rolled back and reported.

Running the sweep twice without intervening sales or deliveries creates
nothing on the second run.

predict_and_raise_alerts is the lighter entry point behind
GET /predict-depletion: step 1 only, no requests or tasks.
"""

from collections import Counter
from dataclasses import asdict, dataclass, field
from datetime import date, datetime
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from alerts.engine import alert_payload, archive_alert, get_active_alert, raise_alert
from core.config import Settings, get_settings
from core.lifecycle import AlertStatus, ClosedAlertStatus
from inventory.depletion import DepletionPrediction, predict_depletion
from retail.restock import assign_pending_task
from supply_chain.stock_requests import place_request

logger = structlog.get_logger()

PAIR_ATTEMPTS = 2


@dataclass
class ReplenishmentRun:
    """Counts reported by one sweep."""

    alerts_created: int = 0
    alerts_found: int = 0
    alerts_resolved: int = 0
    requests_created: int = 0
    tasks_assigned: int = 0
    pairs_processed: int = 0
    errors: list[dict[str, Any]] = field(default_factory=list)
    raised_alerts: list[dict[str, Any]] = field(default_factory=list)

    def apply(self, outcome: Counter) -> None:
        self.alerts_created += outcome["alerts_created"]
        self.alerts_found += outcome["alerts_found"]
        self.alerts_resolved += outcome["alerts_resolved"]
        self.requests_created += outcome["requests_created"]
        self.tasks_assigned += outcome["tasks_assigned"]

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


async def _process_pair(
    db: AsyncSession,
    prediction: DepletionPrediction,
    now: datetime,
) -> tuple[Counter, dict[str, Any] | None]:
    outcome: Counter = Counter()

    if not prediction.is_low_stock:
        alert = await get_active_alert(db, prediction.product_id, prediction.shelf_id)
        if alert is not None and alert.status == AlertStatus.OPEN:
            await archive_alert(db, alert, ClosedAlertStatus.RESOLVED, now=now)
            outcome["alerts_resolved"] += 1
        return outcome, None

    alert, created = await raise_alert(db, prediction)
    outcome["alerts_created" if created else "alerts_found"] += 1
    payload = alert_payload(alert) if created else None

    if alert.status == AlertStatus.OPEN:
        request = await place_request(
            db,
            alert,
            store_id=prediction.store_id,
            capacity=prediction.capacity,
            quantity_on_shelf=prediction.quantity,
            now=now,
        )
        if request is not None:
            outcome["requests_created"] += 1

    task = await assign_pending_task(db, alert, prediction.store_id, now=now)
    if task is not None:
        outcome["tasks_assigned"] += 1

    return outcome, payload


async def trigger_full_replenishment(
    db: AsyncSession,
    today: date | None = None,
    settings: Settings | None = None,
) -> ReplenishmentRun:
    """Run the sweep over every shelf stock row. Per-pair failures are collected, not raised."""
    settings = settings or get_settings()
    predictions = await predict_depletion(db, today=today, settings=settings)
    run = ReplenishmentRun()
    logger.info("replenishment.sweep_started", pairs=len(predictions))

    for prediction in predictions:
        for attempt in range(1, PAIR_ATTEMPTS + 1):
            try:
                outcome, payload = await _process_pair(db, prediction, datetime.utcnow())
                await db.commit()
            except IntegrityError as exc:
                await db.rollback()
                if attempt < PAIR_ATTEMPTS:
                    logger.warning(
                        "replenishment.pair_conflict_retry",
                        product_id=prediction.product_id,
                        shelf_id=prediction.shelf_id,
                        error=str(exc.orig),
                    )
                    continue
                run.errors.append(_pair_error(prediction, exc))
            except Exception as exc:
                await db.rollback()
                run.errors.append(_pair_error(prediction, exc))
            else:
                run.apply(outcome)
                if payload is not None:
                    run.raised_alerts.append(payload)
            break
        run.pairs_processed += 1

    logger.info(
        "replenishment.sweep_completed",
        alerts_created=run.alerts_created,
        alerts_found=run.alerts_found,
        alerts_resolved=run.alerts_resolved,
        requests_created=run.requests_created,
        tasks_assigned=run.tasks_assigned,
        pairs_processed=run.pairs_processed,
        errors=len(run.errors),
    )
    return run


async def predict_and_raise_alerts(
    db: AsyncSession,
    today: date | None = None,
    settings: Settings | None = None,
) -> tuple[list[DepletionPrediction], int]:
    """
    Projection for every pair, opening an alert for each low-stock pair without one.

    Files no stock requests and assigns no tasks; that is the sweep's job.
    Returns (predictions, alerts_created).
    """
    settings = settings or get_settings()
    predictions = await predict_depletion(db, today=today, settings=settings)
    created_count = 0

    for prediction in predictions:
        if not prediction.is_low_stock:
            continue
        try:
            _, created = await raise_alert(db, prediction)
            await db.commit()
        except IntegrityError:
            # A concurrent writer opened the alert first
            await db.rollback()
            continue
        if created:
            created_count += 1

    logger.info("depletion.alerts_raised", pairs=len(predictions), alerts_created=created_count)
    return predictions, created_count


def _pair_error(prediction: DepletionPrediction, exc: Exception) -> dict[str, Any]:
    logger.error(
        "replenishment.pair_failed",
        product_id=prediction.product_id,
        shelf_id=prediction.shelf_id,
        error=str(exc),
    )
    return {
        "product_id": prediction.product_id,
        "shelf_id": prediction.shelf_id,
        "message": str(exc),
    }

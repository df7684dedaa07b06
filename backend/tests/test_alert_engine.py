"""
Tests for the Alert Engine — lifecycle transitions and publishing.

Covers:
  - raise_alert opens one alert per (product, shelf)
  - Completion and archival transitions, including same-valued statuses
  - Manual alert validation
  - Redis pub/sub fan-out
"""

import json
from datetime import date, datetime

import pytest
from sqlalchemy import func, select

from alerts import engine as alert_engine
from alerts.engine import archive_alert, create_manual_alert, mark_alert_completed, publish_alerts, raise_alert
from core.errors import ConflictError, PreconditionError, ValidationError
from core.lifecycle import (
    AlertStatus,
    ClosedAlertStatus,
    Urgency,
    WarehouseStatus,
    ensure_alert_archivable,
    ensure_alert_transition,
)
from db.models import ClosedReplenishmentAlert, ReplenishmentAlert
from inventory.depletion import DepletionPrediction


def _prediction(product, shelf, quantity=2):
    return DepletionPrediction(
        shelf_stock_id=1,
        product_id=product.product_id,
        product_name=product.name,
        shelf_id=shelf.shelf_id,
        shelf_code=shelf.shelf_code,
        store_id=shelf.store_id,
        quantity=quantity,
        capacity=shelf.capacity,
        utilization_pct=20.0,
        avg_daily_sales=2.0,
        days_to_depletion=1.0,
        expected_depletion_date=date(2026, 3, 11),
        is_low_stock=True,
        urgency=Urgency.CRITICAL,
    )


class FakeRedis:
    def __init__(self, subscribers=2):
        self.subscribers = subscribers
        self.published = []
        self.closed = False

    async def publish(self, channel, message):
        self.published.append((channel, json.loads(message)))
        return self.subscribers

    async def aclose(self):
        self.closed = True


# ── Transitions ────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestAlertLifecycle:
    async def test_raise_alert_is_idempotent_per_pair(self, test_db, seeded_db):
        prediction = _prediction(seeded_db["bread"], seeded_db["bakery_shelf"])

        alert, created = await raise_alert(test_db, prediction)
        again, created_again = await raise_alert(test_db, prediction)

        assert created is True
        assert created_again is False
        assert again.alert_id == alert.alert_id
        assert alert.status == AlertStatus.OPEN
        assert alert.urgency == Urgency.CRITICAL
        count = await test_db.scalar(select(func.count()).select_from(ReplenishmentAlert))
        assert count == 1

    async def test_archive_completed_alert(self, test_db, seeded_db):
        alert, _ = await raise_alert(test_db, _prediction(seeded_db["bread"], seeded_db["bakery_shelf"]))
        alert_id = alert.alert_id
        mark_alert_completed(alert, "Stock request placed for 8 units")

        closed = await archive_alert(test_db, alert, ClosedAlertStatus.COMPLETED, now=datetime(2026, 3, 12))
        await test_db.commit()

        assert closed.original_alert_id == alert_id
        assert closed.status == ClosedAlertStatus.COMPLETED
        assert closed.fulfillment_note == "Stock request placed for 8 units"
        assert await test_db.get(ReplenishmentAlert, alert_id) is None
        archived = await test_db.scalar(select(func.count()).select_from(ClosedReplenishmentAlert))
        assert archived == 1

    async def test_open_alert_cannot_be_archived_as_completed(self, test_db, seeded_db):
        alert, _ = await raise_alert(test_db, _prediction(seeded_db["bread"], seeded_db["bakery_shelf"]))
        with pytest.raises(PreconditionError):
            await archive_alert(test_db, alert, ClosedAlertStatus.COMPLETED)

    async def test_completed_alert_cannot_be_resolved(self, test_db, seeded_db):
        alert, _ = await raise_alert(test_db, _prediction(seeded_db["bread"], seeded_db["bakery_shelf"]))
        mark_alert_completed(alert, "placed")
        with pytest.raises(PreconditionError):
            await archive_alert(test_db, alert, ClosedAlertStatus.RESOLVED)

    async def test_completed_twice_rejected(self, test_db, seeded_db):
        alert, _ = await raise_alert(test_db, _prediction(seeded_db["bread"], seeded_db["bakery_shelf"]))
        mark_alert_completed(alert, "placed")
        with pytest.raises(PreconditionError):
            mark_alert_completed(alert, "placed again")

    async def test_recompletion_clears_cancellation_annotation(self, test_db, seeded_db):
        alert, _ = await raise_alert(test_db, _prediction(seeded_db["bread"], seeded_db["bakery_shelf"]))
        alert.warehouse_status = WarehouseStatus.CANCELLED
        alert.cancellation_reason = "Supplier out of stock"
        mark_alert_completed(alert, "placed again")
        assert alert.warehouse_status is None
        assert alert.cancellation_reason is None


class TestAlertTransitionTable:
    def test_open_to_completed_allowed(self):
        ensure_alert_transition(AlertStatus.OPEN, AlertStatus.COMPLETED)

    def test_completed_reopens(self):
        ensure_alert_transition(AlertStatus.COMPLETED, AlertStatus.OPEN)

    def test_archive_status_is_not_an_active_target(self):
        # ClosedAlertStatus.COMPLETED has the same string value as AlertStatus.COMPLETED
        with pytest.raises(PreconditionError):
            ensure_alert_transition(AlertStatus.OPEN, ClosedAlertStatus.COMPLETED)

    def test_completed_to_completed_rejected(self):
        with pytest.raises(PreconditionError, match="already completed"):
            ensure_alert_transition(AlertStatus.COMPLETED, AlertStatus.COMPLETED)

    @pytest.mark.parametrize(
        "current, final_status",
        [
            (AlertStatus.COMPLETED, ClosedAlertStatus.COMPLETED),
            (AlertStatus.OPEN, ClosedAlertStatus.RESOLVED),
        ],
    )
    def test_archivable(self, current, final_status):
        ensure_alert_archivable(current, final_status)

    @pytest.mark.parametrize(
        "current, final_status",
        [
            (AlertStatus.OPEN, ClosedAlertStatus.COMPLETED),
            (AlertStatus.COMPLETED, ClosedAlertStatus.RESOLVED),
        ],
    )
    def test_not_archivable(self, current, final_status):
        with pytest.raises(PreconditionError, match="Cannot archive"):
            ensure_alert_archivable(current, final_status)

    def test_active_status_is_not_an_archive_status(self):
        with pytest.raises(PreconditionError):
            ensure_alert_archivable(AlertStatus.COMPLETED, AlertStatus.COMPLETED)


# ── Manual alerts ──────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestManualAlerts:
    async def test_unstocked_pair_rejected(self, test_db, seeded_db):
        with pytest.raises(ValidationError, match="not assigned"):
            await create_manual_alert(
                test_db,
                seeded_db["milk"].product_id,
                seeded_db["dairy_shelf_2"].shelf_id,
                date(2026, 3, 20),
                Urgency.LOW,
            )

    async def test_second_alert_for_pair_conflicts(self, test_db, seeded_db, stock_shelf):
        milk_id = seeded_db["milk"].product_id
        shelf_id = seeded_db["dairy_shelf"].shelf_id
        await stock_shelf(seeded_db["milk"], seeded_db["dairy_shelf"], 30)

        alert = await create_manual_alert(test_db, milk_id, shelf_id, date(2026, 3, 20), Urgency.MEDIUM)
        assert alert.status == AlertStatus.OPEN

        with pytest.raises(ConflictError):
            await create_manual_alert(test_db, milk_id, shelf_id, date(2026, 3, 21), Urgency.HIGH)


# ── Publishing ─────────────────────────────────────────────────────────


@pytest.mark.asyncio
class TestPublishAlerts:
    async def test_publishes_each_alert_and_closes(self, monkeypatch):
        fake = FakeRedis(subscribers=3)
        monkeypatch.setattr(alert_engine.aioredis, "from_url", lambda url: fake)

        payloads = [{"alert_id": 1, "urgency": "critical"}, {"alert_id": 2, "urgency": "low"}]
        notified = await publish_alerts(payloads)

        assert notified == 6
        assert fake.closed is True
        assert [msg["payload"]["alert_id"] for _, msg in fake.published] == [1, 2]
        assert {channel for channel, _ in fake.published} == {"replenishment:alerts"}
        assert fake.published[0][1]["type"] == "replenishment_alert"

    async def test_nothing_to_publish_skips_redis(self, monkeypatch):
        def _fail(url):
            raise AssertionError("redis should not be contacted")

        monkeypatch.setattr(alert_engine.aioredis, "from_url", _fail)
        assert await publish_alerts([]) == 0

"""
Tests for the velocity estimator and depletion predictor.

Covers:
  - Urgency classification boundaries
  - Days-to-depletion projection and the low-stock threshold
  - Velocity window policies (selling days vs calendar days)
  - predict_depletion against the database
"""

from datetime import date, datetime, timedelta

import pandas as pd
import pytest

from core.config import Settings
from core.lifecycle import Urgency
from inventory.depletion import classify_urgency, predict_depletion, project_depletion
from inventory.velocity import average_daily_units

TODAY = date(2026, 3, 10)

# ── Urgency ────────────────────────────────────────────────────────────


class TestUrgency:
    def test_critical_one_day(self):
        assert classify_urgency(1.0) == Urgency.CRITICAL

    def test_critical_zero_days(self):
        assert classify_urgency(0) == Urgency.CRITICAL

    def test_high_two_days(self):
        assert classify_urgency(2.0) == Urgency.HIGH

    def test_medium_three_and_a_half_days(self):
        assert classify_urgency(3.5) == Urgency.MEDIUM

    def test_medium_four_days(self):
        assert classify_urgency(4.0) == Urgency.MEDIUM

    def test_low_just_over_four_days(self):
        assert classify_urgency(4.01) == Urgency.LOW

    def test_low_ten_days(self):
        assert classify_urgency(10) == Urgency.LOW


# ── Projection ─────────────────────────────────────────────────────────


class TestProjectDepletion:
    def test_half_full_shelf_selling_five_a_day(self):
        days, expected, low, urgency = project_depletion(5, 5.0, TODAY, 5.0)
        assert days == 1.0
        assert expected == TODAY + timedelta(days=1)
        assert low is True
        assert urgency == Urgency.CRITICAL

    def test_zero_velocity_is_never_low_stock(self):
        assert project_depletion(0, 0.0, TODAY, 5.0) == (None, None, False, None)

    def test_missing_velocity_is_never_low_stock(self):
        assert project_depletion(3, None, TODAY, 5.0) == (None, None, False, None)

    def test_threshold_is_exclusive(self):
        days, _, low, urgency = project_depletion(50, 10.0, TODAY, 5.0)
        assert days == 5.0
        assert low is False
        assert urgency == Urgency.LOW

    def test_days_rounded_to_two_places(self):
        days, expected, low, _ = project_depletion(10, 3.0, TODAY, 5.0)
        assert days == 3.33
        assert expected == TODAY + timedelta(days=3)
        assert low is True

    def test_empty_shelf_is_critical(self):
        days, expected, low, urgency = project_depletion(0, 2.5, TODAY, 5.0)
        assert days == 0.0
        assert expected == TODAY
        assert low is True
        assert urgency == Urgency.CRITICAL


# ── Velocity ───────────────────────────────────────────────────────────


def _sales_frame():
    return pd.DataFrame(
        [
            {"product_id": 1, "quantity": 2, "sold_at": datetime(2026, 3, 8, 9, 0)},
            {"product_id": 1, "quantity": 3, "sold_at": datetime(2026, 3, 8, 17, 30)},
            {"product_id": 1, "quantity": 5, "sold_at": datetime(2026, 3, 10, 12, 0)},
            {"product_id": 2, "quantity": 4, "sold_at": datetime(2026, 3, 10, 8, 0)},
        ]
    )


class TestVelocity:
    def test_selling_days_ignores_zero_sale_days(self):
        velocity = average_daily_units(_sales_frame(), policy="selling_days")
        # Daily sums 5 and 5; March 9 had no sales
        assert velocity[1] == pytest.approx(5.0)
        assert velocity[2] == pytest.approx(4.0)

    def test_calendar_days_counts_zero_sale_days(self):
        velocity = average_daily_units(_sales_frame(), policy="calendar_days", today=TODAY)
        # 10 units over March 8-10
        assert velocity[1] == pytest.approx(10 / 3)
        assert velocity[2] == pytest.approx(4.0)

    def test_calendar_days_with_fixed_lookback(self):
        velocity = average_daily_units(_sales_frame(), policy="calendar_days", today=TODAY, lookback_days=10)
        assert velocity[1] == pytest.approx(1.0)
        assert velocity[2] == pytest.approx(0.4)

    def test_no_history_means_absent(self):
        empty = pd.DataFrame(columns=["product_id", "quantity", "sold_at"])
        assert average_daily_units(empty) == {}

    def test_unknown_policy_rejected(self):
        with pytest.raises(ValueError, match="policy"):
            average_daily_units(_sales_frame(), policy="weekly")


# ── predict_depletion ──────────────────────────────────────────────────


@pytest.mark.asyncio
class TestPredictDepletion:
    async def test_low_stock_pair_is_flagged(self, test_db, seeded_db, stock_shelf, record_sales):
        await stock_shelf(seeded_db["bread"], seeded_db["bakery_shelf"], 5)
        await record_sales(seeded_db["bread"], seeded_db["store"], units=5, days=3)

        predictions = await predict_depletion(test_db, settings=Settings())
        assert len(predictions) == 1
        prediction = predictions[0]
        assert prediction.avg_daily_sales == 5.0
        assert prediction.days_to_depletion == 1.0
        assert prediction.urgency == Urgency.CRITICAL
        assert prediction.is_low_stock is True
        assert prediction.capacity == 10
        assert prediction.refill_quantity == 5

    async def test_product_without_sales_is_not_low(self, test_db, seeded_db, stock_shelf):
        await stock_shelf(seeded_db["milk"], seeded_db["dairy_shelf"], 2)

        predictions = await predict_depletion(test_db, settings=Settings())
        assert predictions[0].avg_daily_sales is None
        assert predictions[0].days_to_depletion is None
        assert predictions[0].is_low_stock is False

    async def test_calendar_policy_spreads_sales_over_window(self, test_db, seeded_db, stock_shelf, record_sales):
        await stock_shelf(seeded_db["bread"], seeded_db["bakery_shelf"], 8)
        await record_sales(seeded_db["bread"], seeded_db["store"], units=4, days=2)

        settings = Settings(velocity_window_policy="calendar_days", velocity_lookback_days=8)
        predictions = await predict_depletion(test_db, settings=settings)
        # 8 units over an 8-day window
        assert predictions[0].avg_daily_sales == 1.0
        assert predictions[0].days_to_depletion == 8.0
        assert predictions[0].is_low_stock is False

    async def test_prediction_does_not_change_state(self, test_db, seeded_db, stock_shelf, record_sales):
        from sqlalchemy import func, select

        from db.models import ReplenishmentAlert

        await stock_shelf(seeded_db["bread"], seeded_db["bakery_shelf"], 1)
        await record_sales(seeded_db["bread"], seeded_db["store"], units=5, days=2)

        await predict_depletion(test_db, settings=Settings())
        count = await test_db.scalar(select(func.count()).select_from(ReplenishmentAlert))
        assert count == 0

"""
API Integration Tests — replenishment and warehouse endpoints.
"""

import pytest
from httpx import AsyncClient


@pytest.fixture
async def requested_milk(client: AsyncClient, seeded_db, stock_shelf, record_sales):
    """Milk at 0/100, sweep already run: one alert, one request, one task."""
    await stock_shelf(seeded_db["milk"], seeded_db["dairy_shelf"], 0)
    await record_sales(seeded_db["milk"], seeded_db["store"], units=10, days=3)
    resp = await client.post("/api/v1/replenishment/trigger-all")
    assert resp.status_code == 200
    requests = (await client.get("/api/v1/warehouse/pending-requests")).json()
    assert len(requests) == 1
    return requests[0]


@pytest.mark.asyncio
class TestReplenishmentAPI:
    async def test_predict_depletion(self, client: AsyncClient, seeded_db, stock_shelf, record_sales):
        await stock_shelf(seeded_db["bread"], seeded_db["bakery_shelf"], 5)
        await record_sales(seeded_db["bread"], seeded_db["store"], units=5, days=2)

        resp = await client.get("/api/v1/replenishment/predict-depletion")
        assert resp.status_code == 200
        data = resp.json()
        assert len(data) == 1
        assert data[0]["days_to_depletion"] == 1.0
        assert data[0]["urgency"] == "critical"
        assert data[0]["is_low_stock"] is True

    async def test_predict_depletion_opens_alert_only(
        self, client: AsyncClient, seeded_db, stock_shelf, record_sales
    ):
        await stock_shelf(seeded_db["milk"], seeded_db["dairy_shelf"], 0)
        await record_sales(seeded_db["milk"], seeded_db["store"], units=10, days=3)

        resp = await client.get("/api/v1/replenishment/predict-depletion")
        assert resp.status_code == 200

        alerts = (await client.get("/api/v1/replenishment/alerts")).json()
        assert len(alerts) == 1
        assert alerts[0]["status"] == "open"
        assert (await client.get("/api/v1/stock-requests/")).json() == []
        assert (await client.get("/api/v1/restock-tasks/")).json() == []

        # A second call finds the open alert instead of adding another
        await client.get("/api/v1/replenishment/predict-depletion")
        assert len((await client.get("/api/v1/replenishment/alerts")).json()) == 1

    async def test_predict_depletion_without_raising(
        self, client: AsyncClient, seeded_db, stock_shelf, record_sales
    ):
        await stock_shelf(seeded_db["milk"], seeded_db["dairy_shelf"], 0)
        await record_sales(seeded_db["milk"], seeded_db["store"], units=10, days=3)

        resp = await client.get("/api/v1/replenishment/predict-depletion", params={"raise_alerts": "false"})
        assert resp.status_code == 200
        assert resp.json()[0]["is_low_stock"] is True
        assert (await client.get("/api/v1/replenishment/alerts")).json() == []

    async def test_trigger_all_is_idempotent(self, client: AsyncClient, requested_milk):
        resp = await client.post("/api/v1/replenishment/trigger-all")
        assert resp.status_code == 200
        data = resp.json()
        assert data["alerts_created"] == 0
        assert data["requests_created"] == 0
        assert data["tasks_assigned"] == 0
        assert data["errors"] == []

    async def test_list_and_get_alert(self, client: AsyncClient, requested_milk):
        resp = await client.get("/api/v1/replenishment/alerts")
        assert resp.status_code == 200
        alerts = resp.json()
        assert len(alerts) == 1
        assert alerts[0]["status"] == "completed"
        assert alerts[0]["alert_id"] == requested_milk["alert_id"]

        resp = await client.get(f"/api/v1/replenishment/alerts/{requested_milk['alert_id']}")
        assert resp.status_code == 200
        assert resp.json()["urgency"] == "critical"

    async def test_get_unknown_alert_404(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/replenishment/alerts/999")
        assert resp.status_code == 404
        assert "not found" in resp.json()["detail"]

    async def test_manual_alert_conflicts_with_active(self, client: AsyncClient, seeded_db, requested_milk):
        resp = await client.post(
            "/api/v1/replenishment/alerts",
            json={
                "product_id": requested_milk["product_id"],
                "shelf_id": requested_milk["shelf_id"],
                "predicted_depletion_date": "2026-12-01",
                "urgency": "high",
            },
        )
        assert resp.status_code == 409

    async def test_delete_alert_requires_confirmation(self, client: AsyncClient, requested_milk):
        alert_id = requested_milk["alert_id"]
        resp = await client.delete(f"/api/v1/replenishment/alerts/{alert_id}")
        assert resp.status_code == 400

        resp = await client.delete(
            f"/api/v1/replenishment/alerts/{alert_id}",
            headers={"X-Confirm-Delete": "true"},
        )
        assert resp.status_code == 204
        assert (await client.get(f"/api/v1/replenishment/alerts/{alert_id}")).status_code == 404


@pytest.mark.asyncio
class TestWarehouseAPI:
    async def test_dispatch_sets_eta(self, client: AsyncClient, requested_milk):
        request_id = requested_milk["request_id"]
        resp = await client.put(
            f"/api/v1/warehouse/{request_id}/dispatch",
            json={"estimated_arrival": "2026-11-02T08:00:00"},
        )
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "in_transit"
        assert data["estimated_arrival"].startswith("2026-11-02T08:00")

        alert = (await client.get(f"/api/v1/replenishment/alerts/{requested_milk['alert_id']}")).json()
        assert alert["warehouse_status"] == "in_transit"

    async def test_dispatch_twice_is_400(self, client: AsyncClient, requested_milk):
        request_id = requested_milk["request_id"]
        assert (await client.put(f"/api/v1/warehouse/{request_id}/dispatch")).status_code == 200
        resp = await client.put(f"/api/v1/warehouse/{request_id}/dispatch")
        assert resp.status_code == 400

    async def test_deliver_completes_cycle(self, client: AsyncClient, requested_milk):
        request_id = requested_milk["request_id"]
        resp = await client.put(f"/api/v1/warehouse/{request_id}/deliver")
        assert resp.status_code == 200
        data = resp.json()
        assert data["quantity_on_shelf"] == 100
        assert data["closed_alert_id"] == requested_milk["alert_id"]

        assert (await client.get("/api/v1/replenishment/alerts")).json() == []
        closed = (await client.get("/api/v1/replenishment/closed-alerts")).json()
        assert [c["original_alert_id"] for c in closed] == [requested_milk["alert_id"]]
        assert closed[0]["status"] == "completed"

        summary = (await client.get("/api/v1/inventory/summary")).json()
        assert summary[0]["quantity"] == 100
        assert summary[0]["utilization_pct"] == 100.0
        assert summary[0]["has_active_alert"] is False

    async def test_deliver_archived_request_is_400(self, client: AsyncClient, requested_milk):
        request_id = requested_milk["request_id"]
        assert (await client.put(f"/api/v1/warehouse/{request_id}/deliver")).status_code == 200
        resp = await client.put(f"/api/v1/warehouse/{request_id}/deliver")
        assert resp.status_code == 400
        assert "already delivered" in resp.json()["detail"]

    async def test_cancel_unknown_request_is_404(self, client: AsyncClient, seeded_db):
        resp = await client.put("/api/v1/warehouse/999/cancel", json={"reason": "nope"})
        assert resp.status_code == 404

    async def test_cancel_reopens_alert(self, client: AsyncClient, requested_milk):
        request_id = requested_milk["request_id"]
        resp = await client.put(f"/api/v1/warehouse/{request_id}/cancel", json={"reason": "Supplier recall"})
        assert resp.status_code == 200
        data = resp.json()
        assert data["original_request_id"] == request_id
        assert data["cancellation_reason"] == "Supplier recall"

        alert = (await client.get(f"/api/v1/replenishment/alerts/{requested_milk['alert_id']}")).json()
        assert alert["status"] == "open"
        assert alert["warehouse_status"] == "cancelled"
        assert alert["cancellation_reason"] == "Supplier recall"
        assert (await client.get("/api/v1/warehouse/pending-requests")).json() == []

        resp = await client.put(f"/api/v1/warehouse/{request_id}/cancel", json={"reason": "again"})
        assert resp.status_code == 400

    async def test_cancel_requires_reason(self, client: AsyncClient, requested_milk):
        resp = await client.put(f"/api/v1/warehouse/{requested_milk['request_id']}/cancel", json={})
        assert resp.status_code == 422


@pytest.mark.asyncio
class TestStockRequestsAPI:
    async def test_manual_request_conflicts_with_active(self, client: AsyncClient, requested_milk):
        resp = await client.post(
            "/api/v1/stock-requests/",
            json={
                "product_id": requested_milk["product_id"],
                "store_id": requested_milk["store_id"],
                "quantity": 12,
            },
        )
        assert resp.status_code == 409

    async def test_manual_request_created(self, client: AsyncClient, seeded_db):
        bread_id = seeded_db["bread"].product_id
        store_id = seeded_db["store"].store_id
        resp = await client.post(
            "/api/v1/stock-requests/",
            json={"product_id": bread_id, "store_id": store_id, "quantity": 12},
        )
        assert resp.status_code == 201
        data = resp.json()
        assert data["status"] == "requested"

        resp = await client.get(f"/api/v1/stock-requests/{data['request_id']}")
        assert resp.status_code == 200
        assert resp.json()["quantity"] == 12

    async def test_manual_request_rejects_zero_quantity(self, client: AsyncClient, seeded_db):
        bread_id = seeded_db["bread"].product_id
        store_id = seeded_db["store"].store_id
        resp = await client.post(
            "/api/v1/stock-requests/",
            json={"product_id": bread_id, "store_id": store_id, "quantity": 0},
        )
        assert resp.status_code == 422


@pytest.mark.asyncio
class TestRoleGating:
    @pytest.fixture
    def mock_user(self):
        return {"sub": "auth|clerk", "email": "clerk@shelfsense.local", "role": "staff"}

    async def test_staff_cannot_trigger_sweep(self, client: AsyncClient, seeded_db):
        resp = await client.post("/api/v1/replenishment/trigger-all")
        assert resp.status_code == 403

    async def test_staff_cannot_use_warehouse_endpoints(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/warehouse/pending-requests")
        assert resp.status_code == 403

    async def test_staff_can_read(self, client: AsyncClient, seeded_db):
        resp = await client.get("/api/v1/replenishment/closed-alerts")
        assert resp.status_code == 200

"""
API Integration Tests — restock task assignment and completion.
"""


import pytest
from httpx import AsyncClient


@pytest.fixture
async def pending_bread_task(client: AsyncClient, seeded_db, stock_shelf, record_sales):
    """Bread at 2/10 selling 5 a day; sweep assigned a task to the first clerk."""
    await stock_shelf(seeded_db["bread"], seeded_db["bakery_shelf"], 2)
    await record_sales(seeded_db["bread"], seeded_db["store"], units=5, days=2)
    assert (await client.post("/api/v1/replenishment/trigger-all")).status_code == 200
    tasks = (await client.get("/api/v1/restock-tasks/")).json()
    assert len(tasks) == 1
    return tasks[0]


@pytest.mark.asyncio
class TestRestockTasksAPI:
    async def test_sweep_assigns_first_staff_member(self, client: AsyncClient, seeded_db, pending_bread_task):
        assert pending_bread_task["assigned_to"] == seeded_db["clerk"].staff_id
        assert pending_bread_task["status"] == "pending"

    async def test_complete_restocks_shelf_and_logs_report(self, client: AsyncClient, pending_bread_task):
        task_id = pending_bread_task["task_id"]
        resp = await client.put(f"/api/v1/restock-tasks/{task_id}/complete", json={"quantity_restocked": 8})
        assert resp.status_code == 200
        data = resp.json()
        assert data["status"] == "completed"
        assert data["quantity_restocked"] == 8
        assert data["completed_at"] is not None

        stock = (await client.get("/api/v1/shelf-stock/")).json()[0]
        assert stock["quantity"] == 10
        assert stock["last_restocked_at"] is not None

        reports = (await client.get("/api/v1/inventory/reports")).json()
        assert len(reports) == 1
        assert reports[0]["quantity_on_shelf"] == 10
        assert reports[0]["quantity_restocked"] == 8
        assert reports[0]["alert_triggered"] is True

        summary = (await client.get("/api/v1/inventory/summary")).json()
        assert summary[0]["last_restock_at"] is not None

    async def test_complete_twice_is_400(self, client: AsyncClient, pending_bread_task):
        task_id = pending_bread_task["task_id"]
        url = f"/api/v1/restock-tasks/{task_id}/complete"
        assert (await client.put(url, json={"quantity_restocked": 3})).status_code == 200
        resp = await client.put(url, json={"quantity_restocked": 3})
        assert resp.status_code == 400

        stock = (await client.get("/api/v1/shelf-stock/")).json()[0]
        assert stock["quantity"] == 5

    async def test_complete_rejects_non_positive_quantity(self, client: AsyncClient, pending_bread_task):
        task_id = pending_bread_task["task_id"]
        resp = await client.put(f"/api/v1/restock-tasks/{task_id}/complete", json={"quantity_restocked": 0})
        assert resp.status_code == 422
        task = (await client.get(f"/api/v1/restock-tasks/{task_id}")).json()
        assert task["status"] == "pending"

    async def test_complete_unknown_task_404(self, client: AsyncClient, seeded_db):
        resp = await client.put("/api/v1/restock-tasks/999/complete", json={"quantity_restocked": 1})
        assert resp.status_code == 404

    async def test_progress_then_complete(self, client: AsyncClient, pending_bread_task):
        task_id = pending_bread_task["task_id"]
        resp = await client.put(f"/api/v1/restock-tasks/{task_id}/status", json={"status": "in_progress"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "in_progress"

        resp = await client.put(f"/api/v1/restock-tasks/{task_id}/complete", json={"quantity_restocked": 2})
        assert resp.status_code == 200

        resp = await client.put(f"/api/v1/restock-tasks/{task_id}/status", json={"status": "delayed"})
        assert resp.status_code == 400

    async def test_manual_task_conflicts_with_pending(self, client: AsyncClient, seeded_db, pending_bread_task):
        resp = await client.post(
            "/api/v1/restock-tasks/",
            json={"alert_id": pending_bread_task["alert_id"], "staff_id": seeded_db["manager"].staff_id},
        )
        assert resp.status_code == 409

    async def test_racing_assignment_is_409(self, client: AsyncClient, seeded_db, pending_bread_task, monkeypatch):
        # The existence check misses a task another writer committed; the pending-pair index catches it
        async def no_pending_task(db, product_id, shelf_id):
            return None

        monkeypatch.setattr("retail.restock.get_pending_task", no_pending_task)
        resp = await client.post(
            "/api/v1/restock-tasks/",
            json={"alert_id": pending_bread_task["alert_id"], "staff_id": seeded_db["manager"].staff_id},
        )
        assert resp.status_code == 409
        assert "already exists" in resp.json()["detail"]

        monkeypatch.undo()
        tasks = (await client.get("/api/v1/restock-tasks/")).json()
        assert [t["task_id"] for t in tasks] == [pending_bread_task["task_id"]]


@pytest.mark.asyncio
class TestManualAssignment:
    async def test_assign_logs_alert_triggered_report(self, client: AsyncClient, seeded_db, stock_shelf):
        milk_id = seeded_db["milk"].product_id
        shelf_id = seeded_db["dairy_shelf"].shelf_id
        manager_id = seeded_db["manager"].staff_id
        await stock_shelf(seeded_db["milk"], seeded_db["dairy_shelf"], 30)

        alert = await client.post(
            "/api/v1/replenishment/alerts",
            json={
                "product_id": milk_id,
                "shelf_id": shelf_id,
                "predicted_depletion_date": "2026-12-01",
                "urgency": "medium",
            },
        )
        assert alert.status_code == 201

        resp = await client.post(
            "/api/v1/restock-tasks/",
            json={"alert_id": alert.json()["alert_id"], "staff_id": manager_id},
        )
        assert resp.status_code == 201
        assert resp.json()["assigned_to"] == manager_id

        reports = (await client.get("/api/v1/inventory/reports")).json()
        assert reports[0]["quantity_on_shelf"] == 30
        assert reports[0]["quantity_restocked"] is None
        assert reports[0]["alert_triggered"] is True

    async def test_staff_from_other_store_rejected(self, client: AsyncClient, seeded_db, stock_shelf, test_db):
        from db.models import Staff

        milk_id = seeded_db["milk"].product_id
        shelf_id = seeded_db["dairy_shelf"].shelf_id
        outsider = Staff(
            store_id=seeded_db["other_store"].store_id,
            name="Carol Uptown",
            role="staff",
            email="carol@shelfsense.local",
        )
        test_db.add(outsider)
        await test_db.commit()
        outsider_id = outsider.staff_id
        await stock_shelf(seeded_db["milk"], seeded_db["dairy_shelf"], 30)

        alert = await client.post(
            "/api/v1/replenishment/alerts",
            json={
                "product_id": milk_id,
                "shelf_id": shelf_id,
                "predicted_depletion_date": "2026-12-01",
                "urgency": "low",
            },
        )
        resp = await client.post(
            "/api/v1/restock-tasks/",
            json={"alert_id": alert.json()["alert_id"], "staff_id": outsider_id},
        )
        assert resp.status_code == 422

"""
HomeHorizon - API Tests
=======================
End-to-end tests for the FastAPI layer using the in-memory stores.
"""

import asyncio
import os
import sys
import time
from datetime import date

import httpx
import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, os.path.join(os.path.dirname(os.path.abspath(__file__)), "..", "backend"))

import main
from main import app


QUICK_CHECK = {
    "targetYear": date.today().year + 5,
    "targetHousePrice": 3,
    "monthlyLivingExpenses": 10,
    "userMonthlyIncome": 30,
    "initialSavings": 200,
}


@pytest.fixture(autouse=True)
def clean_stores():
    for store in (main.plans_db, main.reports_db, main.history_db, main.plan_locks):
        store.clear()
    yield


@pytest.fixture
def client():
    return TestClient(app)


@pytest.fixture
def plan_id(client):
    response = client.post("/api/plans", json=QUICK_CHECK, headers={"X-User-Id": "user-1"})
    assert response.status_code == 201
    return response.json()["planId"]


# =============================================================================
# HEALTH
# =============================================================================

class TestHealth:

    def test_root(self, client):
        assert client.get("/").json()["status"] == "healthy"

    def test_health(self, client):
        body = client.get("/api/health").json()
        assert body["status"] == "healthy"
        assert body["components"]["projection_engine"] == "ready"

    def test_reference_defaults(self, client):
        body = client.get("/api/reference/defaults").json()
        assert body["assumptions"]["pctSalaryGrowth"] == 7.0
        assert body["simulation"]["horizonYears"] == 30
        assert body["simulation"]["debtServiceRatio"] == 0.5


# =============================================================================
# PLAN CREATION
# =============================================================================

class TestPlanCreation:

    def test_create_plan(self, client):
        response = client.post("/api/plans", json=QUICK_CHECK, headers={"X-User-Id": "user-1"})
        assert response.status_code == 201

        body = response.json()
        assert body["version"] == 1
        assert body["firstViableYear"] == date.today().year + 7
        assert body["projection"]["earliestPurchaseYear"] == 7
        assert len(body["projection"]["trajectory"]) == 31

    def test_stored_snapshot_is_normalized(self, client, plan_id):
        plan = client.get(f"/api/plans/{plan_id}").json()["plan"]
        assert plan["yearsToPurchase"] == 5
        assert plan["targetHousePriceN0"] == 3000
        assert plan["pctHouseGrowth"] == 10.0
        assert plan["paymentMethod"] == "BankLoan"

    def test_past_target_year_rejected(self, client):
        payload = dict(QUICK_CHECK, targetYear=date.today().year - 1)
        response = client.post("/api/plans", json=payload)
        assert response.status_code == 400
        assert response.json()["errors"][0]["field"] == "targetYear"

    def test_invalid_body_rejected(self, client):
        payload = dict(QUICK_CHECK, monthlyLivingExpenses=-1)
        response = client.post("/api/plans", json=payload)
        assert response.status_code == 400
        body = response.json()
        assert body["success"] is False
        assert body["errors"][0]["field"] == "monthlyLivingExpenses"

    def test_new_plan_replaces_old_one(self, client, plan_id):
        response = client.post("/api/plans", json=QUICK_CHECK, headers={"X-User-Id": "user-1"})
        new_id = response.json()["planId"]

        plans = client.get("/api/plans", headers={"X-User-Id": "user-1"}).json()
        assert [p["planId"] for p in plans] == [new_id]
        assert client.get(f"/api/plans/{plan_id}").status_code == 404

    def test_plans_are_per_user(self, client, plan_id):
        client.post("/api/plans", json=QUICK_CHECK, headers={"X-User-Id": "user-2"})
        assert len(client.get("/api/plans", headers={"X-User-Id": "user-1"}).json()) == 1
        assert len(client.get("/api/plans", headers={"X-User-Id": "user-2"}).json()) == 1

    def test_unknown_plan(self, client):
        assert client.get("/api/plans/missing").status_code == 404


# =============================================================================
# SECTION UPDATES
# =============================================================================

class TestSectionUpdates:

    def test_spending_update_worsens(self, client, plan_id):
        response = client.patch(f"/api/plans/{plan_id}/section", json={
            "section": "spending",
            "data": {"monthlyNonHousingDebt": 5},
        })
        assert response.status_code == 200

        body = response.json()
        assert body["success"] is True
        assert body["hasWorsened"] is True
        assert body["outcome"] == "worsened"
        assert body["previousPurchaseYear"] == 7
        assert body["earliestPurchaseYear"] > 7
        assert body["version"] == 2
        assert body["plan"]["monthlyNonHousingDebt"] == 5

    def test_update_is_persisted_and_recorded(self, client, plan_id):
        client.patch(f"/api/plans/{plan_id}/section", json={
            "section": "familysupport",
            "data": {"hasFamilySupport": True, "familySupport": {"amount": 500, "startYear": 1}},
        })

        plan = client.get(f"/api/plans/{plan_id}").json()
        assert plan["version"] == 2
        assert plan["plan"]["familySupport"] == {"amount": 500, "startYear": 1}

        history = client.get(f"/api/plans/{plan_id}/history").json()["history"]
        assert len(history) == 1
        assert history[0]["section"] == "familySupport"
        assert history[0]["hasWorsened"] is False

    def test_cached_result_is_used_as_prior(self, client, plan_id):
        url = f"/api/plans/{plan_id}/section"
        client.patch(url, json={"section": "spending", "data": {"monthlyNonHousingDebt": 5}})
        body = client.patch(url, json={"section": "spending", "data": {"monthlyNonHousingDebt": 5}}).json()
        assert body["outcome"] == "unchanged"
        assert body["hasWorsened"] is False

    def test_invalid_update_leaves_plan_untouched(self, client, plan_id):
        response = client.patch(f"/api/plans/{plan_id}/section", json={
            "section": "spending",
            "data": {"currentAnnualInsurancePremium": -10},
        })
        assert response.status_code == 400

        body = response.json()
        assert body["success"] is False
        assert body["errors"][0]["field"] == "currentAnnualInsurancePremium"
        assert body["plan"]["currentAnnualInsurancePremium"] == 0

        plan = client.get(f"/api/plans/{plan_id}").json()
        assert plan["version"] == 1
        assert client.get(f"/api/plans/{plan_id}/history").json()["history"] == []

    def test_stale_version_rejected(self, client, plan_id):
        url = f"/api/plans/{plan_id}/section"
        first = client.patch(url, json={"section": "spending", "data": {}, "expectedVersion": 1})
        assert first.status_code == 200

        stale = client.patch(url, json={"section": "spending", "data": {"monthlyNonHousingDebt": 1}, "expectedVersion": 1})
        assert stale.status_code == 409

    def test_unknown_section(self, client, plan_id):
        response = client.patch(f"/api/plans/{plan_id}/section", json={"section": "roadmap", "data": {}})
        assert response.status_code == 400

    def test_unknown_plan(self, client):
        response = client.patch("/api/plans/missing/section", json={"section": "spending", "data": {}})
        assert response.status_code == 404


# =============================================================================
# EXPORT
# =============================================================================

class TestTrajectoryExport:

    def test_csv_export(self, client, plan_id):
        response = client.get(f"/api/plans/{plan_id}/trajectory.csv")
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")

        lines = response.text.strip().splitlines()
        assert "housePrice" in lines[0]
        assert len(lines) == 32


# =============================================================================
# CONCURRENCY AND CALENDAR YEARS
# =============================================================================

class TestPlanLifecycle:

    def test_replacement_waits_for_inflight_update(self, monkeypatch):
        """A plan replaced mid-recalculation stays deleted."""
        recalculate = main.orchestrator.recalculate

        def slow_recalculate(*args):
            time.sleep(0.3)
            return recalculate(*args)

        monkeypatch.setattr(main.orchestrator, "recalculate", slow_recalculate)
        headers = {"X-User-Id": "user-1"}

        async def replace_during_update():
            transport = httpx.ASGITransport(app=app)
            async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
                created = await ac.post("/api/plans", json=QUICK_CHECK, headers=headers)
                old_id = created.json()["planId"]

                update = asyncio.create_task(ac.patch(
                    f"/api/plans/{old_id}/section",
                    json={"section": "spending", "data": {"monthlyNonHousingDebt": 5}},
                ))
                await asyncio.sleep(0.1)
                replaced = await ac.post("/api/plans", json=QUICK_CHECK, headers=headers)
                return old_id, await update, replaced

        old_id, update_response, replace_response = asyncio.run(replace_during_update())
        new_id = replace_response.json()["planId"]

        assert update_response.status_code == 200
        assert replace_response.status_code == 201
        assert list(main.plans_db) == [new_id]
        assert old_id not in main.reports_db
        assert old_id not in main.history_db

    def test_update_on_replaced_plan_is_rejected(self, client, plan_id):
        client.post("/api/plans", json=QUICK_CHECK, headers={"X-User-Id": "user-1"})
        response = client.patch(f"/api/plans/{plan_id}/section", json={"section": "spending", "data": {}})
        assert response.status_code == 404

    def test_calendar_year_anchored_to_creation(self, client, plan_id, monkeypatch):
        """Relative years keep counting from the year the plan was created."""
        created_year = date.today().year
        monkeypatch.setattr(main, "current_year", lambda: created_year + 1)

        response = client.patch(f"/api/plans/{plan_id}/section", json={"section": "spending", "data": {}})
        assert response.json()["firstViableYear"] == created_year + 7

        plan = client.get(f"/api/plans/{plan_id}").json()
        assert plan["firstViableYear"] == created_year + 7

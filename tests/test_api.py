"""HTTP API tests against an injected runtime."""

from datetime import date
from uuid import uuid4

import pytest
from httpx import ASGITransport, AsyncClient

from payroll_pipeline.api.app import create_app
from payroll_pipeline.config import Settings
from payroll_pipeline.runtime import build_runtime


@pytest.fixture
def runtime(session_factory, notifier):
    settings = Settings(
        database_url="sqlite+aiosqlite://",
        engine_version="test",
        host="127.0.0.1",
        port=8000,
        debug=False,
    )
    return build_runtime(settings, session_factory, notifier=notifier)


@pytest.fixture
async def client(runtime):
    app = create_app(runtime)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client


async def process_all(runtime) -> None:
    worker = runtime.worker()
    for _ in range(20):
        if not await worker.run_once():
            return


class TestHealth:
    async def test_health_reports_database(self, client):
        response = await client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["database"] == "healthy"
        assert body["engine_version"] == "test"
        assert body["queue"]["waiting"] == 0

    async def test_queue_backlog_is_reported(self, client):
        await client.post("/api/v1/payroll-runs", json={"month": 4, "year": 2025})

        body = (await client.get("/health")).json()

        assert body["queue"]["waiting"] == 1
        assert body["queue"]["completed"] == 0

    async def test_live_and_ready(self, client):
        assert (await client.get("/live")).json() == {"status": "alive"}
        assert (await client.get("/ready")).json() == {"status": "ready"}

    async def test_not_ready_without_runtime(self):
        app = create_app()
        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            ready = await client.get("/ready")
            live = await client.get("/live")

        assert ready.status_code == 503
        assert live.status_code == 200


class TestPayrollRuns:
    async def test_trigger_poll_and_list_records(self, client, runtime, seed):
        employee_id = await seed.employee()
        await seed.attendance(employee_id, {date(2025, 4, 1): "ABSENT", date(2025, 4, 2): "ABSENT"})
        await seed.lock(4, 2025)

        response = await client.post("/api/v1/payroll-runs", json={"month": 4, "year": 2025})
        assert response.status_code == 201
        run = response.json()
        assert run["status"] == "PENDING"
        assert run["current_stage"] == "VALIDATION"

        await process_all(runtime)

        response = await client.get(f"/api/v1/payroll-runs/{run['payroll_run_id']}")
        assert response.status_code == 200
        status = response.json()
        assert status["status"] == "COMPLETED"
        assert status["job"]["state"] == "completed"
        assert status["job"]["progress"] == 1.0
        assert status["statutory_totals"]["pf_employee"] == 180_000

        response = await client.get(f"/api/v1/payroll-runs/{run['payroll_run_id']}/records")
        body = response.json()
        assert body["total"] == 1
        [record] = body["items"]
        assert record["employee_id"] == str(employee_id)
        assert record["net_payable_paise"] == 4_345_454
        assert record["status"] == "VERIFIED"

    async def test_duplicate_trigger_conflicts(self, client):
        await client.post("/api/v1/payroll-runs", json={"month": 4, "year": 2025})

        response = await client.post("/api/v1/payroll-runs", json={"month": 4, "year": 2025})

        assert response.status_code == 409
        assert "already exists" in response.json()["detail"]

    async def test_invalid_month_rejected(self, client):
        response = await client.post("/api/v1/payroll-runs", json={"month": 13, "year": 2025})
        assert response.status_code == 422

    async def test_unknown_run(self, client):
        response = await client.get(f"/api/v1/payroll-runs/{uuid4()}")
        assert response.status_code == 404

    async def test_resume_failed_run(self, client, runtime, seed):
        response = await client.post("/api/v1/payroll-runs", json={"month": 4, "year": 2025})
        run_id = response.json()["payroll_run_id"]
        await process_all(runtime)  # attendance not locked yet

        failed = (await client.get(f"/api/v1/payroll-runs/{run_id}")).json()
        assert failed["status"] == "FAILED"
        assert failed["errors"][0]["message"] == "Attendance for 2025-04 is not locked"

        await seed.employee()
        await seed.lock(4, 2025)
        response = await client.post(f"/api/v1/payroll-runs/{run_id}/resume")
        assert response.status_code == 202
        assert response.json()["state"] == "waiting"

        await process_all(runtime)
        assert (await client.get(f"/api/v1/payroll-runs/{run_id}")).json()["status"] == "COMPLETED"

        response = await client.post(f"/api/v1/payroll-runs/{run_id}/resume")
        assert response.status_code == 409

    async def test_cancel_pending_run(self, client):
        response = await client.post("/api/v1/payroll-runs", json={"month": 4, "year": 2025})
        run_id = response.json()["payroll_run_id"]

        response = await client.post(f"/api/v1/payroll-runs/{run_id}/cancel")

        assert response.status_code == 200
        assert response.json() == {"cancelled_jobs": 1}


class TestLoanSchedule:
    async def test_preview(self, client):
        response = await client.get(
            "/api/v1/loans/schedule",
            params={"principal": 10_000_000, "annual_rate": "12", "tenure_months": 12},
        )

        assert response.status_code == 200
        body = response.json()
        assert body["emi"] == 888_488
        assert body["total_interest"] == 661_853
        assert body["total_payable"] == 10_661_853
        assert len(body["schedule"]) == 12
        assert body["schedule"][-1]["emi"] == 888_485
        assert body["schedule"][-1]["balance_after"] == 0

    async def test_out_of_range_tenure(self, client):
        response = await client.get(
            "/api/v1/loans/schedule",
            params={"principal": 100_000, "annual_rate": "12", "tenure_months": 0},
        )

        assert response.status_code == 422
        assert "tenure_months" in response.json()["detail"]

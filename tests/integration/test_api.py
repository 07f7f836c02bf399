"""
Integration tests for the API endpoints.
"""

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient

from pinger.bootstrap import AppContext
from pinger.constants import ERROR_ID_HEADER, JobStatus


class TestJobAPI:
    """Integration tests for job endpoints."""

    @pytest_asyncio.fixture
    async def created_job(self, client: AsyncClient) -> dict:
        """Create a job for testing."""
        response = await client.post(
            "/v1/jobs",
            json={"job_type": "echo", "args": {"test": True}},
        )
        return response.json()

    @pytest.mark.asyncio
    async def test_enqueue_job(self, client: AsyncClient):
        response = await client.post(
            "/v1/jobs",
            json={"job_type": "echo", "args": {"message": "hello"}, "max_attempts": 2},
        )

        assert response.status_code == 201
        data = response.json()
        assert data["job_type"] == "echo"
        assert data["queue"] == "default"
        assert data["status"] == JobStatus.ENQUEUED.value

    @pytest.mark.asyncio
    async def test_enqueue_delayed_job(self, client: AsyncClient):
        response = await client.post(
            "/v1/jobs",
            json={"job_type": "echo", "delay_seconds": 3600},
        )

        assert response.status_code == 201
        assert response.json()["status"] == JobStatus.SCHEDULED.value

    @pytest.mark.asyncio
    async def test_enqueue_at_aware_time(self, client: AsyncClient):
        run_at = datetime.now(UTC) + timedelta(hours=2)

        response = await client.post(
            "/v1/jobs",
            json={"job_type": "echo", "run_at": run_at.isoformat()},
        )

        scheduled_at = datetime.fromisoformat(response.json()["scheduled_at"])
        assert scheduled_at == run_at.replace(tzinfo=None)

    @pytest.mark.asyncio
    async def test_enqueue_unknown_job_type(self, client: AsyncClient):
        response = await client.post("/v1/jobs", json={"job_type": "does_not_exist"})

        assert response.status_code == 400
        assert "Unknown job type" in response.json()["detail"]

    @pytest.mark.asyncio
    async def test_enqueue_both_delay_and_run_at(self, client: AsyncClient):
        response = await client.post(
            "/v1/jobs",
            json={
                "job_type": "echo",
                "delay_seconds": 10,
                "run_at": datetime.utcnow().isoformat(),
            },
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_get_job(self, client: AsyncClient, created_job: dict):
        response = await client.get(f"/v1/jobs/{created_job['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created_job["id"]
        assert data["args"] == {"test": True}

    @pytest.mark.asyncio
    async def test_get_job_not_found(self, client: AsyncClient):
        response = await client.get(f"/v1/jobs/{uuid4()}")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_jobs_with_status_filter(self, client: AsyncClient, created_job: dict):
        await client.post("/v1/jobs", json={"job_type": "echo", "delay_seconds": 600})

        all_jobs = (await client.get("/v1/jobs")).json()
        scheduled = (await client.get("/v1/jobs", params={"status": "scheduled"})).json()

        assert all_jobs["total"] == 2
        assert scheduled["total"] == 1
        assert scheduled["jobs"][0]["status"] == "scheduled"


class TestDashboardAPI:
    """Integration tests for the dashboard and manual actions."""

    @pytest.mark.asyncio
    async def test_triggered_job_appears_on_dashboard(self, client: AsyncClient, context: AppContext):
        """Trigger over HTTP, run through the server, read it back."""
        response = await client.post("/v1/jobs", json={"job_type": "echo", "args": {"k": "v"}})
        job_id = response.json()["id"]

        outcome = await context.server.process_one()
        assert str(outcome.job_id) == job_id

        dashboard = (await client.get("/dashboard")).json()

        assert dashboard["server_name"] == "test-server"
        (default,) = [q for q in dashboard["queues"] if q["queue"] == "default"]
        assert default["counts"]["succeeded"] == 1
        assert default["depth"] == 0
        assert dashboard["recent"][0]["id"] == job_id
        assert dashboard["recent"][0]["status"] == "succeeded"

    @pytest.mark.asyncio
    async def test_dashboard_is_read_only(self, client: AsyncClient):
        response = await client.post("/dashboard")

        assert response.status_code == 405

    @pytest.mark.asyncio
    async def test_manual_retry(self, client: AsyncClient, context: AppContext):
        response = await client.post("/v1/jobs", json={"job_type": "failing_job", "max_attempts": 1})
        job_id = response.json()["id"]
        await context.server.process_one()

        retry = await client.post(f"/dashboard/jobs/{job_id}/retry")

        assert retry.status_code == 200
        assert retry.json()["status"] == "enqueued"
        assert (await client.get(f"/v1/jobs/{job_id}")).json()["status"] == "enqueued"

    @pytest.mark.asyncio
    async def test_retry_waiting_job_conflicts(self, client: AsyncClient):
        job_id = (await client.post("/v1/jobs", json={"job_type": "echo"})).json()["id"]

        response = await client.post(f"/dashboard/jobs/{job_id}/retry")

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_manual_delete(self, client: AsyncClient, context: AppContext):
        job_id = (await client.post("/v1/jobs", json={"job_type": "echo"})).json()["id"]

        response = await client.delete(f"/dashboard/jobs/{job_id}")

        assert response.status_code == 200
        assert await context.server.process_one() is None
        assert (await client.delete(f"/dashboard/jobs/{job_id}")).status_code == 409
        assert (await client.delete(f"/dashboard/jobs/{uuid4()}")).status_code == 404


class TestRecurringAPI:
    """Integration tests for recurring job endpoints."""

    @pytest.mark.asyncio
    async def test_recurring_crud_and_trigger(self, client: AsyncClient, context: AppContext):
        response = await client.put(
            "/v1/recurring/ping-all",
            json={"cron": "*/5 * * * *", "job_type": "ping_endpoints"},
        )
        assert response.status_code == 200
        assert response.json()["queue"] == "default"

        listed = (await client.get("/v1/recurring")).json()
        assert [r["recurring_id"] for r in listed] == ["ping-all"]

        triggered = await client.post("/v1/recurring/ping-all/trigger")
        assert triggered.status_code == 202

        outcome = await context.server.process_one()
        assert str(outcome.job_id) == triggered.json()["id"]
        assert outcome.status == JobStatus.SUCCEEDED

        dashboard = (await client.get("/dashboard")).json()
        assert dashboard["recurring"][0]["recurring_id"] == "ping-all"

        assert (await client.delete("/v1/recurring/ping-all")).status_code == 200
        assert (await client.delete("/v1/recurring/ping-all")).status_code == 404
        assert (await client.post("/v1/recurring/ping-all/trigger")).status_code == 404

    @pytest.mark.asyncio
    async def test_invalid_cron(self, client: AsyncClient):
        response = await client.put(
            "/v1/recurring/bad",
            json={"cron": "every now and then", "job_type": "echo"},
        )

        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_unknown_job_type(self, client: AsyncClient):
        response = await client.put(
            "/v1/recurring/bad",
            json={"cron": "* * * * *", "job_type": "nope"},
        )

        assert response.status_code == 400


class TestErrorPipeline:
    """Tests for uncaught exception handling."""

    @pytest.mark.asyncio
    async def test_unhandled_error_returns_500_with_message(self, client: AsyncClient):
        response = await client.get("/boom")

        assert response.status_code == 500
        assert response.headers["content-type"].startswith("text/plain")
        error_id = response.headers[ERROR_ID_HEADER]
        assert response.text.startswith(f"Error: kaboom (error id: {error_id})")

    @pytest.mark.asyncio
    async def test_stack_trace_hidden_outside_development(self, client: AsyncClient):
        response = await client.get("/boom")

        assert "Traceback" not in response.text

    @pytest.mark.asyncio
    async def test_stack_trace_shown_when_details_exposed(
        self,
        context: AppContext,
        test_settings,
    ):
        from httpx import ASGITransport

        from pinger.api.main import create_app

        context.settings = test_settings.model_copy(
            update={"app_settings": test_settings.app_settings.model_copy(update={"expose_error_details": True})}
        )
        app = create_app(context)

        @app.get("/boom")
        async def boom():
            raise RuntimeError("kaboom")

        async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
            response = await client.get("/boom")

        assert response.status_code == 500
        assert "Traceback" in response.text
        assert "RuntimeError: kaboom" in response.text

    @pytest.mark.asyncio
    async def test_http_errors_pass_through(self, client: AsyncClient):
        response = await client.get(f"/v1/jobs/{uuid4()}")

        assert response.status_code == 404
        assert ERROR_ID_HEADER not in response.headers

    @pytest.mark.asyncio
    async def test_request_metrics(self, client: AsyncClient, context: AppContext):
        await client.get("/live")

        exposition = context.metrics.get_metrics().decode()
        assert 'api_requests_total{endpoint="/live",method="GET",status="200"} 1.0' in exposition


class TestCors:
    """Tests for the CORS policy."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("origin", ["https://dashboard.example.com", "http://localhost:3000"])
    async def test_preflight_from_any_origin(self, client: AsyncClient, origin: str):
        response = await client.options(
            "/v1/jobs",
            headers={
                "Origin": origin,
                "Access-Control-Request-Method": "POST",
                "Access-Control-Request-Headers": "content-type,x-custom",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == origin
        assert response.headers["access-control-allow-credentials"] == "true"
        assert "POST" in response.headers["access-control-allow-methods"]
        assert "x-custom" in response.headers["access-control-allow-headers"]

    @pytest.mark.asyncio
    async def test_simple_request_has_cors_headers(self, client: AsyncClient):
        origin = "https://dashboard.example.com"

        response = await client.get("/live", headers={"Origin": origin})

        assert response.headers["access-control-allow-origin"] in ("*", origin)


class TestHealthAPI:
    """Integration tests for health endpoints."""

    @pytest.mark.asyncio
    async def test_health_check(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "in-memory"

    @pytest.mark.asyncio
    async def test_liveness(self, client: AsyncClient):
        response = await client.get("/live")

        assert response.status_code == 200
        assert response.json() == {"alive": True}

    @pytest.mark.asyncio
    async def test_readiness(self, client: AsyncClient):
        response = await client.get("/ready")

        assert response.json() == {"ready": True}

    @pytest.mark.asyncio
    async def test_metrics(self, client: AsyncClient):
        await client.post("/v1/jobs", json={"job_type": "echo"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert 'jobs_enqueued_total{job_type="echo",queue="default"} 1.0' in response.text

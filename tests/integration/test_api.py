"""
Integration tests for the API endpoints.
"""

import pytest
import pytest_asyncio
from httpx import AsyncClient

from cmdqueue.constants import CancelOutcome, JobStatus
from cmdqueue.engine import TransitionEngine
from cmdqueue.errors import StoreUnavailableError
from cmdqueue.store.memory import MemoryJobStore


class TestJobAPI:
    """Integration tests for job API endpoints."""

    @pytest_asyncio.fixture
    async def created_job(self, client: AsyncClient) -> dict:
        """Create a job for testing."""
        response = await client.post("/v1/jobs", json={"command": "echo test"})
        return response.json()

    async def test_create_job_success(self, client: AsyncClient, store: MemoryJobStore):
        """Test successful job creation."""
        response = await client.post("/v1/jobs", json={"command": "echo hello"})

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == JobStatus.PENDING
        assert await store.queued_ids() == [data["id"]]

    @pytest.mark.parametrize("body", [{"command": ""}, {"command": "   "}, {}])
    async def test_create_job_invalid_command(
        self,
        client: AsyncClient,
        store: MemoryJobStore,
        body: dict,
    ):
        """Test job creation rejects a missing or blank command."""
        response = await client.post("/v1/jobs", json=body)

        assert response.status_code == 422
        assert len(store.records) == 0

    async def test_create_job_ignores_caller_id(self, client: AsyncClient):
        """Test that callers cannot choose a job id."""
        response = await client.post(
            "/v1/jobs",
            json={"command": "echo hi", "id": "my-id"},
        )

        assert response.status_code == 201
        assert response.json()["id"] != "my-id"

    async def test_get_job(self, client: AsyncClient, created_job: dict):
        """Test getting a job by ID."""
        response = await client.get(f"/v1/jobs/{created_job['id']}")

        assert response.status_code == 200
        data = response.json()
        assert data["id"] == created_job["id"]
        assert data["command"] == "echo test"
        assert data["version"] == 0
        assert data["output"] is None

    async def test_get_job_not_found(self, client: AsyncClient):
        """Test getting a non-existent job."""
        response = await client.get("/v1/jobs/does-not-exist")

        assert response.status_code == 404
        assert response.json()["error"] == "NotFoundError"

    async def test_cancel_pending_job(self, client: AsyncClient, created_job: dict):
        """Test cancelling a queued job."""
        response = await client.post(f"/v1/jobs/{created_job['id']}/cancel")

        assert response.status_code == 200
        assert response.json()["outcome"] == CancelOutcome.CANCELLED_FROM_QUEUE

        job = (await client.get(f"/v1/jobs/{created_job['id']}")).json()
        assert job["status"] == JobStatus.CANCELLED
        assert job["cancelled_at"] is not None

    async def test_cancel_running_job(
        self,
        client: AsyncClient,
        created_job: dict,
        engine: TransitionEngine,
    ):
        """Test cancelling a job a worker has claimed."""
        await engine.claim()

        response = await client.post(f"/v1/jobs/{created_job['id']}/cancel")

        assert response.status_code == 200
        assert response.json()["outcome"] == CancelOutcome.CANCELLED_RUNNING

    async def test_cancel_twice_conflicts(self, client: AsyncClient, created_job: dict):
        """Test that a second cancel reports the job already cancelled."""
        await client.post(f"/v1/jobs/{created_job['id']}/cancel")

        response = await client.post(f"/v1/jobs/{created_job['id']}/cancel")

        assert response.status_code == 409
        assert response.json()["outcome"] == CancelOutcome.ALREADY_CANCELLED

    async def test_cancel_completed_job_conflicts(
        self,
        client: AsyncClient,
        created_job: dict,
        engine: TransitionEngine,
    ):
        """Test that finished jobs cannot be cancelled."""
        await engine.claim()
        await engine.complete(created_job["id"], JobStatus.SUCCEEDED, "test\n")

        response = await client.post(f"/v1/jobs/{created_job['id']}/cancel")

        assert response.status_code == 409
        assert response.json()["outcome"] == CancelOutcome.ALREADY_COMPLETED

    async def test_cancel_not_found(self, client: AsyncClient):
        """Test cancelling a non-existent job."""
        response = await client.post("/v1/jobs/does-not-exist/cancel")

        assert response.status_code == 404

    async def test_stats(self, client: AsyncClient, engine: TransitionEngine):
        """Test queue statistics."""
        for i in range(3):
            await client.post("/v1/jobs", json={"command": f"echo {i}"})
        await engine.claim()

        response = await client.get("/v1/jobs/stats/summary")

        assert response.status_code == 200
        assert response.json() == {
            "queue_depth": 2,
            "stats": {"pending": 2, "running": 1},
        }

    async def test_list_jobs_from_history(self, client: AsyncClient, engine: TransitionEngine):
        """Test listing the jobs recorded in the history."""
        for i in range(3):
            await client.post("/v1/jobs", json={"command": f"echo {i}"})
        for _ in range(3):
            await engine.claim()

        response = await client.get("/v1/jobs", params={"page_size": 2})

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 3
        assert len(data["jobs"]) == 2
        assert data["has_next"] is True
        assert data["jobs"][0]["command"] == "echo 2"

    async def test_store_unavailable_maps_to_503(
        self,
        client: AsyncClient,
        store: MemoryJobStore,
        monkeypatch: pytest.MonkeyPatch,
    ):
        """Test that an unreachable store surfaces as 503."""

        async def broken_enqueue(job):
            raise StoreUnavailableError("store down")

        monkeypatch.setattr(store, "enqueue", broken_enqueue)

        response = await client.post("/v1/jobs", json={"command": "echo hi"})

        assert response.status_code == 503
        assert response.json() == {
            "error": "StoreUnavailableError",
            "detail": "store down",
        }


class TestHealthAPI:
    """Tests for health endpoints."""

    async def test_health(self, client: AsyncClient):
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["store"] == "healthy"

    async def test_health_degraded(
        self,
        client: AsyncClient,
        store: MemoryJobStore,
        monkeypatch: pytest.MonkeyPatch,
    ):
        async def ping():
            return False

        monkeypatch.setattr(store, "ping", ping)

        response = await client.get("/health")

        assert response.json()["status"] == "degraded"
        assert (await client.get("/ready")).json() == {"ready": False}

    async def test_live(self, client: AsyncClient):
        response = await client.get("/live")

        assert response.json() == {"alive": True}

    async def test_metrics(self, client: AsyncClient):
        await client.post("/v1/jobs", json={"command": "echo hi"})

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "jobs_submitted_total" in response.text
        assert "api_requests_total" in response.text

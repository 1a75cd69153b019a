"""
Pytest configuration and shared fixtures.
"""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from cmdqueue.api.main import create_app
from cmdqueue.config import Settings
from cmdqueue.engine import TransitionEngine
from cmdqueue.gateway import JobGateway
from cmdqueue.history import History
from cmdqueue.store.memory import MemoryJobStore
from cmdqueue.types.job import Job


class RecordingHistory(History):
    """History that keeps every write in memory, for asserting on."""

    def __init__(self) -> None:
        self.writes: list[Job] = []

    async def write_history(self, job: Job) -> None:
        self.writes.append(job)

    async def read_history(self, job_id: str) -> Job | None:
        for job in reversed(self.writes):
            if job.id == job_id:
                return job
        return None

    async def list_history(self, status=None, limit=20, offset=0):
        latest: dict[str, Job] = {}
        for job in self.writes:
            latest[job.id] = job
        jobs = [j for j in latest.values() if status is None or j.status == status]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs[offset:offset + limit], len(jobs)


class FakeClock:
    """Deterministic clock that advances one second per reading."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2024, 1, 1, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        self.now += timedelta(seconds=1)
        return self.now


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        store_backend="memory",
        history_enabled=False,
        log_level="DEBUG",
        log_format="console",
        worker_poll_interval_seconds=0.01,
        worker_complete_max_retries=3,
        worker_complete_retry_backoff_seconds=0,
    )


@pytest.fixture
def store() -> MemoryJobStore:
    """Create an empty in-memory job store."""
    return MemoryJobStore()


@pytest.fixture
def history() -> RecordingHistory:
    return RecordingHistory()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def engine(store: MemoryJobStore, history: RecordingHistory, clock: FakeClock) -> TransitionEngine:
    """Create a transition engine over the memory store."""
    return TransitionEngine(store, history=history, clock=clock)


@pytest.fixture
def gateway(engine: TransitionEngine) -> JobGateway:
    return JobGateway(engine)


@pytest_asyncio.fixture
async def app(gateway: JobGateway) -> AsyncGenerator[FastAPI]:
    """Create a FastAPI app wired to the test gateway."""
    yield create_app(gateway=gateway)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

"""
Integration tests for the SQLAlchemy job history, run against SQLite.
"""

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio
from prometheus_client import REGISTRY
from sqlalchemy.exc import OperationalError

from cmdqueue.constants import METRIC_HISTORY_WRITE_FAILURES, CancelOutcome, JobStatus
from cmdqueue.db import connection
from cmdqueue.db.connection import close_db, get_engine, get_session_context, init_db
from cmdqueue.db.models import Base
from cmdqueue.db.repository import JobHistoryRepository
from cmdqueue.engine import TransitionEngine
from cmdqueue.errors import StoreUnavailableError
from cmdqueue.gateway import JobGateway
from cmdqueue.history import DatabaseHistory
from cmdqueue.store.memory import MemoryJobStore


@pytest_asyncio.fixture
async def database(tmp_path: Path) -> AsyncGenerator[str]:
    """Initialize a fresh SQLite history database."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'history.db'}"
    await init_db(url)
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield url

    await close_db()


@pytest.fixture
def db_engine(store: MemoryJobStore, clock, database: str) -> TransitionEngine:
    return TransitionEngine(store, history=DatabaseHistory(), clock=clock)


class TestJobHistoryRepository:
    """Tests for JobHistoryRepository."""

    async def test_save_and_get(self, db_engine: TransitionEngine):
        job = await db_engine.submit("echo hi")

        async with get_session_context() as session:
            assert await JobHistoryRepository(session).save(job) is True

        async with get_session_context() as session:
            stored = await JobHistoryRepository(session).get(job.id)

        assert stored.id == job.id
        assert stored.command == "echo hi"
        assert stored.status == JobStatus.PENDING

    async def test_stale_version_is_not_written(self, db_engine: TransitionEngine):
        job = await db_engine.submit("echo hi")
        running = await db_engine.claim()

        async with get_session_context() as session:
            assert await JobHistoryRepository(session).save(job) is False

        async with get_session_context() as session:
            stored = await JobHistoryRepository(session).get(job.id)

        assert stored.status == JobStatus.RUNNING
        assert stored.version == running.version

    async def test_interleaved_sessions_keep_newest_version(self, db_engine: TransitionEngine):
        job = await db_engine.submit("echo hi")
        running = await db_engine.claim()
        finished = running.finished(JobStatus.SUCCEEDED, "hi\n", running.started_at)

        # The older writer opens its session first but writes last
        async with get_session_context() as older_session:
            async with get_session_context() as newer_session:
                assert await JobHistoryRepository(newer_session).save(finished) is True

            assert await JobHistoryRepository(older_session).save(running) is False

        async with get_session_context() as session:
            stored = await JobHistoryRepository(session).get(job.id)

        assert stored.status == JobStatus.SUCCEEDED
        assert stored.output == "hi\n"
        assert stored.version == 2

    async def test_same_version_rewrite_is_accepted(self, db_engine: TransitionEngine):
        job = await db_engine.submit("echo hi")

        async with get_session_context() as session:
            assert await JobHistoryRepository(session).save(job) is True
        async with get_session_context() as session:
            assert await JobHistoryRepository(session).save(job) is True
            _, total = await JobHistoryRepository(session).list_jobs()

        assert total == 1

    async def test_list_jobs_filters_by_status(self, db_engine: TransitionEngine):
        first = await db_engine.submit("echo 1")
        second = await db_engine.submit("sleep 5")
        await db_engine.claim()
        await db_engine.cancel(second.id)

        async with get_session_context() as session:
            repo = JobHistoryRepository(session)
            all_jobs, total = await repo.list_jobs()
            running, running_total = await repo.list_jobs(status=JobStatus.RUNNING)

        assert total == 2
        assert [j.id for j in all_jobs] == [second.id, first.id]
        assert running_total == 1
        assert running[0].id == first.id


class TestDatabaseHistory:
    """Tests for history writes made by the transition engine."""

    async def test_transitions_are_recorded(self, db_engine: TransitionEngine):
        job = await db_engine.submit("echo hi")
        history = db_engine.history

        # Submission alone is not recorded
        assert await history.read_history(job.id) is None

        await db_engine.claim()
        assert (await history.read_history(job.id)).status == JobStatus.RUNNING

        await db_engine.complete(job.id, JobStatus.SUCCEEDED, "hi\n")
        stored = await history.read_history(job.id)
        assert stored.status == JobStatus.SUCCEEDED
        assert stored.output == "hi\n"
        assert stored.version == 2

    async def test_cancelled_then_completed_is_recorded(self, db_engine: TransitionEngine):
        job = await db_engine.submit("sleep 1")
        await db_engine.claim()
        assert await db_engine.cancel(job.id) == CancelOutcome.CANCELLED_RUNNING

        await db_engine.complete(job.id, JobStatus.SUCCEEDED, "late")

        stored = await db_engine.history.read_history(job.id)
        assert stored.status == JobStatus.CANCELLED
        assert stored.output == "late"

    async def test_gateway_falls_back_to_history(
        self,
        db_engine: TransitionEngine,
        store: MemoryJobStore,
    ):
        job = await db_engine.submit("echo hi")
        await db_engine.claim()
        store.records._records.pop(job.id)

        status = await JobGateway(db_engine).get_status(job.id)

        assert status.id == job.id
        assert status.status == JobStatus.RUNNING

    async def test_write_failure_does_not_fail_transition(
        self,
        db_engine: TransitionEngine,
        monkeypatch: pytest.MonkeyPatch,
    ):
        before = REGISTRY.get_sample_value(METRIC_HISTORY_WRITE_FAILURES) or 0.0

        async def broken_save(self, job):
            raise OperationalError("INSERT", {}, Exception("disk full"))

        monkeypatch.setattr(JobHistoryRepository, "save", broken_save)
        job = await db_engine.submit("echo hi")

        claimed = await db_engine.claim()

        assert claimed.id == job.id
        assert (await db_engine.get(job.id)).status == JobStatus.RUNNING
        assert REGISTRY.get_sample_value(METRIC_HISTORY_WRITE_FAILURES) == before + 1

    async def test_read_failure_raises_store_unavailable(
        self,
        db_engine: TransitionEngine,
        monkeypatch: pytest.MonkeyPatch,
    ):
        async def broken_get(self, job_id):
            raise OperationalError("SELECT", {}, Exception("connection refused"))

        monkeypatch.setattr(JobHistoryRepository, "get", broken_get)

        with pytest.raises(StoreUnavailableError):
            await db_engine.history.read_history("some-id")

    async def test_requires_initialized_database(self, database: str):
        await close_db()

        assert connection.AsyncSessionLocal is None
        with pytest.raises(RuntimeError):
            await DatabaseHistory().read_history("some-id")

"""
Integration tests for the Redis job store.

Every test runs against fakeredis, which executes the Lua scripts in-process,
and again against ``TEST_REDIS_URL`` when a server is reachable.
"""

import asyncio
import os
import random
from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from uuid import uuid4

import fakeredis
import pytest
import pytest_asyncio

from cmdqueue.constants import CancelOutcome, CompleteOutcome, JobStatus
from cmdqueue.engine import TransitionEngine
from cmdqueue.errors import StoreUnavailableError
from cmdqueue.store.redis import RedisJobStore
from cmdqueue.types.job import Job

TEST_REDIS_URL = os.getenv("TEST_REDIS_URL", "redis://localhost:6379/15")

NOW = datetime(2024, 1, 1, tzinfo=timezone.utc)


@pytest_asyncio.fixture(params=["fake", pytest.param("live", marks=pytest.mark.redis)])
async def redis_store(request: pytest.FixtureRequest) -> AsyncGenerator[RedisJobStore]:
    """Create a Redis store under a unique key prefix."""
    key_prefix = f"test-jobs-{uuid4().hex[:8]}"
    if request.param == "fake":
        store = RedisJobStore(
            fakeredis.FakeAsyncRedis(decode_responses=True),
            key_prefix=key_prefix,
        )
    else:
        store = RedisJobStore.from_url(
            TEST_REDIS_URL,
            key_prefix=key_prefix,
            socket_timeout=1.0,
        )
        if not await store.ping():
            await store.close()
            pytest.skip(f"Redis not reachable at {TEST_REDIS_URL}")

    yield store

    await store.clear()
    await store.close()


@pytest.fixture
def redis_engine(redis_store: RedisJobStore, clock) -> TransitionEngine:
    return TransitionEngine(redis_store, clock=clock)


def make_job(job_id: str, command: str = "echo hi") -> Job:
    return Job(id=job_id, command=command, created_at=NOW)


class TestRedisJobStore:
    """Tests for the Lua-scripted transitions."""

    async def test_enqueue_and_get(self, redis_store: RedisJobStore):
        job = make_job("a")

        assert await redis_store.enqueue(job) is True

        assert await redis_store.get("a") == job
        assert await redis_store.queued_ids() == ["a"]

    async def test_enqueue_existing_id(self, redis_store: RedisJobStore):
        await redis_store.enqueue(make_job("a", "echo first"))

        assert await redis_store.enqueue(make_job("a", "echo second")) is False

        assert (await redis_store.get("a")).command == "echo first"
        assert await redis_store.record_count() == 1
        assert await redis_store.queue_length() == 1

    async def test_claim_fifo(self, redis_store: RedisJobStore):
        for job_id in ("a", "b", "c"):
            await redis_store.enqueue(make_job(job_id))

        claimed = [await redis_store.claim(NOW) for _ in range(4)]

        assert [j.id for j in claimed[:3]] == ["a", "b", "c"]
        assert claimed[3] is None
        assert all(j.status == JobStatus.RUNNING and j.version == 1 for j in claimed[:3])

    async def test_claim_skips_cancelled(self, redis_store: RedisJobStore):
        await redis_store.enqueue(make_job("a"))
        await redis_store.enqueue(make_job("b"))
        await redis_store.cancel("a", NOW)

        job = await redis_store.claim(NOW)

        assert job.id == "b"

    async def test_cancel_outcomes(self, redis_store: RedisJobStore):
        await redis_store.enqueue(make_job("queued"))
        await redis_store.enqueue(make_job("running"))
        await redis_store.cancel("missing", NOW)
        await redis_store.claim(NOW)

        # "queued" was claimed first, so cancel the other one from the queue
        outcome, job = await redis_store.cancel("running", NOW)
        assert outcome == CancelOutcome.CANCELLED_FROM_QUEUE
        assert job.status == JobStatus.CANCELLED

        outcome, _ = await redis_store.cancel("queued", NOW)
        assert outcome == CancelOutcome.CANCELLED_RUNNING

        outcome, _ = await redis_store.cancel("queued", NOW)
        assert outcome == CancelOutcome.ALREADY_CANCELLED

        outcome, job = await redis_store.cancel("missing", NOW)
        assert outcome == CancelOutcome.NOT_FOUND
        assert job is None

    async def test_complete_outcomes(self, redis_store: RedisJobStore):
        await redis_store.enqueue(make_job("a"))

        outcome, _ = await redis_store.complete("a", JobStatus.SUCCEEDED, "", NOW)
        assert outcome == CompleteOutcome.NOT_RUNNING

        await redis_store.claim(NOW)
        outcome, job = await redis_store.complete("a", JobStatus.FAILED, "boom", NOW)
        assert outcome == CompleteOutcome.COMPLETED
        assert job.status == JobStatus.FAILED
        assert job.output == "boom"
        assert job.finished_at == NOW

        outcome, _ = await redis_store.complete("a", JobStatus.SUCCEEDED, "", NOW)
        assert outcome == CompleteOutcome.ALREADY_COMPLETED

        outcome, _ = await redis_store.complete("missing", JobStatus.SUCCEEDED, "", NOW)
        assert outcome == CompleteOutcome.NOT_FOUND

    async def test_complete_after_cancel(self, redis_store: RedisJobStore):
        await redis_store.enqueue(make_job("a"))
        await redis_store.claim(NOW)
        await redis_store.cancel("a", NOW)

        outcome, job = await redis_store.complete("a", JobStatus.SUCCEEDED, "late", NOW)

        assert outcome == CompleteOutcome.CANCELLED
        assert job.status == JobStatus.CANCELLED
        assert job.output == "late"
        assert job.finished_at is None
        assert job.version == 3

    async def test_complete_after_cancel_from_queue_is_not_running(
        self,
        redis_store: RedisJobStore,
    ):
        await redis_store.enqueue(make_job("a"))
        _, cancelled = await redis_store.cancel("a", NOW)

        outcome, job = await redis_store.complete("a", JobStatus.SUCCEEDED, "stray", NOW)

        assert outcome == CompleteOutcome.NOT_RUNNING
        assert job == cancelled
        assert await redis_store.get("a") == cancelled

    async def test_complete_keeps_missing_output(self, redis_store: RedisJobStore):
        await redis_store.enqueue(make_job("a"))
        await redis_store.enqueue(make_job("b"))
        await redis_store.claim(NOW)
        await redis_store.claim(NOW)

        _, job = await redis_store.complete("a", JobStatus.FAILED, None, NOW)
        _, empty = await redis_store.complete("b", JobStatus.SUCCEEDED, "", NOW)

        assert job.output is None
        assert (await redis_store.get("a")).output is None
        assert empty.output == ""

    async def test_stats(self, redis_store: RedisJobStore):
        for job_id in ("a", "b", "c"):
            await redis_store.enqueue(make_job(job_id))
        await redis_store.claim(NOW)
        await redis_store.cancel("c", NOW)

        stats = await redis_store.stats()

        assert stats.queue_depth == 1
        assert stats.stats == {"running": 1, "pending": 1, "cancelled": 1}


class TestRedisEngine:
    """Concurrency properties through the engine over Redis."""

    async def test_concurrent_claims_take_each_job_once(self, redis_engine: TransitionEngine):
        for i in range(20):
            await redis_engine.submit(f"echo {i}")

        results = await asyncio.gather(*(redis_engine.claim(f"w{i}") for i in range(40)))
        claimed = [job.id for job in results if job is not None]

        assert len(claimed) == 20
        assert len(set(claimed)) == 20

    async def test_cancel_claim_race_is_exclusive(self, redis_engine: TransitionEngine):
        rng = random.Random(0)

        for _ in range(20):
            job = await redis_engine.submit("echo race")

            if rng.random() < 0.5:
                claimed, outcome = await asyncio.gather(
                    redis_engine.claim(),
                    redis_engine.cancel(job.id),
                )
            else:
                outcome, claimed = await asyncio.gather(
                    redis_engine.cancel(job.id),
                    redis_engine.claim(),
                )

            if claimed is not None:
                assert outcome == CancelOutcome.CANCELLED_RUNNING
            else:
                assert outcome == CancelOutcome.CANCELLED_FROM_QUEUE
                assert await redis_engine.claim() is None


class TestRedisUnavailable:
    """Tests for connectivity failures."""

    async def test_unreachable_server_raises_store_unavailable(self):
        store = RedisJobStore.from_url(
            "redis://127.0.0.1:1/0",
            key_prefix="unreachable",
            socket_timeout=0.2,
        )

        try:
            assert await store.ping() is False
            with pytest.raises(StoreUnavailableError):
                await store.enqueue(make_job("a"))
        finally:
            await store.close()

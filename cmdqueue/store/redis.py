"""
Redis-backed job store.

The record store is a hash and the pending queue is a list. Every compound
transition is a Lua script (see ``cmdqueue.store.scripts``), so any number of
API processes and worker processes can share one Redis server safely.
"""

import json
import logging
from collections import Counter
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

import redis.asyncio as redis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from cmdqueue.constants import (
    QUEUE_KEY_SUFFIX,
    RECORDS_KEY_SUFFIX,
    CancelOutcome,
    CompleteOutcome,
    JobStatus,
)
from cmdqueue.errors import StoreUnavailableError
from cmdqueue.store.base import CancelResult, CompleteResult, JobStore
from cmdqueue.store.scripts import (
    CANCEL_SCRIPT,
    CLAIM_SCRIPT,
    COMPLETE_SCRIPT,
    ENQUEUE_SCRIPT,
)
from cmdqueue.types.job import Job, QueueStats

logger = logging.getLogger(__name__)


class RedisJobStore(JobStore):
    """
    Job store shared through Redis.

    Keys:
    - ``{prefix}:hash``: job id -> JSON record
    - ``{prefix}:queue``: pending job ids, head first
    """

    def __init__(self, client: redis.Redis, key_prefix: str = "jobs"):
        """
        Initialize the store.

        Args:
            client: Async Redis client created with ``decode_responses=True``.
            key_prefix: Prefix for the hash and list keys.
        """
        self._client = client
        self.records_key = f"{key_prefix}:{RECORDS_KEY_SUFFIX}"
        self.queue_key = f"{key_prefix}:{QUEUE_KEY_SUFFIX}"

        self._enqueue = client.register_script(ENQUEUE_SCRIPT)
        self._claim = client.register_script(CLAIM_SCRIPT)
        self._cancel = client.register_script(CANCEL_SCRIPT)
        self._complete = client.register_script(COMPLETE_SCRIPT)

    @classmethod
    def from_url(
        cls,
        url: str,
        key_prefix: str = "jobs",
        socket_timeout: float | None = None,
    ) -> "RedisJobStore":
        """Create a store with its own connection pool."""
        client = redis.Redis.from_url(
            url,
            decode_responses=True,
            socket_timeout=socket_timeout,
            socket_connect_timeout=socket_timeout,
        )
        return cls(client, key_prefix=key_prefix)

    @asynccontextmanager
    async def _translate_errors(self) -> AsyncGenerator[None]:
        """Surface connectivity failures as StoreUnavailableError."""
        try:
            yield
        except (RedisConnectionError, RedisTimeoutError) as e:
            logger.error("Redis unavailable", extra={"error": str(e)})
            raise StoreUnavailableError(f"Redis unavailable: {e}") from e

    @staticmethod
    def _decode_transition(raw: str) -> tuple[str, Job | None]:
        result: dict[str, Any] = json.loads(raw)
        job_data = result.get("job")
        job = Job.model_validate(job_data) if job_data else None
        return result["outcome"], job

    async def enqueue(self, job: Job) -> bool:
        async with self._translate_errors():
            result = await self._enqueue(
                keys=[self.records_key, self.queue_key],
                args=[job.id, job.model_dump_json()],
            )
        return result == "queued"

    async def claim(self, now: datetime) -> Job | None:
        async with self._translate_errors():
            raw = await self._claim(
                keys=[self.records_key, self.queue_key],
                args=[now.isoformat()],
            )
        if raw is None:
            return None
        return Job.model_validate_json(raw)

    async def cancel(self, job_id: str, now: datetime) -> CancelResult:
        async with self._translate_errors():
            raw = await self._cancel(
                keys=[self.records_key, self.queue_key],
                args=[job_id, now.isoformat()],
            )
        outcome, job = self._decode_transition(raw)
        return CancelResult(CancelOutcome(outcome), job)

    async def complete(
        self,
        job_id: str,
        status: JobStatus,
        output: str | None,
        now: datetime,
    ) -> CompleteResult:
        async with self._translate_errors():
            raw = await self._complete(
                keys=[self.records_key],
                args=[job_id, status.value, json.dumps(output), now.isoformat()],
            )
        outcome, job = self._decode_transition(raw)
        return CompleteResult(CompleteOutcome(outcome), job)

    async def get(self, job_id: str) -> Job | None:
        async with self._translate_errors():
            raw = await self._client.hget(self.records_key, job_id)
        if raw is None:
            return None
        return Job.model_validate_json(raw)

    async def exists(self, job_id: str) -> bool:
        async with self._translate_errors():
            return bool(await self._client.hexists(self.records_key, job_id))

    async def queue_length(self) -> int:
        async with self._translate_errors():
            return await self._client.llen(self.queue_key)

    async def queued_ids(self) -> list[str]:
        async with self._translate_errors():
            return await self._client.lrange(self.queue_key, 0, -1)

    async def record_count(self) -> int:
        async with self._translate_errors():
            return await self._client.hlen(self.records_key)

    async def stats(self) -> QueueStats:
        async with self._translate_errors():
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.llen(self.queue_key)
                pipe.hvals(self.records_key)
                depth, records = await pipe.execute()

        counts = Counter(json.loads(raw)["status"] for raw in records)
        return QueueStats(queue_depth=depth, stats=dict(counts))

    async def ping(self) -> bool:
        try:
            return bool(await self._client.ping())
        except (RedisConnectionError, RedisTimeoutError):
            return False

    async def clear(self) -> None:
        """Delete both keys. Intended for tests and local resets."""
        async with self._translate_errors():
            await self._client.delete(self.records_key, self.queue_key)

    async def close(self) -> None:
        await self._client.aclose()

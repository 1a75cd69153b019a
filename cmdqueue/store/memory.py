"""
In-process job store.

Holds the pending queue and the record store in memory and serializes every
compound transition under one asyncio lock. Record writes additionally check
the version they read, so a transition that lost its exclusivity fails loudly
instead of overwriting a newer record.
"""

import asyncio
import logging
from collections import Counter, OrderedDict
from collections.abc import Iterator
from datetime import datetime

from cmdqueue.constants import (
    COMPLETION_STATUSES,
    CancelOutcome,
    CompleteOutcome,
    JobStatus,
)
from cmdqueue.errors import VersionConflictError
from cmdqueue.store.base import CancelResult, CompleteResult, JobStore
from cmdqueue.types.job import Job, QueueStats

logger = logging.getLogger(__name__)


class PendingQueue:
    """FIFO of job ids awaiting a worker. Ids are unique."""

    def __init__(self) -> None:
        self._ids: OrderedDict[str, None] = OrderedDict()

    def append(self, job_id: str) -> bool:
        """Append an id at the tail. Returns False if it is already queued."""
        if job_id in self._ids:
            return False
        self._ids[job_id] = None
        return True

    def pop_front(self) -> str | None:
        """Remove and return the head id, or None if the queue is empty."""
        if not self._ids:
            return None
        job_id, _ = self._ids.popitem(last=False)
        return job_id

    def remove(self, job_id: str) -> bool:
        """Remove an id wherever it sits. Returns True if it was queued."""
        if job_id not in self._ids:
            return False
        del self._ids[job_id]
        return True

    def snapshot(self) -> list[str]:
        return list(self._ids)

    def __contains__(self, job_id: object) -> bool:
        return job_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)


class JobRecordStore:
    """Keyed job records with version-checked writes."""

    def __init__(self) -> None:
        self._records: dict[str, Job] = {}

    def get(self, job_id: str) -> Job | None:
        job = self._records.get(job_id)
        return job.model_copy() if job is not None else None

    def exists(self, job_id: str) -> bool:
        return job_id in self._records

    def put(self, job: Job, expected_version: int | None = None) -> None:
        """
        Store a record.

        Args:
            job: The record to store.
            expected_version: Version the caller read before building ``job``.
                If given, the write is rejected unless the stored version
                still matches.

        Raises:
            VersionConflictError: If the stored version moved on.
        """
        if expected_version is not None:
            current = self._records.get(job.id)
            actual = current.version if current is not None else None
            if actual != expected_version:
                raise VersionConflictError(job.id, expected_version, actual)
        self._records[job.id] = job.model_copy()

    def values(self) -> Iterator[Job]:
        return iter(list(self._records.values()))

    def __len__(self) -> int:
        return len(self._records)


class MemoryJobStore(JobStore):
    """
    Job store for a single process.

    Suitable for tests and for running the API with embedded workers. Every
    transition below runs entirely under ``self._lock``, so the queue and the
    record change together or not at all.
    """

    def __init__(self) -> None:
        self.queue = PendingQueue()
        self.records = JobRecordStore()
        self._lock = asyncio.Lock()

    async def enqueue(self, job: Job) -> bool:
        async with self._lock:
            if self.records.exists(job.id):
                return False
            self.records.put(job)
            self.queue.append(job.id)
            return True

    async def claim(self, now: datetime) -> Job | None:
        async with self._lock:
            while True:
                job_id = self.queue.pop_front()
                if job_id is None:
                    return None

                job = self.records.get(job_id)
                if job is None or not job.is_pending:
                    logger.debug(
                        "Discarded stale queue entry",
                        extra={"job_id": job_id},
                    )
                    continue

                running = job.claimed(now)
                self.records.put(running, expected_version=job.version)
                return running

    async def cancel(self, job_id: str, now: datetime) -> CancelResult:
        async with self._lock:
            job = self.records.get(job_id)
            if job is None:
                return CancelResult(CancelOutcome.NOT_FOUND, None)
            if job.status == JobStatus.CANCELLED:
                return CancelResult(CancelOutcome.ALREADY_CANCELLED, job)
            if job.status in COMPLETION_STATUSES:
                return CancelResult(CancelOutcome.ALREADY_COMPLETED, job)

            removed = self.queue.remove(job_id)
            cancelled = job.cancelled(now)
            self.records.put(cancelled, expected_version=job.version)

            outcome = (
                CancelOutcome.CANCELLED_FROM_QUEUE
                if removed
                else CancelOutcome.CANCELLED_RUNNING
            )
            return CancelResult(outcome, cancelled)

    async def complete(
        self,
        job_id: str,
        status: JobStatus,
        output: str | None,
        now: datetime,
    ) -> CompleteResult:
        async with self._lock:
            job = self.records.get(job_id)
            if job is None:
                return CompleteResult(CompleteOutcome.NOT_FOUND, None)
            if job.status == JobStatus.CANCELLED and job.started_at is not None:
                updated = job.with_output(output)
                self.records.put(updated, expected_version=job.version)
                return CompleteResult(CompleteOutcome.CANCELLED, updated)
            if job.status in COMPLETION_STATUSES:
                return CompleteResult(CompleteOutcome.ALREADY_COMPLETED, job)
            if job.status != JobStatus.RUNNING:
                return CompleteResult(CompleteOutcome.NOT_RUNNING, job)

            finished = job.finished(status, output, now)
            self.records.put(finished, expected_version=job.version)
            return CompleteResult(CompleteOutcome.COMPLETED, finished)

    async def get(self, job_id: str) -> Job | None:
        return self.records.get(job_id)

    async def exists(self, job_id: str) -> bool:
        return self.records.exists(job_id)

    async def queue_length(self) -> int:
        return len(self.queue)

    async def queued_ids(self) -> list[str]:
        return self.queue.snapshot()

    async def stats(self) -> QueueStats:
        async with self._lock:
            counts = Counter(job.status.value for job in self.records.values())
            return QueueStats(queue_depth=len(self.queue), stats=dict(counts))

    async def ping(self) -> bool:
        return True

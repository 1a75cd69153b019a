"""
Job store interface.

A job store owns two structures, the pending queue and the job record store,
and exposes the compound transitions that must touch both as one atomic unit.
Implementations decide how the unit is made indivisible; callers never
read-modify-write either structure directly.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import NamedTuple

from cmdqueue.constants import CancelOutcome, CompleteOutcome, JobStatus
from cmdqueue.types.job import Job, QueueStats


class CancelResult(NamedTuple):
    """Outcome of a cancel transition and the record it left behind."""

    outcome: CancelOutcome
    job: Job | None


class CompleteResult(NamedTuple):
    """Outcome of a complete transition and the record it left behind."""

    outcome: CompleteOutcome
    job: Job | None


class JobStore(ABC):
    """Shared queue and record store with atomic transitions."""

    @abstractmethod
    async def enqueue(self, job: Job) -> bool:
        """
        Insert a pending record and append its id to the queue.

        Returns:
            False if a record with the same id exists; nothing is written.
        """

    @abstractmethod
    async def claim(self, now: datetime) -> Job | None:
        """
        Pop the queue head and move its record to running.

        Ids whose record is missing or no longer pending are discarded and the
        next head is tried.

        Returns:
            The running job, or None if no pending job is queued.
        """

    @abstractmethod
    async def cancel(self, job_id: str, now: datetime) -> CancelResult:
        """Cancel a pending or running job."""

    @abstractmethod
    async def complete(
        self,
        job_id: str,
        status: JobStatus,
        output: str | None,
        now: datetime,
    ) -> CompleteResult:
        """Record the natural end of a running job."""

    @abstractmethod
    async def get(self, job_id: str) -> Job | None:
        """Read a job record."""

    @abstractmethod
    async def exists(self, job_id: str) -> bool:
        """Check whether a record exists for the id."""

    @abstractmethod
    async def queue_length(self) -> int:
        """Number of ids waiting in the pending queue."""

    @abstractmethod
    async def queued_ids(self) -> list[str]:
        """Pending queue contents, head first."""

    @abstractmethod
    async def stats(self) -> QueueStats:
        """Queue depth and record counts by status."""

    @abstractmethod
    async def ping(self) -> bool:
        """Check that the store is reachable."""

    async def close(self) -> None:
        """Release any connections held by the store."""

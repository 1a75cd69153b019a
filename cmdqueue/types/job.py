"""
Job-related type definitions for internal use.
"""

from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from cmdqueue.constants import JobStatus


class Job(BaseModel):
    """
    A shell command job and its lifecycle state.

    Records are immutable values: every transition builds a new record with
    ``version`` incremented, and the store compares versions on write.
    """

    id: str
    command: str
    status: JobStatus = JobStatus.PENDING
    created_at: datetime
    started_at: datetime | None = None
    finished_at: datetime | None = None
    cancelled_at: datetime | None = None
    output: str | None = None
    version: int = Field(default=0, ge=0)

    @property
    def is_pending(self) -> bool:
        """Check if the job is waiting in the queue."""
        return self.status == JobStatus.PENDING

    def claimed(self, now: datetime) -> "Job":
        """Build the running record for a claimed job."""
        return self.model_copy(
            update={
                "status": JobStatus.RUNNING,
                "started_at": now,
                "version": self.version + 1,
            }
        )

    def cancelled(self, now: datetime) -> "Job":
        """Build the cancelled record."""
        return self.model_copy(
            update={
                "status": JobStatus.CANCELLED,
                "cancelled_at": now,
                "version": self.version + 1,
            }
        )

    def finished(self, status: JobStatus, output: str | None, now: datetime) -> "Job":
        """Build the record for a job whose command exited."""
        return self.model_copy(
            update={
                "status": status,
                "finished_at": now,
                "output": output,
                "version": self.version + 1,
            }
        )

    def with_output(self, output: str | None) -> "Job":
        """Record late output on a job without changing its status."""
        return self.model_copy(
            update={"output": output, "version": self.version + 1}
        )


@dataclass
class ExecutionResult:
    """
    Result of running a job's command.
    Returned by the executor to the worker loop.
    """

    success: bool
    output: str
    exit_code: int | None = None
    error: str | None = None
    duration_ms: float | None = None

    @property
    def status(self) -> JobStatus:
        """Terminal status this result maps to."""
        return JobStatus.SUCCEEDED if self.success else JobStatus.FAILED


class QueueStats(BaseModel):
    """Snapshot of queue depth and job counts by status."""

    queue_depth: int
    stats: dict[str, int]

"""
Atomic transition engine.

Implements the job state machine on top of a ``JobStore``:

    pending -> running -> {succeeded, failed}
    pending -> cancelled
    running -> cancelled

Submit, claim, cancel and complete each run as one atomic unit inside the
store. The engine validates input before anything is written, assigns ids and
timestamps, and reports each transition to logs, metrics, traces and the job
history.
"""

import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from cmdqueue.constants import (
    COMPLETION_STATUSES,
    SPAN_CANCEL_JOB,
    SPAN_CLAIM_JOB,
    SPAN_COMPLETE_JOB,
    SPAN_SUBMIT_JOB,
    CancelOutcome,
    CompleteOutcome,
    JobStatus,
)
from cmdqueue.errors import AlreadyExistsError, InvalidInputError
from cmdqueue.history import History, NullHistory
from cmdqueue.observability.metrics import get_metrics
from cmdqueue.observability.tracing import job_span
from cmdqueue.store.base import JobStore
from cmdqueue.types.job import Job, QueueStats

logger = logging.getLogger(__name__)


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(timezone.utc)


def new_job_id() -> str:
    """Generate an opaque, collision-resistant job id."""
    return str(uuid4())


def validate_command(command: Any) -> str:
    """
    Check a submitted command.

    Raises:
        InvalidInputError: If the command is missing, not a string, or blank.
    """
    if command is None:
        raise InvalidInputError("Command is required")
    if not isinstance(command, str):
        raise InvalidInputError("Command must be a string")
    if not command.strip():
        raise InvalidInputError("Command must not be empty")
    return command


def validate_job_id(job_id: Any) -> str:
    """
    Check a job id supplied by a caller.

    Raises:
        InvalidInputError: If the id is missing, not a string, or blank.
    """
    if not isinstance(job_id, str) or not job_id.strip():
        raise InvalidInputError("Job id is required")
    return job_id


class TransitionEngine:
    """
    Entry point for every job state change.

    No caller outside this class mutates the store. Expected conditions come
    back as return values; only store connectivity failures
    (``StoreUnavailableError``) and invalid input propagate as exceptions.
    """

    def __init__(
        self,
        store: JobStore,
        history: History | None = None,
        clock: Callable[[], datetime] = utcnow,
        id_factory: Callable[[], str] = new_job_id,
    ):
        """
        Initialize the engine.

        Args:
            store: Shared job store.
            history: Persistence collaborator. Defaults to keeping nothing.
            clock: Source of transition timestamps.
            id_factory: Generator for new job ids.
        """
        self.store = store
        self.history = history or NullHistory()
        self._clock = clock
        self._id_factory = id_factory
        self._metrics = get_metrics()

    async def submit(self, command: Any, job_id: str | None = None) -> Job:
        """
        Submit a new job.

        Args:
            command: Shell command to run.
            job_id: Explicit id for idempotent replays. Public callers leave
                this unset and get a generated id.

        Returns:
            The pending job.

        Raises:
            InvalidInputError: If the command or explicit id is invalid.
            AlreadyExistsError: If a record already exists for ``job_id``.
        """
        command = validate_command(command)
        if job_id is not None:
            job_id = validate_job_id(job_id)

        job = Job(
            id=job_id or self._id_factory(),
            command=command,
            status=JobStatus.PENDING,
            created_at=self._clock(),
            version=0,
        )

        with job_span(SPAN_SUBMIT_JOB, job_id=job.id):
            created = await self.store.enqueue(job)

        if not created:
            logger.info("Rejected duplicate submission", extra={"job_id": job.id})
            raise AlreadyExistsError(f"Job {job.id} already exists", job_id=job.id)

        self._metrics.record_job_submitted()
        logger.info("Job submitted", extra={"job_id": job.id, "command": command})
        return job

    async def claim(self, worker_id: str = "anonymous") -> Job | None:
        """
        Take ownership of the oldest pending job.

        Never blocks: returns None at once when nothing is pending.

        Args:
            worker_id: Claiming worker, for logs and metrics.

        Returns:
            The job, now running, or None.
        """
        with job_span(SPAN_CLAIM_JOB, worker_id=worker_id) as span:
            job = await self.store.claim(self._clock())
            if job is not None:
                span.set_attribute("job_id", job.id)

        if job is None:
            return None

        self._metrics.record_job_claimed(worker_id)
        logger.info(
            "Job claimed",
            extra={"job_id": job.id, "worker_id": worker_id, "version": job.version},
        )
        await self.history.write_history(job)
        return job

    async def cancel(self, job_id: str) -> CancelOutcome:
        """
        Cancel a job.

        Pending jobs leave the queue. Running jobs are only marked: the
        process keeps running and its completion will not overwrite the
        cancellation.

        Args:
            job_id: The job to cancel.

        Returns:
            CancelOutcome describing what happened.
        """
        job_id = validate_job_id(job_id)

        with job_span(SPAN_CANCEL_JOB, job_id=job_id) as span:
            outcome, job = await self.store.cancel(job_id, self._clock())
            span.set_attribute("outcome", outcome.value)

        self._metrics.record_job_cancelled(outcome.value)
        logger.info("Cancel requested", extra={"job_id": job_id, "outcome": outcome})

        if job is not None and outcome in (
            CancelOutcome.CANCELLED_FROM_QUEUE,
            CancelOutcome.CANCELLED_RUNNING,
        ):
            await self.history.write_history(job)
        return outcome

    async def complete(
        self,
        job_id: str,
        status: JobStatus,
        output: str | None,
    ) -> CompleteOutcome:
        """
        Record the natural end of a claimed job.

        Called only by the worker holding the claim.

        Args:
            job_id: The job that finished.
            status: ``succeeded`` or ``failed``.
            output: Captured command output.

        Returns:
            CompleteOutcome. ``cancelled`` means the job was cancelled while
            running; the output was stored and the status stays cancelled.

        Raises:
            InvalidInputError: If ``status`` is not a completion status.
        """
        job_id = validate_job_id(job_id)
        if status not in COMPLETION_STATUSES:
            raise InvalidInputError(
                f"Completion status must be succeeded or failed, got {status}",
                job_id=job_id,
            )

        with job_span(SPAN_COMPLETE_JOB, job_id=job_id, status=status) as span:
            outcome, job = await self.store.complete(
                job_id, JobStatus(status), output, self._clock()
            )
            span.set_attribute("outcome", outcome.value)

        if outcome == CompleteOutcome.COMPLETED and job is not None:
            duration = None
            if job.started_at is not None and job.finished_at is not None:
                duration = (job.finished_at - job.started_at).total_seconds()
            self._metrics.record_job_completed(job.status.value, duration)
            logger.info(
                "Job completed",
                extra={"job_id": job_id, "status": job.status, "version": job.version},
            )
        elif outcome == CompleteOutcome.CANCELLED:
            self._metrics.record_job_completed(JobStatus.CANCELLED.value)
            logger.info(
                "Job finished after cancellation; status kept cancelled",
                extra={"job_id": job_id, "exit_status": status},
            )
        else:
            logger.warning(
                "Completion not applied",
                extra={"job_id": job_id, "outcome": outcome},
            )

        if job is not None and outcome in (
            CompleteOutcome.COMPLETED,
            CompleteOutcome.CANCELLED,
        ):
            await self.history.write_history(job)
        return outcome

    async def get(self, job_id: str) -> Job | None:
        """Read a job from the shared store."""
        return await self.store.get(validate_job_id(job_id))

    async def stats(self) -> QueueStats:
        """Queue depth and job counts by status."""
        stats = await self.store.stats()
        self._metrics.update_queue_depth(stats.queue_depth)
        return stats

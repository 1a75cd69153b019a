"""
Status and cancel gateway.

Thin entry points used by the HTTP API and the CLI. Validates parameters and
maps engine results to caller-facing results; all state changes go through
the transition engine.
"""

import logging
from typing import Any, Sequence

from cmdqueue.constants import CancelOutcome, JobStatus
from cmdqueue.engine import TransitionEngine, validate_job_id
from cmdqueue.errors import NotFoundError
from cmdqueue.types.job import Job, QueueStats

logger = logging.getLogger(__name__)


class JobGateway:
    """Submit, inspect and cancel jobs."""

    def __init__(self, engine: TransitionEngine):
        self.engine = engine

    async def submit(self, command: Any) -> Job:
        """Submit a command. Ids are always generated by the engine."""
        return await self.engine.submit(command)

    async def get_status(self, job_id: str) -> Job:
        """
        Get a job's current state.

        Looks in the shared store first and falls back to the job history for
        records the store no longer holds.

        Raises:
            InvalidInputError: If the id is blank.
            NotFoundError: If neither the store nor the history knows the id.
        """
        job_id = validate_job_id(job_id)

        job = await self.engine.get(job_id)
        if job is not None:
            return job

        job = await self.engine.history.read_history(job_id)
        if job is not None:
            logger.debug("Status served from history", extra={"job_id": job_id})
            return job

        raise NotFoundError(f"Job {job_id} not found", job_id=job_id)

    async def cancel(self, job_id: str) -> CancelOutcome:
        """Cancel a job. See ``TransitionEngine.cancel``."""
        return await self.engine.cancel(validate_job_id(job_id))

    async def stats(self) -> QueueStats:
        """Queue depth and job counts by status."""
        return await self.engine.stats()

    async def list_history(
        self,
        status: JobStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[Job], int]:
        """List jobs recorded in the history, newest first."""
        return await self.engine.history.list_history(
            status=status, limit=limit, offset=offset
        )

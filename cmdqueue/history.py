"""
Job history collaborator.

The engine hands every claimed, cancelled and completed record to a
``History``. Writes never fail a transition: the transition has already
happened in the shared store, so a failed write is logged and counted.
Reads back status queries for jobs the shared store no longer holds, and a
failed read is raised so callers do not mistake an outage for "not found".
"""

import logging
from abc import ABC, abstractmethod
from typing import Sequence

from sqlalchemy.exc import SQLAlchemyError

from cmdqueue.constants import JobStatus
from cmdqueue.db.connection import get_session_context
from cmdqueue.db.repository import JobHistoryRepository
from cmdqueue.errors import StoreUnavailableError
from cmdqueue.observability.metrics import get_metrics
from cmdqueue.types.job import Job

logger = logging.getLogger(__name__)


class History(ABC):
    """Durable record of job states."""

    @abstractmethod
    async def write_history(self, job: Job) -> None:
        """Persist the job's current record. Never raises."""

    @abstractmethod
    async def read_history(self, job_id: str) -> Job | None:
        """Read the latest persisted record for a job."""

    @abstractmethod
    async def list_history(
        self,
        status: JobStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[Job], int]:
        """List persisted records, newest first."""


class NullHistory(History):
    """History that keeps nothing. Used when persistence is disabled."""

    async def write_history(self, job: Job) -> None:
        return None

    async def read_history(self, job_id: str) -> Job | None:
        return None

    async def list_history(
        self,
        status: JobStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[Job], int]:
        return [], 0


class DatabaseHistory(History):
    """History stored through SQLAlchemy. Requires ``init_db()`` first."""

    async def write_history(self, job: Job) -> None:
        try:
            async with get_session_context() as session:
                await JobHistoryRepository(session).save(job)
        except (SQLAlchemyError, OSError) as e:
            get_metrics().record_history_write_failure()
            logger.error(
                "Failed to write job history",
                extra={"job_id": job.id, "status": job.status, "error": str(e)},
            )

    async def read_history(self, job_id: str) -> Job | None:
        try:
            async with get_session_context() as session:
                return await JobHistoryRepository(session).get(job_id)
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(
                f"History database unavailable: {e}", job_id=job_id
            ) from e

    async def list_history(
        self,
        status: JobStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[Job], int]:
        try:
            async with get_session_context() as session:
                return await JobHistoryRepository(session).list_jobs(
                    status=status, limit=limit, offset=offset
                )
        except (SQLAlchemyError, OSError) as e:
            raise StoreUnavailableError(f"History database unavailable: {e}") from e

"""
Job history repository for database operations.
"""

import logging
from typing import Any, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from cmdqueue.constants import JobStatus
from cmdqueue.db.models import JobHistory
from cmdqueue.types.job import Job

logger = logging.getLogger(__name__)


def _insert_for(session: AsyncSession):
    """Pick the dialect's INSERT construct, which carries ON CONFLICT support."""
    if session.bind.dialect.name == "sqlite":
        return sqlite_insert
    return postgresql_insert


def _row_values(job: Job) -> dict[str, Any]:
    return {
        "command": job.command,
        "status": job.status,
        "created_at": job.created_at,
        "started_at": job.started_at,
        "finished_at": job.finished_at,
        "cancelled_at": job.cancelled_at,
        "output": job.output,
        "version": job.version,
    }


def _row_to_job(row: JobHistory) -> Job:
    return Job(
        id=row.id,
        command=row.command,
        status=JobStatus(row.status),
        created_at=row.created_at,
        started_at=row.started_at,
        finished_at=row.finished_at,
        cancelled_at=row.cancelled_at,
        output=row.output,
        version=row.version,
    )


class JobHistoryRepository:
    """
    Repository for the job history table.

    Writes are upserts keyed by job id and never move a row to an older
    record version, so history writes that arrive out of order cannot
    regress a job's recorded state.
    """

    def __init__(self, session: AsyncSession):
        """
        Initialize the repository with a database session.

        Args:
            session: The async database session.
        """
        self._session = session

    async def save(self, job: Job) -> bool:
        """
        Insert or update the history row for a job.

        The version check and the write run as one
        ``INSERT ... ON CONFLICT DO UPDATE ... WHERE`` statement, so
        concurrent writers for the same job cannot interleave between them.

        Args:
            job: The job record to persist.

        Returns:
            True if the row was written, False if a newer version is stored.
        """
        values = _row_values(job)
        stmt = _insert_for(self._session)(JobHistory).values(id=job.id, **values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[JobHistory.id],
            set_={
                **{key: stmt.excluded[key] for key in values},
                "recorded_at": func.now(),
            },
            where=JobHistory.version <= stmt.excluded.version,
        ).returning(JobHistory.id)

        result = await self._session.execute(stmt)
        written = result.scalar_one_or_none() is not None

        if not written:
            logger.debug(
                "Skipped stale history write",
                extra={"job_id": job.id, "version": job.version},
            )
        return written

    async def get(self, job_id: str) -> Job | None:
        """
        Get a job's latest recorded state.

        Args:
            job_id: The job id.

        Returns:
            The Job or None if never recorded.
        """
        row = await self._session.get(JobHistory, job_id)
        return _row_to_job(row) if row is not None else None

    async def list_jobs(
        self,
        status: JobStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[Sequence[Job], int]:
        """
        List recorded jobs, newest first.

        Args:
            status: Optional status filter.
            limit: Maximum number of jobs to return.
            offset: Offset for pagination.

        Returns:
            Tuple of (jobs, total_count).
        """
        count_stmt = select(func.count()).select_from(JobHistory)
        stmt = select(JobHistory).order_by(JobHistory.created_at.desc())
        if status is not None:
            count_stmt = count_stmt.where(JobHistory.status == status)
            stmt = stmt.where(JobHistory.status == status)

        total = (await self._session.execute(count_stmt)).scalar() or 0
        result = await self._session.execute(stmt.limit(limit).offset(offset))
        jobs = [_row_to_job(row) for row in result.scalars().all()]

        return jobs, total

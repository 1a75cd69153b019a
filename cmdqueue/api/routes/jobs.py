"""
Job management routes.
"""

import logging

from fastapi import APIRouter, HTTPException, Query, status
from fastapi.responses import JSONResponse

from cmdqueue.api.dependencies import Gateway
from cmdqueue.constants import API_V1_PREFIX, CancelOutcome, JobStatus
from cmdqueue.types.api import (
    CancelJobResponse,
    CreateJobRequest,
    CreateJobResponse,
    JobListResponse,
    JobResponse,
    StatsResponse,
)
from cmdqueue.types.job import Job

logger = logging.getLogger(__name__)

router = APIRouter(prefix=f"{API_V1_PREFIX}/jobs", tags=["Jobs"])

CANCEL_MESSAGES: dict[CancelOutcome, str] = {
    CancelOutcome.CANCELLED_FROM_QUEUE: "Job cancelled before it started",
    CancelOutcome.CANCELLED_RUNNING: "Job marked cancelled; its process is not stopped",
    CancelOutcome.ALREADY_CANCELLED: "Job was already cancelled",
    CancelOutcome.ALREADY_COMPLETED: "Job already finished and cannot be cancelled",
}


def _job_to_response(job: Job) -> JobResponse:
    """Convert a Job to a JobResponse."""
    return JobResponse(
        id=job.id,
        command=job.command,
        status=job.status,
        created_at=job.created_at,
        started_at=job.started_at,
        finished_at=job.finished_at,
        cancelled_at=job.cancelled_at,
        output=job.output,
        version=job.version,
    )


@router.post(
    "",
    response_model=CreateJobResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit a job",
    description="Submit a shell command to the queue.",
)
async def create_job(
    request: CreateJobRequest,
    gateway: Gateway,
) -> CreateJobResponse:
    """
    Submit a new job.

    Args:
        request: Job submission request.
        gateway: Job gateway.

    Returns:
        CreateJobResponse with the generated id.
    """
    job = await gateway.submit(request.command)

    return CreateJobResponse(
        id=job.id,
        status=job.status,
        created_at=job.created_at,
    )


@router.get(
    "",
    response_model=JobListResponse,
    summary="List jobs",
    description="List recorded jobs from the history, newest first.",
)
async def list_jobs(
    gateway: Gateway,
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=20, ge=1, le=100),
    status: JobStatus | None = Query(default=None),
) -> JobListResponse:
    """
    List jobs recorded in the history.

    Args:
        gateway: Job gateway.
        page: Page number (1-indexed).
        page_size: Number of items per page.
        status: Optional status filter.

    Returns:
        JobListResponse with paginated jobs.
    """
    offset = (page - 1) * page_size
    jobs, total = await gateway.list_history(
        status=status,
        limit=page_size,
        offset=offset,
    )

    return JobListResponse(
        jobs=[_job_to_response(job) for job in jobs],
        total=total,
        page=page,
        page_size=page_size,
        has_next=(page * page_size) < total,
    )


@router.get(
    "/stats/summary",
    response_model=StatsResponse,
    summary="Get queue statistics",
    description="Pending queue depth and job counts by status.",
)
async def get_job_stats(gateway: Gateway) -> StatsResponse:
    """Get queue statistics."""
    stats = await gateway.stats()
    return StatsResponse(queue_depth=stats.queue_depth, stats=stats.stats)


@router.get(
    "/{job_id}",
    response_model=JobResponse,
    summary="Get job details",
    description="Get the current state of a job.",
)
async def get_job(job_id: str, gateway: Gateway) -> JobResponse:
    """
    Get job details by ID.

    Raises:
        NotFoundError: Mapped to 404 by the application error handlers.
    """
    job = await gateway.get_status(job_id)
    return _job_to_response(job)


@router.post(
    "/{job_id}/cancel",
    response_model=CancelJobResponse,
    summary="Cancel a job",
    description=(
        "Cancel a pending or running job. Running jobs are marked cancelled "
        "but their process is left to finish."
    ),
    responses={
        status.HTTP_404_NOT_FOUND: {"description": "Job not found"},
        status.HTTP_409_CONFLICT: {
            "model": CancelJobResponse,
            "description": "Job already cancelled or finished",
        },
    },
)
async def cancel_job(job_id: str, gateway: Gateway) -> CancelJobResponse | JSONResponse:
    """
    Cancel a job.

    Args:
        job_id: The job id.
        gateway: Job gateway.

    Returns:
        CancelJobResponse, with status 409 for jobs already in a final state.

    Raises:
        HTTPException: If the job does not exist.
    """
    outcome = await gateway.cancel(job_id)

    if outcome == CancelOutcome.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Job not found",
        )

    response = CancelJobResponse(
        id=job_id,
        outcome=outcome,
        message=CANCEL_MESSAGES[outcome],
    )

    if outcome in (CancelOutcome.ALREADY_CANCELLED, CancelOutcome.ALREADY_COMPLETED):
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=response.model_dump(mode="json"),
        )

    return response

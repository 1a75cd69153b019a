"""
API request and response type definitions.
"""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from cmdqueue.constants import CancelOutcome, JobStatus


class CreateJobRequest(BaseModel):
    """Request body for submitting a new job."""

    command: str = Field(..., min_length=1, description="Shell command to execute")

    @field_validator("command")
    @classmethod
    def command_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("command must not be blank")
        return value


class CreateJobResponse(BaseModel):
    """Response body after submitting a job."""

    id: str
    status: JobStatus
    created_at: datetime
    message: str = "Job submitted successfully"


class JobResponse(BaseModel):
    """Full job details response."""

    id: str
    command: str
    status: JobStatus
    created_at: datetime
    started_at: datetime | None
    finished_at: datetime | None
    cancelled_at: datetime | None
    output: str | None
    version: int


class JobListResponse(BaseModel):
    """Paginated list of recorded jobs."""

    jobs: list[JobResponse]
    total: int
    page: int
    page_size: int
    has_next: bool


class CancelJobResponse(BaseModel):
    """Response body for a cancel request."""

    id: str
    outcome: CancelOutcome
    message: str


class StatsResponse(BaseModel):
    """Queue statistics response."""

    queue_depth: int
    stats: dict[str, int]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    store: str
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
    detail: str | None = None

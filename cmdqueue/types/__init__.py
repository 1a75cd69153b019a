"""
Type definitions for the job queue.
Contains input/output type definitions for all functions, grouped by module.
"""

from cmdqueue.types.api import (
    CancelJobResponse,
    CreateJobRequest,
    CreateJobResponse,
    ErrorResponse,
    HealthResponse,
    JobListResponse,
    JobResponse,
    StatsResponse,
)
from cmdqueue.types.job import (
    ExecutionResult,
    Job,
    QueueStats,
)

__all__ = [
    # API types
    "CreateJobRequest",
    "CreateJobResponse",
    "JobResponse",
    "JobListResponse",
    "CancelJobResponse",
    "StatsResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "Job",
    "ExecutionResult",
    "QueueStats",
]

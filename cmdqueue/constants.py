"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class JobStatus(StrEnum):
    """
    Job lifecycle states.

    State transitions:
    - PENDING -> RUNNING (claimed by a worker)
    - RUNNING -> SUCCEEDED (command exited 0)
    - RUNNING -> FAILED (non-zero exit or execution error)
    - PENDING -> CANCELLED (removed from the queue)
    - RUNNING -> CANCELLED (advisory, the process keeps running)
    """

    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    CANCELLED = "cancelled"


COMPLETION_STATUSES = frozenset({JobStatus.SUCCEEDED, JobStatus.FAILED})


class CancelOutcome(StrEnum):
    """Result of a cancel transition."""

    NOT_FOUND = "not_found"
    ALREADY_CANCELLED = "already_cancelled"
    ALREADY_COMPLETED = "already_completed"
    CANCELLED_FROM_QUEUE = "cancelled_from_queue"
    CANCELLED_RUNNING = "cancelled_running"


class CompleteOutcome(StrEnum):
    """Result of a complete transition."""

    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ALREADY_COMPLETED = "already_completed"
    NOT_RUNNING = "not_running"
    NOT_FOUND = "not_found"


# Store key suffixes (prefixed by settings.redis_key_prefix)
RECORDS_KEY_SUFFIX = "hash"
QUEUE_KEY_SUFFIX = "queue"

# API constants
API_V1_PREFIX = "/v1"

# Metrics names
METRIC_QUEUE_DEPTH = "job_queue_depth"
METRIC_JOBS_SUBMITTED = "jobs_submitted_total"
METRIC_JOBS_CLAIMED = "jobs_claimed_total"
METRIC_JOBS_COMPLETED = "jobs_completed_total"
METRIC_JOBS_CANCELLED = "jobs_cancelled_total"
METRIC_JOB_DURATION = "job_duration_seconds"
METRIC_STUCK_JOBS = "stuck_jobs_total"
METRIC_HISTORY_WRITE_FAILURES = "history_write_failures_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_SUBMIT_JOB = "submit_job"
SPAN_CLAIM_JOB = "claim_job"
SPAN_CANCEL_JOB = "cancel_job"
SPAN_COMPLETE_JOB = "complete_job"
SPAN_EXECUTE_JOB = "execute_job"

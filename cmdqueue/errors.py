"""
Exception hierarchy for the job queue.

Expected state conflicts (already cancelled, already completed) are reported
as outcome values, not exceptions. Exceptions cover invalid input, unknown
ids on lookups, duplicate submissions, and an unreachable store.
"""


class JobQueueError(Exception):
    """Base class for all job queue errors."""

    def __init__(self, message: str, job_id: str | None = None):
        super().__init__(message)
        self.message = message
        self.job_id = job_id


class InvalidInputError(JobQueueError):
    """Raised before any write when a request carries invalid input."""


class NotFoundError(JobQueueError):
    """Raised when a job id is unknown to both the store and the history."""


class AlreadyExistsError(JobQueueError):
    """Raised when a submission reuses an id that already has a record."""


class StoreUnavailableError(JobQueueError):
    """Raised when the shared store or the history database cannot be reached."""


class VersionConflictError(JobQueueError):
    """Raised when a record write finds a different version than it read."""

    def __init__(self, job_id: str, expected: int, actual: int | None):
        super().__init__(
            f"Version conflict on job {job_id}: expected {expected}, found {actual}",
            job_id=job_id,
        )
        self.expected = expected
        self.actual = actual

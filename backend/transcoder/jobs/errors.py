"""
Job-specific error types.

All errors inherit from JobError for easy catching.
Errors are explicit and provide actionable messages.
"""


class JobError(Exception):
    """Base exception for all job-related failures."""
    pass


class JobNotFoundError(JobError):
    """Raised when a job cannot be found in the Job Store."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")


class InvalidStateTransitionError(JobError):
    """Raised when attempting an illegal state transition."""

    def __init__(self, current_state: str, target_state: str, reason: str = ""):
        self.current_state = current_state
        self.target_state = target_state
        self.reason = reason
        message = f"Invalid job state transition: {current_state} -> {target_state}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class JobValidationError(JobError):
    """
    Raised when a conversion request is rejected before a job is created.

    The message is user-presentable.
    """

    def __init__(self, message: str, field: str = ""):
        self.message = message
        self.field = field
        super().__init__(message)


class JobStoreError(JobError):
    """Raised when the Job Store backend is unavailable or rejects an operation."""
    pass


class LeaseLostError(JobError):
    """Raised when another worker has re-claimed a job this worker was processing."""

    def __init__(self, job_id: str, expected_lease: str, actual_lease: str):
        self.job_id = job_id
        self.expected_lease = expected_lease
        self.actual_lease = actual_lease
        super().__init__(
            f"Lease lost for job {job_id}: held {expected_lease}, store has {actual_lease}"
        )

"""
State transition validation for jobs.

Job lifecycle: PENDING → PROCESSING → COMPLETED | FAILED
No pause, retry or cancellation transitions.

INVARIANT: Terminal job states (COMPLETED, FAILED) are immutable.
A repeated write of the same terminal state is accepted as a no-op so that
a redelivered queue message can never corrupt a finished record.

INVARIANT: PROCESSING → PROCESSING is a re-claim. It happens when a queue
message is redelivered after a worker crashed mid-job; the new claim resets
progress and takes a fresh lease.
"""

from typing import FrozenSet, Set, Tuple
from .models import JobStatus
from .errors import InvalidStateTransitionError


TERMINAL_JOB_STATES: FrozenSet[JobStatus] = frozenset({
    JobStatus.COMPLETED,
    JobStatus.FAILED,
})


# Legal job state transitions (strict)
_JOB_TRANSITIONS: Set[Tuple[JobStatus, JobStatus]] = {
    (JobStatus.PENDING, JobStatus.PROCESSING),
    (JobStatus.PROCESSING, JobStatus.COMPLETED),
    (JobStatus.PROCESSING, JobStatus.FAILED),
}


def is_job_terminal(status: JobStatus) -> bool:
    """
    Check if a job status is terminal (immutable).

    Args:
        status: The job status to check

    Returns:
        True if the status is terminal, False otherwise
    """
    return status in TERMINAL_JOB_STATES


def is_noop_transition(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a transition is an idempotent repeat that must not write.

    PROCESSING → PROCESSING is not a no-op: it is a re-claim.
    """
    return from_status == to_status and from_status != JobStatus.PROCESSING


def can_transition_job(from_status: JobStatus, to_status: JobStatus) -> bool:
    """
    Check if a job state transition is legal.

    Args:
        from_status: Current job status
        to_status: Target job status

    Returns:
        True if the transition is allowed, False otherwise
    """
    # Allow staying in same state (idempotent operations, re-claims)
    if from_status == to_status:
        return True

    # Terminal states are immutable
    if is_job_terminal(from_status):
        return False

    return (from_status, to_status) in _JOB_TRANSITIONS


def validate_job_transition(from_status: JobStatus, to_status: JobStatus) -> None:
    """
    Validate a job state transition, raising an exception if illegal.

    Raises:
        InvalidStateTransitionError: If the transition is not allowed
    """
    if not can_transition_job(from_status, to_status):
        raise InvalidStateTransitionError(from_status.value, to_status.value)

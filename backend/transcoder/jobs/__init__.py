"""
Jobs: model, state machine and Job Store.
"""

from .models import Bitrate, Job, JobStatus, ProgressDetail, QualityPreset, TargetFormat
from .errors import (
    InvalidStateTransitionError,
    JobError,
    JobNotFoundError,
    JobStoreError,
    JobValidationError,
    LeaseLostError,
)
from .state import can_transition_job, is_job_terminal, validate_job_transition
from .store import InMemoryJobStore, JobStore

__all__ = [
    "Bitrate",
    "Job",
    "JobStatus",
    "ProgressDetail",
    "QualityPreset",
    "TargetFormat",
    "InvalidStateTransitionError",
    "JobError",
    "JobNotFoundError",
    "JobStoreError",
    "JobValidationError",
    "LeaseLostError",
    "can_transition_job",
    "is_job_terminal",
    "validate_job_transition",
    "InMemoryJobStore",
    "JobStore",
]

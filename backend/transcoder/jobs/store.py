"""
Job Store interface and in-memory backend.

The Job Store is a document-style persistence layer keyed by job id.
The pipeline only needs four operations: create, get, partial update and
list (per owner or all). Production deployments use the DynamoDB backend
(see dynamodb.py); the in-memory backend serves local runs and tests.
"""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from .models import Job
from .errors import JobNotFoundError, JobStoreError


class JobStore(ABC):
    """
    Abstract Job Store.

    Backends must raise JobStoreError when the backend itself is unavailable,
    and JobNotFoundError when updating a job that does not exist.
    """

    @abstractmethod
    def create_job(self, **fields: Any) -> Job:
        """Create a job from input fields. Assigns id and created_at."""
        pass

    @abstractmethod
    def get_job(self, job_id: str) -> Optional[Job]:
        """Return the job, or None if it does not exist."""
        pass

    @abstractmethod
    def update_job(self, job_id: str, fields: Dict[str, Any]) -> None:
        """Apply a partial update to an existing job."""
        pass

    @abstractmethod
    def list_jobs(self, owner_id: Optional[str] = None) -> List[Job]:
        """List jobs for one owner, or all jobs when owner_id is None. Newest first."""
        pass

    def get_job_or_raise(self, job_id: str) -> Job:
        """
        Retrieve a job by ID, raising an exception if not found.

        Raises:
            JobNotFoundError: If the job does not exist
        """
        job = self.get_job(job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job


def apply_update(job: Job, fields: Dict[str, Any]) -> Job:
    """Return a validated copy of job with fields applied."""
    unknown = set(fields) - set(Job.model_fields)
    if unknown:
        raise JobStoreError(f"Unknown job fields: {', '.join(sorted(unknown))}")
    data = job.model_dump()
    data.update(fields)
    return Job.model_validate(data)


class InMemoryJobStore(JobStore):
    """
    In-memory Job Store.

    Thread-safe; returns copies so callers never mutate stored records.
    """

    def __init__(self):
        # job_id -> Job
        self._jobs: Dict[str, Job] = {}
        self._lock = threading.Lock()

    def create_job(self, **fields: Any) -> Job:
        job = Job(**fields)
        with self._lock:
            if job.id in self._jobs:
                raise JobStoreError(f"Job with ID '{job.id}' already exists")
            self._jobs[job.id] = job
        return job.model_copy(deep=True)

    def get_job(self, job_id: str) -> Optional[Job]:
        with self._lock:
            job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job else None

    def update_job(self, job_id: str, fields: Dict[str, Any]) -> None:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                raise JobNotFoundError(job_id)
            self._jobs[job_id] = apply_update(job, fields)

    def list_jobs(self, owner_id: Optional[str] = None) -> List[Job]:
        with self._lock:
            jobs = [
                job.model_copy(deep=True)
                for job in self._jobs.values()
                if owner_id is None or job.owner_id == owner_id
            ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return jobs

    def count(self) -> int:
        with self._lock:
            return len(self._jobs)

"""
Job state machine with persistence side effects.

JobLifecycle.transition() is the only code path that changes a job's status.
It validates the edge (state.py), checks the per-status preconditions,
stamps timestamps, writes the Job Store, and publishes a cheap projection to
the Progress Cache so pollers see status changes immediately.

Per-status preconditions:
- PROCESSING: none. Clears any previous outcome and takes a fresh lease.
- COMPLETED: output_ref present and progress == 100.
- FAILED: error_message present.
"""

import logging
import uuid
from typing import Any, Dict, FrozenSet, Optional

from .models import Job, JobStatus, ProgressDetail, utcnow
from .errors import InvalidStateTransitionError, LeaseLostError
from .state import is_noop_transition, validate_job_transition
from .store import JobStore, apply_update
from ..cache.progress import ProgressCache, ProgressSnapshot

logger = logging.getLogger(__name__)


_ALLOWED_FIELDS: Dict[JobStatus, FrozenSet[str]] = {
    JobStatus.PROCESSING: frozenset({"lease_id"}),
    JobStatus.COMPLETED: frozenset({"output_ref", "output_location", "progress", "processing_seconds"}),
    JobStatus.FAILED: frozenset({"error_message", "error_detail", "processing_seconds"}),
}


class JobLifecycle:
    """
    Authoritative job state machine.

    Holds no job state itself; every call works from the Job passed in and
    returns the updated copy that was written.
    """

    def __init__(self, store: JobStore, cache: ProgressCache):
        self.store = store
        self.cache = cache

    def transition(self, job: Job, next_status: JobStatus, **fields: Any) -> Job:
        """
        Move a job to next_status.

        Args:
            job: Current job record
            next_status: Target status
            **fields: Status-specific fields (see module docstring)

        Returns:
            The updated job (or the unchanged job for an idempotent repeat)

        Raises:
            InvalidStateTransitionError: Illegal edge or missing precondition
            JobStoreError: Job Store unavailable
        """
        validate_job_transition(job.status, next_status)

        if is_noop_transition(job.status, next_status):
            logger.info(f"[Lifecycle] Job {job.id} already {job.status.value}, ignoring repeated transition")
            return job

        unexpected = set(fields) - _ALLOWED_FIELDS.get(next_status, frozenset())
        if unexpected:
            raise ValueError(
                f"Unexpected fields for {next_status.value} transition: {', '.join(sorted(unexpected))}"
            )

        if next_status == JobStatus.PROCESSING:
            updates = self._processing_updates(job, fields)
        elif next_status == JobStatus.COMPLETED:
            updates = self._completed_updates(job, fields)
        else:
            updates = self._failed_updates(job, fields)

        self.store.update_job(job.id, updates)
        updated = apply_update(job, updates)

        logger.info(f"[Lifecycle] Job {job.id}: {job.status.value} -> {next_status.value}")
        self.publish(updated)
        return updated

    def publish(self, job: Job) -> None:
        """Write the job's projection to the cache and drop its owner's cached list."""
        self.cache.set_progress(ProgressSnapshot.from_job(job))
        self.cache.invalidate_owner_jobs(job.owner_id)

    def verify_lease(self, job: Job) -> Job:
        """
        Re-read the job and confirm this worker still holds its lease.

        Returns:
            The fresh job record

        Raises:
            LeaseLostError: Another worker re-claimed the job
        """
        current = self.store.get_job_or_raise(job.id)
        if current.lease_id != job.lease_id:
            raise LeaseLostError(job.id, job.lease_id or "", current.lease_id or "")
        return current

    def _processing_updates(self, job: Job, fields: Dict[str, Any]) -> Dict[str, Any]:
        if job.status == JobStatus.PROCESSING:
            logger.warning(f"[Lifecycle] Re-claiming job {job.id} (previous attempt did not finish)")
        return {
            "status": JobStatus.PROCESSING,
            "lease_id": fields.get("lease_id") or str(uuid.uuid4()),
            "started_at": utcnow(),
            "progress": 0.0,
            "progress_detail": ProgressDetail(stage="starting", message="Transcoding started..."),
            "output_ref": None,
            "output_location": None,
            "error_message": None,
            "error_detail": None,
            "processing_seconds": None,
            "completed_at": None,
        }

    def _completed_updates(self, job: Job, fields: Dict[str, Any]) -> Dict[str, Any]:
        output_ref = fields.get("output_ref")
        if not output_ref:
            raise InvalidStateTransitionError(job.status.value, JobStatus.COMPLETED.value, "output_ref is required")
        progress = fields.get("progress")
        if progress is None or float(progress) != 100.0:
            raise InvalidStateTransitionError(
                job.status.value, JobStatus.COMPLETED.value, f"progress must be 100, got {progress}"
            )

        completed_at = utcnow()
        return {
            "status": JobStatus.COMPLETED,
            "output_ref": output_ref,
            "output_location": fields.get("output_location"),
            "progress": 100.0,
            "progress_detail": ProgressDetail(stage="completed", message="Transcoding complete!"),
            "error_message": None,
            "error_detail": None,
            "completed_at": completed_at,
            "processing_seconds": self._elapsed(job, fields.get("processing_seconds"), completed_at),
        }

    def _failed_updates(self, job: Job, fields: Dict[str, Any]) -> Dict[str, Any]:
        error_message = fields.get("error_message")
        if not error_message:
            raise InvalidStateTransitionError(job.status.value, JobStatus.FAILED.value, "error_message is required")

        completed_at = utcnow()
        return {
            "status": JobStatus.FAILED,
            "error_message": error_message,
            "error_detail": fields.get("error_detail"),
            "output_ref": None,
            "output_location": None,
            "progress_detail": ProgressDetail(stage="failed", message=error_message),
            "completed_at": completed_at,
            "processing_seconds": self._elapsed(job, fields.get("processing_seconds"), completed_at),
        }

    @staticmethod
    def _elapsed(job: Job, explicit: Optional[float], completed_at) -> Optional[float]:
        if explicit is not None:
            return round(float(explicit), 3)
        if job.started_at is None:
            return None
        return round((completed_at - job.started_at).total_seconds(), 3)

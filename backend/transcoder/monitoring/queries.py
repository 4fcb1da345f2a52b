"""
Query layer for read-only job state access.

Progress and per-owner job lists are cache-aside: the Progress Cache is
read first and repopulated from the Job Store on a miss. Progress backfill
never overwrites an entry written in the meantime. A cache outage
only costs extra Job Store reads.
"""

import logging
from typing import Optional

from pydantic import ValidationError

from ..cache.progress import ProgressCache, ProgressSnapshot
from ..jobs.models import Job, JobStatus
from ..jobs.store import JobStore
from ..storage.blobs import PROCESSED, BlobStore
from ..storage.errors import BlobNotFoundError
from .errors import DownloadNotAvailableError
from .models import DownloadResponse, JobListResponse, JobSummary, ProgressResponse, StatsResponse

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_TTL = 3600


def get_progress(store: JobStore, cache: ProgressCache, job_id: str) -> ProgressResponse:
    """
    Current progress of a job: cache first, Job Store on miss.

    Unknown jobs are reported with status "unknown" rather than an error.
    """
    snapshot = cache.get_progress(job_id)
    if snapshot is not None:
        return _progress_response(snapshot, source="cache")

    job = store.get_job(job_id)
    if job is None:
        return ProgressResponse(job_id=job_id, status="unknown", percent=0.0, message="Job not found")

    snapshot = ProgressSnapshot.from_job(job)
    cache.backfill_progress(snapshot)
    return _progress_response(snapshot, source="store")


def _progress_response(snapshot: ProgressSnapshot, source: str) -> ProgressResponse:
    return ProgressResponse(
        job_id=snapshot.job_id,
        status=snapshot.status.value,
        percent=snapshot.percent,
        message=snapshot.message,
        detail=snapshot.detail,
        source=source,
    )


def list_jobs(store: JobStore, cache: ProgressCache, owner_id: Optional[str] = None) -> JobListResponse:
    """
    Job summaries, newest first, for one owner or for everyone.

    Per-owner lists are cached; the cache entry is dropped whenever one of
    the owner's jobs transitions.
    """
    if owner_id:
        cached = cache.get_owner_jobs(owner_id)
        if cached is not None:
            try:
                summaries = [JobSummary.model_validate(item) for item in cached]
                return JobListResponse(jobs=summaries, total_count=len(summaries))
            except ValidationError:
                logger.warning(f"[Cache] Discarding malformed job list for owner {owner_id}")

    summaries = [JobSummary.from_job(job) for job in store.list_jobs(owner_id)]
    if owner_id:
        cache.set_owner_jobs(owner_id, [summary.model_dump(mode="json") for summary in summaries])
    return JobListResponse(jobs=summaries, total_count=len(summaries))


def get_job(store: JobStore, job_id: str) -> Job:
    """
    Full job record.

    Raises:
        JobNotFoundError: If the job does not exist
    """
    return store.get_job_or_raise(job_id)


def get_stats(store: JobStore) -> StatsResponse:
    """Count all jobs by status."""
    jobs = store.list_jobs()
    counts = {status: 0 for status in JobStatus}
    for job in jobs:
        counts[job.status] += 1
    return StatsResponse(
        total=len(jobs),
        pending=counts[JobStatus.PENDING],
        active=counts[JobStatus.PROCESSING],
        completed=counts[JobStatus.COMPLETED],
        failed=counts[JobStatus.FAILED],
    )


def get_download(store: JobStore, blobs: BlobStore, job_id: str, ttl_seconds: int = DEFAULT_DOWNLOAD_TTL) -> DownloadResponse:
    """
    Signed URL and suggested filename for a completed job's output.

    Raises:
        JobNotFoundError: If the job does not exist
        DownloadNotAvailableError: Job not completed, or its output is gone
    """
    job = store.get_job_or_raise(job_id)
    if job.status != JobStatus.COMPLETED or not job.output_ref:
        raise DownloadNotAvailableError(job_id, "Completed job not found")

    try:
        url = blobs.signed_url(job.output_ref, ttl_seconds, PROCESSED)
    except BlobNotFoundError:
        raise DownloadNotAvailableError(job_id, "Output file not found in storage")

    return DownloadResponse(job_id=job.id, url=url, filename=job.download_filename(), expires_in=ttl_seconds)

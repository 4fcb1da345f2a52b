"""
Monitoring server endpoints.

Read-only HTTP API for job state and progress visibility.
Observation only: no submission or control operations.

Components are taken from request.app.state.services (see bootstrap.py).
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Request

from ..jobs.errors import JobNotFoundError, JobStoreError
from ..jobs.models import Job
from ..storage.errors import BlobStoreError
from .errors import DownloadNotAvailableError
from .models import (
    CacheHealth,
    DownloadResponse,
    HealthResponse,
    JobListResponse,
    ProgressResponse,
    StatsResponse,
)
from . import queries


router = APIRouter(prefix="/monitor", tags=["monitoring"])


def _services(request: Request):
    return request.app.state.services


@router.get("/health", response_model=HealthResponse)
def health_check(request: Request):
    """
    Health check endpoint.

    Reports the progress cache state; a degraded cache does not make the
    service unhealthy.
    """
    cache = _services(request).cache
    return HealthResponse(status="ok", cache=CacheHealth(**cache.health_check()))


@router.get("/jobs", response_model=JobListResponse)
def list_jobs(request: Request, owner_id: Optional[str] = None):
    """
    List jobs, newest first, optionally for one owner.
    """
    services = _services(request)
    try:
        return queries.list_jobs(services.store, services.cache, owner_id)
    except JobStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/jobs/{job_id}", response_model=Job)
def get_job(job_id: str, request: Request):
    """
    Retrieve the full record of a job.

    Raises:
        404: If the job ID does not exist
    """
    try:
        return queries.get_job(_services(request).store, job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except JobStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/jobs/{job_id}/progress", response_model=ProgressResponse)
def get_progress(job_id: str, request: Request):
    """
    Poll a job's progress.

    Unknown jobs return status "unknown" with 200, matching what pollers
    expect while a job is still being created.
    """
    services = _services(request)
    try:
        return queries.get_progress(services.store, services.cache, job_id)
    except JobStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/jobs/{job_id}/download", response_model=DownloadResponse)
def get_download(job_id: str, request: Request):
    """
    Time-limited download link for a completed job.

    Raises:
        404: Unknown job, job not completed, or output missing
    """
    services = _services(request)
    try:
        return queries.get_download(
            services.store, services.blobs, job_id, services.settings.download_url_ttl
        )
    except (JobNotFoundError, DownloadNotAvailableError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except (JobStoreError, BlobStoreError) as e:
        raise HTTPException(status_code=503, detail=str(e))


@router.get("/stats", response_model=StatsResponse)
def get_stats(request: Request):
    """
    Job counts by status.
    """
    try:
        return queries.get_stats(_services(request).store)
    except JobStoreError as e:
        raise HTTPException(status_code=503, detail=str(e))

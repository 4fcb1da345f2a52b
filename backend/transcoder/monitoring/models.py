"""
Response models for monitoring API.

All responses are read-only views of job state.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict

from ..jobs.models import Bitrate, Job, JobStatus, ProgressDetail, QualityPreset, TargetFormat


class CacheHealth(BaseModel):
    """Progress cache reachability."""

    model_config = ConfigDict(extra="forbid")

    status: str  # healthy | degraded | unhealthy
    backend: str
    message: str


class HealthResponse(BaseModel):
    """Response for health check endpoint."""

    model_config = ConfigDict(extra="forbid")

    status: str = "ok"
    cache: Optional[CacheHealth] = None


class ProgressResponse(BaseModel):
    """
    Live progress of one job.

    status is "unknown" (percent 0, message "Job not found") for ids the
    Job Store does not know.
    """

    model_config = ConfigDict(extra="forbid")

    job_id: str
    status: str
    percent: float = 0.0
    message: Optional[str] = None
    detail: Optional[ProgressDetail] = None

    # Where the answer came from: "cache", "store" or "none"
    source: str = "none"


class JobSummary(BaseModel):
    """Summary view of a job for list endpoints."""

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str
    owner_id: str
    original_filename: Optional[str] = None

    # Targets
    target_resolution: str
    target_format: TargetFormat
    quality_preset: QualityPreset
    bitrate: Bitrate
    repeat_count: int

    # State
    status: JobStatus
    progress: float
    error_message: Optional[str] = None
    processing_seconds: Optional[float] = None

    # Timestamps
    created_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_job(cls, job: Job) -> "JobSummary":
        return cls.model_validate(job.model_dump(include=set(cls.model_fields)))


class JobListResponse(BaseModel):
    """Response for job list endpoint."""

    model_config = ConfigDict(extra="forbid")

    jobs: List[JobSummary]
    total_count: int


class StatsResponse(BaseModel):
    """Job counts by status."""

    model_config = ConfigDict(extra="forbid")

    total: int
    pending: int
    active: int  # processing
    completed: int
    failed: int


class DownloadResponse(BaseModel):
    """Time-limited link to a completed job's output."""

    model_config = ConfigDict(extra="forbid")

    job_id: str
    url: str
    filename: str
    expires_in: int

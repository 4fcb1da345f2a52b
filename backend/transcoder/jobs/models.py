"""
Job data models.

A Job is one user-requested conversion: a fixed source blob, fixed target
parameters, and a lifecycle status. The Job record in the Job Store is the
authoritative copy; queue messages and cache entries are projections of it.

All models use Pydantic for validation.
State transitions are validated externally (see state.py / lifecycle.py).
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Timezone-aware current time, used for every job timestamp."""
    return datetime.now(timezone.utc)


class JobStatus(str, Enum):
    """
    Job-level status.

    Lifecycle: PENDING → PROCESSING → COMPLETED | FAILED
    """

    PENDING = "pending"  # Created, waiting for a worker
    PROCESSING = "processing"  # Claimed by a worker, encoder running
    COMPLETED = "completed"  # Artifact uploaded, output_ref set
    FAILED = "failed"  # Classified failure, error_message set


class QualityPreset(str, Enum):
    """Encoder speed/quality preset, fastest first."""

    ULTRAFAST = "ultrafast"
    SUPERFAST = "superfast"
    VERYFAST = "veryfast"
    FASTER = "faster"
    FAST = "fast"
    MEDIUM = "medium"
    SLOW = "slow"
    SLOWER = "slower"
    VERYSLOW = "veryslow"


class Bitrate(str, Enum):
    """Allowed target video bitrates (ffmpeg notation)."""

    B500K = "500k"
    B1000K = "1000k"
    B2000K = "2000k"
    B4000K = "4000k"
    B8000K = "8000k"


class TargetFormat(str, Enum):
    """Output container formats. Each maps to one codec pair (see execution/formats.py)."""

    MP4 = "mp4"
    WEBM = "webm"


class ProgressDetail(BaseModel):
    """
    Free-form detail accompanying a progress percent.

    Populated from encoder progress events; all fields optional because
    stage transitions (e.g. "finalizing") carry no timemark.
    """

    model_config = ConfigDict(extra="forbid")

    stage: Optional[str] = None  # "encoding", "finalizing", ...
    iteration: Optional[int] = None
    iterations: Optional[int] = None
    timemark: Optional[str] = None  # HH:MM:SS.cc
    kbps: Optional[float] = None
    fps: Optional[float] = None
    message: Optional[str] = None


class Job(BaseModel):
    """
    A single conversion job.

    Invariants (enforced by the state machine, not by this model):
    - output_ref is set iff status == COMPLETED
    - error_message is set iff status == FAILED
    - progress reaches 100 immediately before COMPLETED
    """

    model_config = ConfigDict(extra="forbid")

    # Identity
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    owner_id: str

    # Immutable inputs
    source_ref: str  # Blob key in the "original" namespace
    original_filename: Optional[str] = None
    input_size_bytes: Optional[int] = None
    target_resolution: str  # WIDTHxHEIGHT
    target_format: TargetFormat
    quality_preset: QualityPreset = QualityPreset.MEDIUM
    bitrate: Bitrate = Bitrate.B1000K
    repeat_count: int = Field(default=1, ge=1)

    # State
    status: JobStatus = JobStatus.PENDING
    progress: float = 0.0
    progress_detail: ProgressDetail = Field(default_factory=ProgressDetail)

    # Outcome
    output_ref: Optional[str] = None  # Blob key in the "processed" namespace
    output_location: Optional[str] = None
    error_message: Optional[str] = None  # User-presentable
    error_detail: Optional[str] = None  # Raw diagnostic, never shown to users
    processing_seconds: Optional[float] = None

    # Claim bookkeeping: a fresh lease id is written on every processing claim
    lease_id: Optional[str] = None

    # Timestamps
    created_at: datetime = Field(default_factory=utcnow)
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in (JobStatus.COMPLETED, JobStatus.FAILED)

    @property
    def output_extension(self) -> str:
        return self.target_format.value

    def output_filename(self) -> str:
        """
        Deterministic name of the processed artifact.

        Derived only from job identity and targets, so a redelivered job
        overwrites the same blob instead of creating a second one.
        """
        return f"transcoded_{self.id}_{self.target_resolution}.{self.output_extension}"

    def download_filename(self) -> str:
        """Suggested filename for end-user downloads."""
        base = self.original_filename or self.id
        if "." in base:
            base = base.rsplit(".", 1)[0]
        repeat_suffix = f"_{self.repeat_count}x" if self.repeat_count > 1 else ""
        return f"transcoded_{base}_{self.target_resolution}{repeat_suffix}.{self.output_extension}"

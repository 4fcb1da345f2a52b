"""
Job submission.

Validates a conversion request, creates the pending job and enqueues it.
Validation happens entirely before the job is created: a rejected request
leaves no job record and no queue message behind.
"""

import logging
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from .models import Bitrate, Job, JobStatus, QualityPreset, TargetFormat
from .errors import JobValidationError
from .store import JobStore
from ..execution.formats import parse_resolution
from ..queue.base import JobQueue
from ..queue.models import QueueMessage

logger = logging.getLogger(__name__)

GB = 1024 ** 3
DEFAULT_MAX_INPUT_BYTES = 5 * GB

# Above this size the slowest preset is allowed but logged as risky
LARGE_INPUT_BYTES = 1 * GB


class JobRequest(BaseModel):
    """
    Raw conversion request.

    Fields are loosely typed on purpose: JobSubmissionService turns bad values
    into user-presentable JobValidationError messages.
    """

    model_config = ConfigDict(extra="forbid")

    owner_id: str
    source_ref: str
    target_resolution: str
    target_format: str
    quality_preset: str = QualityPreset.MEDIUM.value
    bitrate: str = Bitrate.B1000K.value
    repeat_count: Any = 1
    original_filename: Optional[str] = None
    input_size_bytes: Optional[int] = None


def _choices(enum_cls) -> str:
    return ", ".join(member.value for member in enum_cls)


class JobSubmissionService:
    """Creates and enqueues jobs."""

    def __init__(self, store: JobStore, queue: JobQueue, max_input_bytes: int = DEFAULT_MAX_INPUT_BYTES):
        self.store = store
        self.queue = queue
        self.max_input_bytes = max_input_bytes

    def validate(self, request: JobRequest) -> dict:
        """
        Validate a request and return the normalized job fields.

        Raises:
            JobValidationError: First problem found, with a user-facing message
        """
        if not request.source_ref or not request.target_resolution or not request.target_format:
            raise JobValidationError("source_ref, target_resolution, and target_format are required")

        try:
            target_format = TargetFormat(request.target_format)
        except ValueError:
            raise JobValidationError(
                f"Invalid target format. Valid options: {_choices(TargetFormat)}", field="target_format"
            )

        try:
            preset = QualityPreset(request.quality_preset)
        except ValueError:
            raise JobValidationError(
                f"Invalid quality preset. Valid options: {_choices(QualityPreset)}", field="quality_preset"
            )

        try:
            bitrate = Bitrate(request.bitrate)
        except ValueError:
            raise JobValidationError(f"Invalid bitrate. Valid options: {_choices(Bitrate)}", field="bitrate")

        repeat_count = _parse_repeat_count(request.repeat_count)

        try:
            parse_resolution(request.target_resolution)
        except ValueError as e:
            raise JobValidationError(str(e), field="target_resolution")

        self._check_size(request.input_size_bytes, preset)

        return {
            "owner_id": request.owner_id,
            "source_ref": request.source_ref,
            "original_filename": request.original_filename,
            "input_size_bytes": request.input_size_bytes,
            "target_resolution": request.target_resolution,
            "target_format": target_format,
            "quality_preset": preset,
            "bitrate": bitrate,
            "repeat_count": repeat_count,
        }

    def submit(self, request: JobRequest, enqueue: bool = True) -> Job:
        """
        Validate, create the pending job and (by default) enqueue it.

        Raises:
            JobValidationError: Request rejected; nothing was created
            JobStoreError: Job Store unavailable
            QueueError: Job created but could not be enqueued
        """
        fields = self.validate(request)
        job = self.store.create_job(**fields)
        logger.info(
            f"[Submit] Created job {job.id} for {job.owner_id}: "
            f"{job.target_resolution} {job.target_format.value} "
            f"{job.quality_preset.value} {job.bitrate.value} x{job.repeat_count}"
        )
        if enqueue:
            self._send(job)
        return job

    def enqueue(self, job_id: str) -> Job:
        """
        Enqueue an existing pending job.

        Raises:
            JobNotFoundError: Unknown job
            JobValidationError: Job is not pending
        """
        job = self.store.get_job_or_raise(job_id)
        if job.status != JobStatus.PENDING:
            raise JobValidationError("Job is not in pending status", field="status")
        self._check_size(job.input_size_bytes, job.quality_preset)
        self._send(job)
        return job

    def _send(self, job: Job) -> None:
        message_id = self.queue.send(QueueMessage.from_job(job))
        logger.info(f"[Submit] Enqueued job {job.id} (message {message_id})")

    def _check_size(self, size_bytes: Optional[int], preset: QualityPreset) -> None:
        if size_bytes is None:
            logger.debug("[Submit] No input size provided, skipping size limit check")
            return
        size_gb = size_bytes / GB
        if size_bytes > self.max_input_bytes:
            max_gb = self.max_input_bytes / GB
            raise JobValidationError(
                f"File too large ({size_gb:.2f}GB). Maximum supported: {max_gb:g}GB. "
                f"Try using 'fast' or 'ultrafast' preset for large files.",
                field="input_size_bytes",
            )
        if size_bytes > LARGE_INPUT_BYTES and preset == QualityPreset.VERYSLOW:
            logger.warning(
                f"[Submit] Large file ({size_gb:.2f}GB) with veryslow preset - may cause memory issues"
            )


def _parse_repeat_count(value: Any) -> int:
    message = "Invalid repeat count. Must be 1 or greater."
    if isinstance(value, bool):
        raise JobValidationError(message, field="repeat_count")
    try:
        count = int(value)
    except (TypeError, ValueError):
        raise JobValidationError(message, field="repeat_count")
    if count < 1 or (isinstance(value, float) and not value.is_integer()):
        raise JobValidationError(message, field="repeat_count")
    return count

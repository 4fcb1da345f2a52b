"""
Queue message envelope.

The message is a snapshot of the job's inputs, sufficient to run the job
without re-querying the Job Store. It is NOT authoritative: the worker
re-reads the job record before acting on it.

Wire format uses camelCase keys:
    {"jobId", "ownerId", "sourceRef", "targetResolution", "targetFormat",
     "qualityPreset", "bitrate", "repeatCount"}
"""

from dataclasses import dataclass
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..jobs.models import Bitrate, Job, QualityPreset, TargetFormat


class QueueMessage(BaseModel):
    """Job snapshot carried by the queue."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    # Older producers sent the job id as "id"
    job_id: str = Field(
        validation_alias=AliasChoices("jobId", "job_id", "id"),
        serialization_alias="jobId",
    )
    owner_id: str
    source_ref: str
    target_resolution: str
    target_format: TargetFormat
    quality_preset: QualityPreset = QualityPreset.MEDIUM
    bitrate: Bitrate = Bitrate.B1000K
    repeat_count: int = Field(default=1, ge=1)

    @classmethod
    def from_job(cls, job: Job) -> "QueueMessage":
        return cls(
            job_id=job.id,
            owner_id=job.owner_id,
            source_ref=job.source_ref,
            target_resolution=job.target_resolution,
            target_format=job.target_format,
            quality_preset=job.quality_preset,
            bitrate=job.bitrate,
            repeat_count=job.repeat_count,
        )

    def to_body(self) -> str:
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_body(cls, body: str) -> "QueueMessage":
        return cls.model_validate_json(body)


@dataclass
class ReceivedMessage:
    """A delivered message plus the handle needed to acknowledge it."""

    message_id: str
    receipt_handle: str
    body: str
    receive_count: int = 1
    sent_at: Optional[float] = None

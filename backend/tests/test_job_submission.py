"""
Tests for job submission.

A rejected request must leave no job and no queue message.
"""

import pytest

from transcoder.jobs.errors import JobValidationError
from transcoder.jobs.models import Bitrate, JobStatus, QualityPreset, TargetFormat
from transcoder.jobs.store import InMemoryJobStore
from transcoder.jobs.submission import GB, JobRequest, JobSubmissionService
from transcoder.queue.base import InMemoryJobQueue
from transcoder.queue.models import QueueMessage


def _request(**overrides):
    fields = dict(
        owner_id="user-1",
        source_ref="user-1/clip.mp4",
        target_resolution="640x360",
        target_format="mp4",
        quality_preset="medium",
        bitrate="1000k",
        repeat_count=1,
        original_filename="clip.mp4",
        input_size_bytes=10 * 1024 * 1024,
    )
    fields.update(overrides)
    return JobRequest(**fields)


class TestJobSubmission:
    """Validation, creation and enqueueing."""

    def setup_method(self):
        self.store = InMemoryJobStore()
        self.queue = InMemoryJobQueue()
        self.service = JobSubmissionService(self.store, self.queue)

    def _assert_nothing_created(self):
        assert self.store.count() == 0
        assert self.queue.depth() == 0

    def test_valid_request_creates_pending_job_and_message(self):
        job = self.service.submit(_request(repeat_count="3"))

        assert job.status == JobStatus.PENDING
        assert job.repeat_count == 3
        assert job.quality_preset == QualityPreset.MEDIUM
        assert job.bitrate == Bitrate.B1000K
        assert job.target_format == TargetFormat.MP4

        received = self.queue.receive(wait_seconds=0)
        message = QueueMessage.from_body(received.body)
        assert message.job_id == job.id
        assert message.repeat_count == 3

    def test_submit_without_enqueue(self):
        job = self.service.submit(_request(), enqueue=False)

        assert self.store.get_job(job.id) is not None
        assert self.queue.depth() == 0

    @pytest.mark.parametrize("overrides,expected", [
        ({"quality_preset": "blazing"}, "Invalid quality preset. Valid options: ultrafast, superfast"),
        ({"bitrate": "3000k"}, "Invalid bitrate. Valid options: 500k, 1000k, 2000k, 4000k, 8000k"),
        ({"repeat_count": 0}, "Invalid repeat count. Must be 1 or greater."),
        ({"repeat_count": "two"}, "Invalid repeat count. Must be 1 or greater."),
        ({"repeat_count": 1.5}, "Invalid repeat count. Must be 1 or greater."),
        ({"target_resolution": "1080p"}, "Invalid resolution '1080p'"),
        ({"target_resolution": "0x720"}, "Width and height must be positive"),
        ({"target_format": "avi"}, "Invalid target format. Valid options: mp4, webm"),
        ({"source_ref": ""}, "are required"),
    ])
    def test_invalid_requests_rejected(self, overrides, expected):
        with pytest.raises(JobValidationError) as exc_info:
            self.service.submit(_request(**overrides))

        assert expected in str(exc_info.value)
        self._assert_nothing_created()

    def test_oversized_input_rejected_with_preset_guidance(self):
        with pytest.raises(JobValidationError) as exc_info:
            self.service.submit(_request(input_size_bytes=6 * GB))

        message = str(exc_info.value)
        assert "File too large (6.00GB)" in message
        assert "Maximum supported: 5GB" in message
        assert "'fast' or 'ultrafast'" in message
        self._assert_nothing_created()

    def test_exactly_max_size_accepted(self):
        job = self.service.submit(_request(input_size_bytes=5 * GB))
        assert job.input_size_bytes == 5 * GB

    def test_large_veryslow_input_warns(self, caplog):
        with caplog.at_level("WARNING"):
            self.service.submit(_request(input_size_bytes=2 * GB, quality_preset="veryslow"))

        assert "veryslow preset" in caplog.text

    def test_missing_size_is_logged(self, caplog):
        with caplog.at_level("DEBUG"):
            job = self.service.submit(_request(input_size_bytes=None))

        assert job.input_size_bytes is None
        assert "No input size provided" in caplog.text

    def test_enqueue_requires_pending(self):
        job = self.service.submit(_request(), enqueue=False)
        self.store.update_job(job.id, {"status": JobStatus.PROCESSING})

        with pytest.raises(JobValidationError, match="not in pending status"):
            self.service.enqueue(job.id)

    def test_enqueue_pending_job(self):
        job = self.service.submit(_request(), enqueue=False)

        self.service.enqueue(job.id)

        assert self.queue.depth() == 1

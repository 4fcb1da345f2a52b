"""
Tests for the Job Queue.

The in-memory queue must reproduce the at-least-once semantics the worker
relies on: unacknowledged messages come back after the visibility timeout,
and repeatedly failing messages end up in dead letters.
"""

import json

import pytest
from botocore.exceptions import ClientError

from transcoder.jobs.models import Bitrate, QualityPreset, TargetFormat
from transcoder.queue.base import InMemoryJobQueue
from transcoder.queue.errors import QueueError
from transcoder.queue.models import QueueMessage
from transcoder.queue.sqs import SqsJobQueue


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _message(job_id="job-1"):
    return QueueMessage(
        job_id=job_id,
        owner_id="user-1",
        source_ref="user-1/clip.mp4",
        target_resolution="640x360",
        target_format=TargetFormat.MP4,
        quality_preset=QualityPreset.FAST,
        bitrate=Bitrate.B2000K,
        repeat_count=3,
    )


class TestQueueMessage:
    """Wire format."""

    def test_body_uses_camel_case_keys(self):
        body = json.loads(_message().to_body())

        assert body == {
            "jobId": "job-1",
            "ownerId": "user-1",
            "sourceRef": "user-1/clip.mp4",
            "targetResolution": "640x360",
            "targetFormat": "mp4",
            "qualityPreset": "fast",
            "bitrate": "2000k",
            "repeatCount": 3,
        }

    def test_parse_body(self):
        message = QueueMessage.from_body(_message().to_body())
        assert message == _message()

    def test_legacy_id_key_accepted(self):
        body = json.dumps({
            "id": "job-9",
            "ownerId": "u",
            "sourceRef": "s",
            "targetResolution": "640x360",
            "targetFormat": "webm",
        })
        message = QueueMessage.from_body(body)
        assert message.job_id == "job-9"
        assert message.repeat_count == 1


class TestInMemoryJobQueue:
    """Visibility timeout and dead-letter behaviour."""

    def setup_method(self):
        self.clock = FakeClock()
        self.queue = InMemoryJobQueue(visibility_timeout=30, max_receives=3, clock=self.clock)

    def test_empty_receive_returns_none(self):
        assert self.queue.receive(wait_seconds=0) is None

    def test_receive_hides_message_until_timeout(self):
        self.queue.send(_message())

        first = self.queue.receive(wait_seconds=0)
        assert first.receive_count == 1
        assert self.queue.receive(wait_seconds=0) is None

        self.clock.now += 31
        second = self.queue.receive(wait_seconds=0)
        assert second.message_id == first.message_id
        assert second.receive_count == 2
        assert second.receipt_handle != first.receipt_handle

    def test_deleted_message_never_returns(self):
        self.queue.send(_message())
        received = self.queue.receive(wait_seconds=0)

        self.queue.delete(received)

        self.clock.now += 100
        assert self.queue.receive(wait_seconds=0) is None
        assert self.queue.depth() == 0

    def test_stale_receipt_rejected(self):
        self.queue.send(_message())
        first = self.queue.receive(wait_seconds=0)
        self.clock.now += 31
        self.queue.receive(wait_seconds=0)

        with pytest.raises(QueueError):
            self.queue.delete(first)

    def test_dead_letter_after_max_receives(self):
        self.queue.send(_message())
        for _ in range(3):
            assert self.queue.receive(wait_seconds=0) is not None
            self.clock.now += 31

        assert self.queue.receive(wait_seconds=0) is None
        assert len(self.queue.dead_letters) == 1
        assert self.queue.dead_letters[0].receive_count == 3

    def test_fifo_order(self):
        self.queue.send(_message("a"))
        self.queue.send(_message("b"))

        first = QueueMessage.from_body(self.queue.receive(wait_seconds=0).body)
        second = QueueMessage.from_body(self.queue.receive(wait_seconds=0).body)
        assert [first.job_id, second.job_id] == ["a", "b"]


class FakeSqsClient:
    def __init__(self, messages=None, fail=False):
        self.messages = messages or []
        self.fail = fail
        self.calls = []

    def _maybe_fail(self, op):
        if self.fail:
            raise ClientError({"Error": {"Code": "AWS.SimpleQueueService.NonExistentQueue", "Message": "gone"}}, op)

    def send_message(self, **kwargs):
        self._maybe_fail("SendMessage")
        self.calls.append(("send_message", kwargs))
        return {"MessageId": "m-1"}

    def receive_message(self, **kwargs):
        self._maybe_fail("ReceiveMessage")
        self.calls.append(("receive_message", kwargs))
        return {"Messages": self.messages} if self.messages else {}

    def delete_message(self, **kwargs):
        self._maybe_fail("DeleteMessage")
        self.calls.append(("delete_message", kwargs))


class TestSqsJobQueue:
    """SQS backend with a fake client."""

    URL = "https://sqs.ap-southeast-2.amazonaws.com/123/transcode"

    def test_send(self):
        client = FakeSqsClient()
        queue = SqsJobQueue(self.URL, client=client)

        assert queue.send(_message()) == "m-1"

        _, kwargs = client.calls[0]
        assert kwargs["QueueUrl"] == self.URL
        assert json.loads(kwargs["MessageBody"])["jobId"] == "job-1"

    def test_receive_long_polls_one_message(self):
        client = FakeSqsClient(messages=[{
            "MessageId": "m-1",
            "ReceiptHandle": "rh-1",
            "Body": _message().to_body(),
            "Attributes": {"ApproximateReceiveCount": "2", "SentTimestamp": "1700000000000"},
        }])
        queue = SqsJobQueue(self.URL, client=client)

        received = queue.receive(wait_seconds=20)

        _, kwargs = client.calls[0]
        assert kwargs["MaxNumberOfMessages"] == 1
        assert kwargs["WaitTimeSeconds"] == 20
        assert kwargs["MessageAttributeNames"] == ["All"]
        assert received.receipt_handle == "rh-1"
        assert received.receive_count == 2
        assert received.sent_at == 1700000000.0

    def test_wait_is_capped_at_twenty_seconds(self):
        client = FakeSqsClient()
        SqsJobQueue(self.URL, client=client).receive(wait_seconds=60)
        assert client.calls[0][1]["WaitTimeSeconds"] == 20

    def test_empty_receive(self):
        assert SqsJobQueue(self.URL, client=FakeSqsClient()).receive(wait_seconds=1) is None

    def test_errors_wrapped(self):
        queue = SqsJobQueue(self.URL, client=FakeSqsClient(fail=True))
        with pytest.raises(QueueError):
            queue.receive(wait_seconds=1)
        with pytest.raises(QueueError):
            queue.send(_message())

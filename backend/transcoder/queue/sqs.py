"""
Amazon SQS Job Queue backend.

Visibility timeout and dead-letter (redrive) policy are configured on the
queue itself; this backend only sends, long-polls and deletes.
"""

import logging
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .base import JobQueue
from .errors import QueueError
from .models import QueueMessage, ReceivedMessage

logger = logging.getLogger(__name__)

# SQS caps a single long poll at 20 seconds
MAX_WAIT_SECONDS = 20


class SqsJobQueue(JobQueue):
    """Job queue backed by an SQS standard queue."""

    def __init__(self, queue_url: str, region_name: Optional[str] = None, client=None):
        self.queue_url = queue_url
        self._client = client or boto3.client("sqs", region_name=region_name)

    def send(self, message: QueueMessage) -> str:
        try:
            result = self._client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=message.to_body(),
                MessageAttributes={
                    "jobId": {"DataType": "String", "StringValue": message.job_id},
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueError(f"Failed to enqueue job {message.job_id}: {e}") from e
        logger.info(f"[Queue] Enqueued job {message.job_id} as {result['MessageId']}")
        return result["MessageId"]

    def receive(self, wait_seconds: float) -> Optional[ReceivedMessage]:
        try:
            result = self._client.receive_message(
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=1,
                WaitTimeSeconds=int(min(max(wait_seconds, 0), MAX_WAIT_SECONDS)),
                MessageAttributeNames=["All"],
                AttributeNames=["ApproximateReceiveCount", "SentTimestamp"],
            )
        except (BotoCoreError, ClientError) as e:
            raise QueueError(f"Failed to poll {self.queue_url}: {e}") from e

        messages = result.get("Messages") or []
        if not messages:
            return None

        raw = messages[0]
        attributes = raw.get("Attributes", {})
        sent_ms = attributes.get("SentTimestamp")
        return ReceivedMessage(
            message_id=raw["MessageId"],
            receipt_handle=raw["ReceiptHandle"],
            body=raw["Body"],
            receive_count=int(attributes.get("ApproximateReceiveCount", 1)),
            sent_at=int(sent_ms) / 1000.0 if sent_ms else None,
        )

    def delete(self, message: ReceivedMessage) -> None:
        try:
            self._client.delete_message(QueueUrl=self.queue_url, ReceiptHandle=message.receipt_handle)
        except (BotoCoreError, ClientError) as e:
            raise QueueError(f"Failed to delete message {message.message_id}: {e}") from e

"""
Job queue: at-least-once delivery of job snapshots to workers.
"""

from .errors import QueueError
from .models import QueueMessage, ReceivedMessage
from .base import JobQueue, InMemoryJobQueue

__all__ = [
    "QueueError",
    "QueueMessage",
    "ReceivedMessage",
    "JobQueue",
    "InMemoryJobQueue",
]

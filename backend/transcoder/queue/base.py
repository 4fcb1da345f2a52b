"""
Job Queue interface and in-memory backend.

Delivery is at-least-once: a received message stays invisible for the
visibility timeout and is redelivered unless deleted (acknowledged) before
the timeout expires. The worker acknowledges only after a job completes.

The in-memory queue reproduces SQS semantics (visibility timeout, receive
count, dead-letter threshold) for local runs and tests.
"""

import itertools
import logging
import threading
import time
import uuid
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Dict, List, Optional

from .errors import QueueError
from .models import QueueMessage, ReceivedMessage

logger = logging.getLogger(__name__)


class JobQueue(ABC):
    """Abstract at-least-once job queue."""

    @abstractmethod
    def send(self, message: QueueMessage) -> str:
        """Enqueue a message. Returns the message id."""
        pass

    @abstractmethod
    def receive(self, wait_seconds: float) -> Optional[ReceivedMessage]:
        """Long-poll for at most one message, blocking up to wait_seconds."""
        pass

    @abstractmethod
    def delete(self, message: ReceivedMessage) -> None:
        """Acknowledge a message so it is never redelivered."""
        pass


@dataclass
class _Entry:
    message_id: str
    body: str
    sent_at: float
    receive_count: int = 0
    receipt_handle: Optional[str] = None
    visible_at: float = 0.0


@dataclass
class _DeadLetter:
    message_id: str
    body: str
    receive_count: int
    dead_lettered_at: float = field(default_factory=time.time)


class InMemoryJobQueue(JobQueue):
    """
    Process-local queue with visibility timeout and dead-letter threshold.

    A message received max_receives times without being deleted is moved to
    dead_letters instead of being delivered again.
    """

    def __init__(
        self,
        visibility_timeout: float = 300.0,
        max_receives: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.visibility_timeout = visibility_timeout
        self.max_receives = max_receives
        self._clock = clock
        self._ready: Deque[_Entry] = deque()
        # receipt_handle -> entry
        self._in_flight: Dict[str, _Entry] = {}
        self.dead_letters: List[_DeadLetter] = []
        self._ids = itertools.count(1)
        self._cond = threading.Condition()

    def send(self, message: QueueMessage) -> str:
        entry = _Entry(
            message_id=f"msg-{next(self._ids)}",
            body=message.to_body(),
            sent_at=time.time(),
        )
        with self._cond:
            self._ready.append(entry)
            self._cond.notify()
        logger.debug(f"[Queue] Sent {entry.message_id} for job {message.job_id}")
        return entry.message_id

    def receive(self, wait_seconds: float) -> Optional[ReceivedMessage]:
        deadline = time.monotonic() + max(0.0, wait_seconds)
        with self._cond:
            while True:
                self._requeue_expired()
                entry = self._next_deliverable()
                if entry is not None:
                    return self._deliver(entry)
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(timeout=min(remaining, 0.5))

    def delete(self, message: ReceivedMessage) -> None:
        with self._cond:
            entry = self._in_flight.pop(message.receipt_handle, None)
        if entry is None:
            # Receipt handle expired: the message was redelivered to someone else
            raise QueueError(f"Receipt handle is no longer valid for {message.message_id}")
        logger.debug(f"[Queue] Deleted {message.message_id}")

    def depth(self) -> int:
        """Number of messages waiting or in flight."""
        with self._cond:
            return len(self._ready) + len(self._in_flight)

    def _requeue_expired(self) -> None:
        now = self._clock()
        expired = [h for h, e in self._in_flight.items() if e.visible_at <= now]
        for handle in expired:
            entry = self._in_flight.pop(handle)
            entry.receipt_handle = None
            logger.info(f"[Queue] Visibility timeout expired for {entry.message_id}, redelivering")
            self._ready.append(entry)

    def _next_deliverable(self) -> Optional[_Entry]:
        while self._ready:
            entry = self._ready.popleft()
            if self.max_receives is not None and entry.receive_count >= self.max_receives:
                logger.warning(
                    f"[Queue] {entry.message_id} reached {entry.receive_count} receives, moving to dead letters"
                )
                self.dead_letters.append(_DeadLetter(entry.message_id, entry.body, entry.receive_count))
                continue
            return entry
        return None

    def _deliver(self, entry: _Entry) -> ReceivedMessage:
        entry.receive_count += 1
        entry.receipt_handle = uuid.uuid4().hex
        entry.visible_at = self._clock() + self.visibility_timeout
        self._in_flight[entry.receipt_handle] = entry
        return ReceivedMessage(
            message_id=entry.message_id,
            receipt_handle=entry.receipt_handle,
            body=entry.body,
            receive_count=entry.receive_count,
            sent_at=entry.sent_at,
        )

"""
Worker loop.

Long-polls the Job Queue for one message at a time, runs the job and
acknowledges (deletes) the message only after the job is completed.

Outcomes per message:
- completed             → message deleted
- already terminal      → duplicate delivery, message deleted, job untouched
- job failure           → job marked failed, message NOT deleted
  (includes a source blob that no longer exists)
- transient infra error → job left as is, message NOT deleted
  (JobStoreError, BlobStoreError, LeaseLostError)

Undeleted messages reappear after the queue's visibility timeout; the
queue's dead-letter policy bounds how often that happens.

One job at a time per worker. current_job_id is owned by the loop and only
used for graceful shutdown bookkeeping: a shutdown request lets the current
job finish and stops claiming new ones.
"""

import logging
import signal
import time
from pathlib import Path
from typing import Callable, Optional

from pydantic import ValidationError

from ..cache.progress import ProgressCache
from ..execution.errors import EncodeError, ExecutionError
from ..execution.formats import get_format
from ..execution.orchestrator import MultiIterationOrchestrator
from ..jobs.errors import JobError, JobStoreError, LeaseLostError
from ..jobs.lifecycle import JobLifecycle
from ..jobs.models import Job, JobStatus
from ..jobs.store import JobStore
from ..queue.base import JobQueue
from ..queue.errors import QueueError
from ..queue.models import QueueMessage, ReceivedMessage
from ..storage.blobs import ORIGINAL, PROCESSED, BlobStore
from ..storage.errors import BlobNotFoundError, BlobStoreError
from .progress import DEFAULT_STORE_INTERVAL, ProgressReporter

logger = logging.getLogger(__name__)

DEFAULT_WAIT_SECONDS = 20
DEFAULT_IDLE_SLEEP = 1.0
DEFAULT_INPUT_URL_TTL = 7200

TRANSIENT_ERRORS = (JobStoreError, BlobStoreError, LeaseLostError)

UNEXPECTED_FAILURE_MESSAGE = "Transcoding failed due to an unexpected error."
SOURCE_MISSING_MESSAGE = "Source file not found in storage."


class TranscodeWorker:
    """Single-job-at-a-time queue consumer."""

    def __init__(
        self,
        queue: JobQueue,
        store: JobStore,
        lifecycle: JobLifecycle,
        blobs: BlobStore,
        cache: ProgressCache,
        orchestrator: MultiIterationOrchestrator,
        wait_seconds: float = DEFAULT_WAIT_SECONDS,
        idle_sleep: float = DEFAULT_IDLE_SLEEP,
        input_url_ttl: int = DEFAULT_INPUT_URL_TTL,
        progress_store_interval: float = DEFAULT_STORE_INTERVAL,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.queue = queue
        self.store = store
        self.lifecycle = lifecycle
        self.blobs = blobs
        self.cache = cache
        self.orchestrator = orchestrator
        self.wait_seconds = wait_seconds
        self.idle_sleep = idle_sleep
        self.input_url_ttl = input_url_ttl
        self.progress_store_interval = progress_store_interval
        self._sleep = sleep

        self.current_job_id: Optional[str] = None
        self._stopping = False

    # Lifecycle

    def request_shutdown(self) -> None:
        """Stop after the current job (if any) finishes."""
        if self.current_job_id:
            logger.info(f"[Worker] Shutdown requested, finishing job {self.current_job_id} first")
        else:
            logger.info("[Worker] Shutdown requested")
        self._stopping = True

    @property
    def stopping(self) -> bool:
        return self._stopping

    def install_signal_handlers(self) -> None:
        """Route SIGTERM and SIGINT to a graceful shutdown."""

        def handler(signum, frame):
            logger.info(f"[Worker] Received {signal.Signals(signum).name}")
            self.request_shutdown()

        signal.signal(signal.SIGTERM, handler)
        signal.signal(signal.SIGINT, handler)

    def run(self, max_polls: Optional[int] = None) -> int:
        """
        Poll until shutdown is requested (or max_polls polls were made).

        Returns:
            Number of messages handled
        """
        logger.info(f"[Worker] Started (long-poll {self.wait_seconds}s, idle sleep {self.idle_sleep}s)")
        handled = 0
        polls = 0
        while not self._stopping:
            received = self.poll_once()
            polls += 1
            if received:
                handled += 1
            if max_polls is not None and polls >= max_polls:
                break
            if not received and not self._stopping:
                self._sleep(self.idle_sleep)
        logger.info(f"[Worker] Stopped after handling {handled} message(s)")
        return handled

    def poll_once(self) -> bool:
        """
        Long-poll for one message and handle it.

        Returns:
            True if a message was received
        """
        try:
            received = self.queue.receive(self.wait_seconds)
        except QueueError as e:
            logger.error(f"[Worker] Queue poll failed: {e}")
            return False
        if received is None:
            return False
        self.handle_message(received)
        return True

    # Message handling

    def handle_message(self, received: ReceivedMessage) -> bool:
        """
        Process one delivered message.

        Returns:
            True if the message was acknowledged
        """
        try:
            message = QueueMessage.from_body(received.body)
        except ValidationError as e:
            logger.error(f"[Worker] Malformed message {received.message_id}, leaving for dead-letter: {e}")
            return False

        try:
            job = self.store.get_job(message.job_id)
        except JobStoreError as e:
            logger.warning(f"[Worker] Could not load job {message.job_id}, will retry: {e}")
            return False

        if job is None:
            logger.error(f"[Worker] Job {message.job_id} not found, leaving message {received.message_id} for dead-letter")
            return False

        if job.is_terminal:
            logger.info(
                f"[Worker] Job {job.id} already {job.status.value} "
                f"(delivery #{received.receive_count}), acknowledging duplicate"
            )
            return self._acknowledge(received)

        logger.info(
            f"[Worker] Processing job {job.id}: {job.target_resolution} {job.target_format.value} "
            f"{job.quality_preset.value} {job.bitrate.value} x{job.repeat_count} "
            f"(delivery #{received.receive_count})"
        )

        self.current_job_id = job.id
        started = time.monotonic()
        output_path: Optional[Path] = None
        try:
            job = self.lifecycle.transition(job, JobStatus.PROCESSING)
            try:
                input_url = self.blobs.signed_url(job.source_ref, self.input_url_ttl, ORIGINAL)
            except BlobNotFoundError as e:
                self._fail(job, e, time.monotonic() - started)
                return False

            reporter = ProgressReporter(job, self.store, self.cache, store_interval=self.progress_store_interval)
            output_path = self.orchestrator.run(job, input_url, on_progress=reporter)

            upload = self.blobs.upload(
                output_path.read_bytes(),
                job.output_filename(),
                category=PROCESSED,
                content_type=get_format(job.target_format).content_type,
                owner_id=job.owner_id,
            )

            current = self.lifecycle.verify_lease(job)
            job = self.lifecycle.transition(
                current,
                JobStatus.COMPLETED,
                output_ref=upload.key,
                output_location=upload.location,
                progress=100.0,
                processing_seconds=time.monotonic() - started,
            )
        except TRANSIENT_ERRORS as e:
            logger.warning(f"[Worker] Job {job.id} interrupted by infrastructure error, leaving for redelivery: {e}")
            return False
        except Exception as e:
            self._fail(job, e, time.monotonic() - started)
            return False
        finally:
            self.current_job_id = None
            if output_path is not None:
                output_path.unlink(missing_ok=True)

        logger.info(f"[Worker] Job {job.id} completed in {job.processing_seconds}s -> {job.output_ref}")
        return self._acknowledge(received)

    def _fail(self, job: Job, error: Exception, elapsed: float) -> None:
        if isinstance(error, EncodeError):
            message, detail = error.user_message, error.detail or str(error)
        elif isinstance(error, BlobNotFoundError):
            message, detail = SOURCE_MISSING_MESSAGE, str(error)
        elif isinstance(error, ExecutionError):
            message, detail = str(error), str(error)
        else:
            message, detail = UNEXPECTED_FAILURE_MESSAGE, f"{type(error).__name__}: {error}"

        logger.error(f"[Worker] Job {job.id} failed: {message}\n{detail}")

        try:
            current = self.lifecycle.verify_lease(job)
            self.lifecycle.transition(
                current,
                JobStatus.FAILED,
                error_message=message,
                error_detail=detail,
                processing_seconds=elapsed,
            )
        except JobError as e:
            logger.error(f"[Worker] Could not record failure for job {job.id}: {e}")

    def _acknowledge(self, received: ReceivedMessage) -> bool:
        try:
            self.queue.delete(received)
        except QueueError as e:
            # Redelivery will find the job terminal and acknowledge then
            logger.warning(f"[Worker] Could not delete message {received.message_id}: {e}")
            return False
        return True

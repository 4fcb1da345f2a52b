"""
Progress reporting for a running job.

Every event is written to the Progress Cache (cheap, short TTL); the Job
Store only gets a write every store_interval seconds so polling load never
turns into write load on the authoritative record.

Percent is clamped to be non-decreasing within one attempt.
"""

import logging
import time
from typing import Callable, Optional

from ..cache.progress import ProgressCache, ProgressSnapshot
from ..jobs.errors import JobStoreError
from ..jobs.models import Job, JobStatus, ProgressDetail
from ..jobs.store import JobStore

logger = logging.getLogger(__name__)

DEFAULT_STORE_INTERVAL = 5.0


class ProgressReporter:
    """Callable passed to the orchestrator as its progress callback."""

    def __init__(
        self,
        job: Job,
        store: JobStore,
        cache: ProgressCache,
        store_interval: float = DEFAULT_STORE_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.job_id = job.id
        self.store = store
        self.cache = cache
        self.store_interval = store_interval
        self._clock = clock
        self.percent = job.progress
        self.detail = job.progress_detail
        self._last_store_write: Optional[float] = None

    def __call__(self, percent: float, detail: ProgressDetail) -> None:
        percent = round(max(self.percent, min(100.0, percent)), 1)
        self.percent = percent
        self.detail = detail

        self.cache.set_progress(
            ProgressSnapshot(
                job_id=self.job_id,
                status=JobStatus.PROCESSING,
                percent=percent,
                message=detail.message,
                detail=detail,
            )
        )

        now = self._clock()
        if self._last_store_write is None or now - self._last_store_write >= self.store_interval or percent >= 100.0:
            self._write_store(now)

    def _write_store(self, now: float) -> None:
        self._last_store_write = now
        try:
            self.store.update_job(self.job_id, {"progress": self.percent, "progress_detail": self.detail})
        except JobStoreError as e:
            # Progress is advisory; the final transition surfaces a lasting outage
            logger.warning(f"[Worker] Could not persist progress for job {self.job_id}: {e}")

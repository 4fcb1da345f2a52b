"""
Progress Cache.

A short-TTL key/value side channel so that status polling does not hit the
Job Store on every request. The cache is never authoritative and is safe to
lose: every operation is best-effort. A backend outage degrades to cache
misses (reads return None, writes return False) and is logged, never raised.

Backends implement four raw operations (_get_raw, _set_raw, _add_raw,
_delete_raw) and raise CacheBackendError on failure; the typed methods on
ProgressCache handle serialization and degradation.
"""

import json
import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ..jobs.models import Job, JobStatus, ProgressDetail, utcnow

logger = logging.getLogger(__name__)

KEY_PREFIX = "transcoder"

# Cache TTL values (in seconds)
DEFAULT_PROGRESS_TTL = 300
DEFAULT_LIST_TTL = 600


class CacheBackendError(Exception):
    """Raised by cache backends; never escapes ProgressCache."""
    pass


class ProgressSnapshot(BaseModel):
    """Cheap projection of a job's live status."""

    model_config = ConfigDict(extra="forbid")

    job_id: str
    status: JobStatus
    percent: float = 0.0
    message: Optional[str] = None
    detail: ProgressDetail = Field(default_factory=ProgressDetail)
    updated_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_job(cls, job: Job) -> "ProgressSnapshot":
        """Project a job record into the cached shape."""
        if job.status == JobStatus.FAILED:
            message = job.error_message
        else:
            message = job.progress_detail.message or _DEFAULT_MESSAGES[job.status]
        return cls(
            job_id=job.id,
            status=job.status,
            percent=job.progress,
            message=message,
            detail=job.progress_detail,
        )


_DEFAULT_MESSAGES = {
    JobStatus.PENDING: "Waiting for a worker...",
    JobStatus.PROCESSING: "Processing...",
    JobStatus.COMPLETED: "Transcoding complete!",
    JobStatus.FAILED: "Transcoding failed.",
}


def cache_key(kind: str, *parts: str) -> str:
    return ":".join([KEY_PREFIX, kind, *[p for p in parts if p]])


class ProgressCache(ABC):
    """Best-effort progress cache."""

    def __init__(self, progress_ttl: int = DEFAULT_PROGRESS_TTL, list_ttl: int = DEFAULT_LIST_TTL):
        self.progress_ttl = progress_ttl
        self.list_ttl = list_ttl

    @property
    def backend_name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def _get_raw(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def _set_raw(self, key: str, value: str, ttl: int) -> None:
        pass

    @abstractmethod
    def _add_raw(self, key: str, value: str, ttl: int) -> bool:
        """Store value only if key is absent. Returns True if stored."""
        pass

    @abstractmethod
    def _delete_raw(self, key: str) -> None:
        pass

    def _ping(self) -> None:
        """Raise CacheBackendError if the backend is unreachable."""
        pass

    # Basic operations (graceful degradation)

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._get_raw(key)
        except CacheBackendError as e:
            logger.warning(f"[Cache] GET failed for {key}: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning(f"[Cache] Discarding undecodable value for {key}")
            return None

    def set(self, key: str, value: Any, ttl: int) -> bool:
        try:
            self._set_raw(key, json.dumps(value), ttl)
            return True
        except CacheBackendError as e:
            logger.warning(f"[Cache] SET failed for {key}: {e}")
            return False

    def add(self, key: str, value: Any, ttl: int) -> bool:
        try:
            return self._add_raw(key, json.dumps(value), ttl)
        except CacheBackendError as e:
            logger.warning(f"[Cache] ADD failed for {key}: {e}")
            return False

    def delete(self, key: str) -> bool:
        try:
            self._delete_raw(key)
            return True
        except CacheBackendError as e:
            logger.warning(f"[Cache] DELETE failed for {key}: {e}")
            return False

    # Job progress

    def get_progress(self, job_id: str) -> Optional[ProgressSnapshot]:
        data = self.get(cache_key("job", "progress", job_id))
        if data is None:
            return None
        try:
            return ProgressSnapshot.model_validate(data)
        except ValidationError:
            logger.warning(f"[Cache] Discarding malformed progress entry for job {job_id}")
            return None

    def set_progress(self, snapshot: ProgressSnapshot, ttl: Optional[int] = None) -> bool:
        return self.set(
            cache_key("job", "progress", snapshot.job_id),
            snapshot.model_dump(mode="json"),
            ttl or self.progress_ttl,
        )

    def backfill_progress(self, snapshot: ProgressSnapshot) -> bool:
        """
        Populate a missing progress entry from a Job Store read.

        Never replaces an existing entry: the store lags the live value, so a
        reporter write that landed after the store read must win.
        """
        return self.add(
            cache_key("job", "progress", snapshot.job_id),
            snapshot.model_dump(mode="json"),
            self.progress_ttl,
        )

    def invalidate_progress(self, job_id: str) -> bool:
        return self.delete(cache_key("job", "progress", job_id))

    # Per-owner job lists

    def get_owner_jobs(self, owner_id: str) -> Optional[List[Dict[str, Any]]]:
        return self.get(cache_key("owner", "jobs", owner_id))

    def set_owner_jobs(self, owner_id: str, jobs: List[Dict[str, Any]]) -> bool:
        return self.set(cache_key("owner", "jobs", owner_id), jobs, self.list_ttl)

    def invalidate_owner_jobs(self, owner_id: str) -> bool:
        return self.delete(cache_key("owner", "jobs", owner_id))

    def health_check(self) -> Dict[str, Any]:
        try:
            self._ping()
        except CacheBackendError as e:
            return {"status": "unhealthy", "backend": self.backend_name, "message": str(e)}
        return {"status": "healthy", "backend": self.backend_name, "message": "Cache is reachable"}


class NullProgressCache(ProgressCache):
    """No-op cache: every read misses, every poll falls back to the Job Store."""

    def _get_raw(self, key: str) -> Optional[str]:
        return None

    def _set_raw(self, key: str, value: str, ttl: int) -> None:
        pass

    def _add_raw(self, key: str, value: str, ttl: int) -> bool:
        return False

    def _delete_raw(self, key: str) -> None:
        pass

    def health_check(self) -> Dict[str, Any]:
        return {"status": "degraded", "backend": self.backend_name, "message": "Caching disabled"}


class InMemoryProgressCache(ProgressCache):
    """Process-local TTL cache for single-process runs and tests."""

    def __init__(self, progress_ttl: int = DEFAULT_PROGRESS_TTL, list_ttl: int = DEFAULT_LIST_TTL, clock=time.monotonic):
        super().__init__(progress_ttl, list_ttl)
        self._clock = clock
        # key -> (expires_at, value)
        self._entries: Dict[str, Tuple[float, str]] = {}
        self._lock = threading.Lock()

    def _get_raw(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if expires_at <= self._clock():
                del self._entries[key]
                return None
            return value

    def _set_raw(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._entries[key] = (self._clock() + ttl, value)

    def _add_raw(self, key: str, value: str, ttl: int) -> bool:
        with self._lock:
            entry = self._entries.get(key)
            now = self._clock()
            if entry is not None and entry[0] > now:
                return False
            self._entries[key] = (now + ttl, value)
            return True

    def _delete_raw(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

"""
Component wiring.

Builds the Job Store, Job Queue, Blob Store and Progress Cache selected by
Settings, and assembles the worker from them. AWS and Redis backends are
imported lazily so local runs never touch those clients.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from .cache.progress import InMemoryProgressCache, NullProgressCache, ProgressCache
from .config import Settings, get_settings
from .execution.encoder import EncodeStage
from .execution.orchestrator import MultiIterationOrchestrator
from .jobs.lifecycle import JobLifecycle
from .jobs.store import InMemoryJobStore, JobStore
from .jobs.submission import JobSubmissionService
from .queue.base import InMemoryJobQueue, JobQueue
from .storage.blobs import BlobStore, LocalBlobStore
from .worker.loop import TranscodeWorker

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Shared components for one process."""

    settings: Settings
    store: JobStore
    queue: JobQueue
    blobs: BlobStore
    cache: ProgressCache
    lifecycle: JobLifecycle
    submission: JobSubmissionService


def build_job_store(settings: Settings) -> JobStore:
    if settings.job_store_backend == "dynamodb":
        from .jobs.dynamodb import DynamoJobStore

        return DynamoJobStore(settings.dynamodb_table, region_name=settings.aws_region)
    return InMemoryJobStore()


def build_queue(settings: Settings) -> JobQueue:
    if settings.queue_backend == "sqs":
        if not settings.sqs_queue_url:
            raise ValueError("TRANSCODER_SQS_QUEUE_URL is required for the sqs queue backend")
        from .queue.sqs import SqsJobQueue

        return SqsJobQueue(settings.sqs_queue_url, region_name=settings.aws_region)
    return InMemoryJobQueue(visibility_timeout=settings.visibility_timeout, max_receives=settings.max_receives)


def build_blob_store(settings: Settings) -> BlobStore:
    if settings.blob_store_backend == "s3":
        from .storage.s3 import S3BlobStore

        return S3BlobStore(
            settings.s3_original_bucket,
            settings.s3_processed_bucket,
            region_name=settings.aws_region,
            endpoint_url=settings.s3_endpoint,
        )
    return LocalBlobStore(settings.storage_root)


def build_cache(settings: Settings) -> ProgressCache:
    if settings.cache_backend == "redis":
        from .cache.redis_cache import RedisProgressCache

        return RedisProgressCache(
            settings.redis_url,
            progress_ttl=settings.progress_cache_ttl,
            list_ttl=settings.job_list_cache_ttl,
        )
    if settings.cache_backend == "none":
        return NullProgressCache()
    return InMemoryProgressCache(progress_ttl=settings.progress_cache_ttl, list_ttl=settings.job_list_cache_ttl)


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or get_settings()
    store = build_job_store(settings)
    queue = build_queue(settings)
    cache = build_cache(settings)
    logger.info(
        f"[Bootstrap] store={settings.job_store_backend} queue={settings.queue_backend} "
        f"blobs={settings.blob_store_backend} cache={settings.cache_backend}"
    )
    return Services(
        settings=settings,
        store=store,
        queue=queue,
        blobs=build_blob_store(settings),
        cache=cache,
        lifecycle=JobLifecycle(store, cache),
        submission=JobSubmissionService(store, queue, max_input_bytes=settings.max_input_bytes),
    )


def build_worker(services: Services) -> TranscodeWorker:
    settings = services.settings
    orchestrator = MultiIterationOrchestrator(EncodeStage(ffmpeg_path=settings.ffmpeg_path), settings.work_dir)
    return TranscodeWorker(
        queue=services.queue,
        store=services.store,
        lifecycle=services.lifecycle,
        blobs=services.blobs,
        cache=services.cache,
        orchestrator=orchestrator,
        wait_seconds=settings.queue_wait_seconds,
        idle_sleep=settings.idle_poll_seconds,
        input_url_ttl=settings.input_url_ttl,
        progress_store_interval=settings.progress_store_interval,
    )

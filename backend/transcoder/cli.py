"""
Transcoder CLI - operator entrypoint.

Commands:
- worker:   run the queue-consuming worker loop
- submit:   validate, create and enqueue a job
- progress: print a job's current progress
- serve:    run the read-only monitoring HTTP API

Backends come from settings (TRANSCODER_* environment variables). The
in-memory backends live inside one process, so with the defaults
"submit --process-now" is the way to run a job end to end locally.

Exit Codes:
- 0: Success
- 1: Validation error
- 2: Job failed
- 4: System error (backend unavailable, file not found, etc.)
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .bootstrap import build_services, build_worker
from .config import get_settings
from .jobs.errors import JobError, JobValidationError
from .jobs.models import Bitrate, JobStatus, QualityPreset, TargetFormat
from .jobs.submission import JobRequest
from .monitoring import queries
from .queue.errors import QueueError
from .storage.blobs import ORIGINAL
from .storage.errors import BlobStoreError

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_VALIDATION = 1
EXIT_JOB_FAILED = 2
EXIT_SYSTEM = 4


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def cmd_worker(args: argparse.Namespace) -> int:
    services = build_services()
    worker = build_worker(services)
    if args.once:
        worker.run(max_polls=1)
        return EXIT_OK
    worker.install_signal_handlers()
    worker.run()
    return EXIT_OK


def cmd_submit(args: argparse.Namespace) -> int:
    services = build_services()

    upload_path = Path(args.upload) if args.upload else None
    if upload_path is not None and not upload_path.is_file():
        print(f"Error: File not found: {upload_path}", file=sys.stderr)
        return EXIT_SYSTEM
    if upload_path is None and not args.source_ref:
        print("Error: one of --source-ref or --upload is required", file=sys.stderr)
        return EXIT_VALIDATION

    request = JobRequest(
        owner_id=args.owner,
        source_ref=args.source_ref or upload_path.name,
        target_resolution=args.resolution,
        target_format=args.format,
        quality_preset=args.preset,
        bitrate=args.bitrate,
        repeat_count=args.repeat,
        original_filename=args.filename or (upload_path.name if upload_path else None),
        input_size_bytes=upload_path.stat().st_size if upload_path else args.size_bytes,
    )

    try:
        # Validate before uploading so oversized files are never read
        services.submission.validate(request)
        if upload_path is not None:
            upload = services.blobs.upload(
                upload_path.read_bytes(), upload_path.name, category=ORIGINAL, owner_id=args.owner
            )
            request = request.model_copy(update={"source_ref": upload.key})
        job = services.submission.submit(request)
    except JobValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_VALIDATION
    except (JobError, QueueError, BlobStoreError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_SYSTEM

    print(job.id)

    if not args.process_now:
        return EXIT_OK

    worker = build_worker(services)
    worker.run(max_polls=1)
    job = services.store.get_job_or_raise(job.id)
    print(json.dumps(queries.get_progress(services.store, services.cache, job.id).model_dump(mode="json"), indent=2))
    return EXIT_OK if job.status == JobStatus.COMPLETED else EXIT_JOB_FAILED


def cmd_progress(args: argparse.Namespace) -> int:
    services = build_services()
    try:
        progress = queries.get_progress(services.store, services.cache, args.job_id)
    except JobError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_SYSTEM
    print(json.dumps(progress.model_dump(mode="json"), indent=2))
    return EXIT_OK


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from .main import create_app

    settings = get_settings()
    uvicorn.run(
        create_app(),
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level=settings.log_level.lower(),
    )
    return EXIT_OK


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="transcoder",
        description="Transcoding job pipeline - worker and operator commands",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    parser_worker = subparsers.add_parser("worker", help="Run the worker loop")
    parser_worker.add_argument(
        "--once",
        action="store_true",
        help="Poll the queue once, handle at most one job, then exit",
    )
    parser_worker.set_defaults(func=cmd_worker)

    parser_submit = subparsers.add_parser("submit", help="Create and enqueue a transcoding job")
    parser_submit.add_argument("--owner", required=True, help="Owner id")
    source = parser_submit.add_mutually_exclusive_group()
    source.add_argument("--source-ref", help="Key of an already-uploaded original blob")
    source.add_argument("--upload", metavar="PATH", help="Upload a local file as the original first")
    parser_submit.add_argument("--resolution", required=True, help="Target WIDTHxHEIGHT, e.g. 1280x720")
    parser_submit.add_argument(
        "--format", required=True, choices=[f.value for f in TargetFormat], help="Target container"
    )
    parser_submit.add_argument(
        "--preset",
        default=QualityPreset.MEDIUM.value,
        choices=[p.value for p in QualityPreset],
        help="Quality preset (default: medium)",
    )
    parser_submit.add_argument(
        "--bitrate",
        default=Bitrate.B1000K.value,
        choices=[b.value for b in Bitrate],
        help="Target video bitrate (default: 1000k)",
    )
    parser_submit.add_argument("--repeat", type=int, default=1, metavar="N", help="Repeat count (default: 1)")
    parser_submit.add_argument("--size-bytes", type=int, help="Input size, when using --source-ref")
    parser_submit.add_argument("--filename", help="Original filename used for download names")
    parser_submit.add_argument(
        "--process-now",
        action="store_true",
        help="Run one worker poll in this process after enqueueing",
    )
    parser_submit.set_defaults(func=cmd_submit)

    parser_progress = subparsers.add_parser("progress", help="Show a job's progress")
    parser_progress.add_argument("job_id")
    parser_progress.set_defaults(func=cmd_progress)

    parser_serve = subparsers.add_parser("serve", help="Run the monitoring HTTP API")
    parser_serve.add_argument("--host", help="Bind address (default from settings)")
    parser_serve.add_argument("--port", type=int, help="Port (default from settings)")
    parser_serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _configure_logging(get_settings().log_level)
    try:
        return args.func(args)
    except (ValueError, QueueError, BlobStoreError, JobError) as e:
        logger.error(f"[CLI] {e}")
        return EXIT_SYSTEM


if __name__ == "__main__":
    sys.exit(main())

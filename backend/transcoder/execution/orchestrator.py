"""
Multi-iteration orchestrator.

Runs the Encode Stage N times (N = job.repeat_count) against the same input,
then joins the N artifacts into one final file:

- N == 1: the single iteration artifact is renamed into place.
- N > 1: a concat manifest lists the artifacts in order and FFmpeg joins
  them in stream-copy mode (no second encode).

Progress from every engine run is rescaled onto one job-wide 0-100 scale:
iteration i owns [(i-1)/N, i/N] × 95, concatenation owns [95, 100].

All artifact and manifest paths derive from the job id, so a redelivered job
overwrites its own leftovers. Iteration artifacts and the manifest are
deleted on every exit path; the final file is deleted on failure.
"""

import logging
import os
from pathlib import Path
from typing import Callable, List, Optional, Tuple, Union

from ..jobs.models import Job, ProgressDetail
from .encoder import EncodeStage
from .errors import EncodeError
from .failures import classify_failure
from .progress import CONCAT_WINDOW, ProgressEvent, iteration_window, rescale

logger = logging.getLogger(__name__)

# Receives (job-wide percent, detail)
JobProgressCallback = Callable[[float, ProgressDetail], None]


class MultiIterationOrchestrator:
    """Sequences N encodes and an optional concatenation into one artifact."""

    def __init__(self, stage: EncodeStage, work_dir: Union[str, Path]):
        self.stage = stage
        self.work_dir = Path(work_dir)

    def iteration_path(self, job: Job, iteration: int) -> Path:
        return self.work_dir / f"{job.id}_iteration_{iteration}.{job.output_extension}"

    def manifest_path(self, job: Job) -> Path:
        return self.work_dir / f"{job.id}_concat_list.txt"

    def final_path(self, job: Job) -> Path:
        return self.work_dir / f"{job.id}.{job.output_extension}"

    def run(
        self,
        job: Job,
        input_url: str,
        on_progress: Optional[JobProgressCallback] = None,
    ) -> Path:
        """
        Produce the final artifact for a job.

        Args:
            job: Job being processed (its targets and repeat count are used)
            input_url: Path or URL FFmpeg reads the source from
            on_progress: Job-wide progress callback

        Returns:
            Path of the final artifact in work_dir

        Raises:
            ExecutionError: Any encode or concatenation failure, classified
        """
        iterations = job.repeat_count
        final = self.final_path(job)
        manifest = self.manifest_path(job)
        artifacts: List[Path] = []
        succeeded = False

        self._ensure_work_dir()
        try:
            total_duration = 0.0
            for iteration in range(1, iterations + 1):
                artifact = self.iteration_path(job, iteration)
                artifacts.append(artifact)
                logger.info(f"[Orchestrator] Job {job.id}: iteration {iteration}/{iterations}")

                result = self.stage.encode(
                    input_url,
                    job.target_resolution,
                    job.target_format,
                    job.quality_preset,
                    job.bitrate,
                    artifact,
                    on_progress=self._forward(
                        on_progress,
                        iteration_window(iteration, iterations),
                        stage="encoding",
                        iteration=iteration,
                        iterations=iterations,
                    ),
                )
                total_duration += result.duration or 0.0

            if iterations == 1:
                self._replace(artifacts[0], final)
            else:
                self._write_manifest(manifest, artifacts)
                message = f"Stitching {iterations} iterations together..."
                self._emit(on_progress, CONCAT_WINDOW[0], ProgressDetail(stage="finalizing", message=message))
                self.stage.concatenate(
                    manifest,
                    final,
                    job.target_format,
                    duration=total_duration or None,
                    on_progress=self._forward(on_progress, CONCAT_WINDOW, stage="finalizing", message=message),
                )

            self._emit(on_progress, 100.0, ProgressDetail(stage="finalizing", message="Encoding finished, uploading..."))
            succeeded = True
            logger.info(f"[Orchestrator] Job {job.id}: final artifact {final}")
            return final
        finally:
            self._cleanup(artifacts + [manifest])
            if not succeeded:
                self._cleanup([final])

    def _forward(
        self,
        on_progress: Optional[JobProgressCallback],
        window: Tuple[float, float],
        stage: str,
        iteration: Optional[int] = None,
        iterations: Optional[int] = None,
        message: Optional[str] = None,
    ) -> Optional[Callable[[ProgressEvent], None]]:
        if on_progress is None:
            return None

        def forward(event: ProgressEvent) -> None:
            detail = ProgressDetail(
                stage=stage,
                iteration=iteration,
                iterations=iterations,
                timemark=event.timemark,
                kbps=round(event.kbps, 1),
                fps=round(event.fps, 1),
                message=message or _encoding_message(iteration, iterations),
            )
            on_progress(rescale(event.percent, window), detail)

        return forward

    @staticmethod
    def _emit(on_progress: Optional[JobProgressCallback], percent: float, detail: ProgressDetail) -> None:
        if on_progress is not None:
            on_progress(percent, detail)

    def _ensure_work_dir(self) -> None:
        try:
            self.work_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise _io_error(e) from e

    @staticmethod
    def _write_manifest(manifest: Path, artifacts: List[Path]) -> None:
        lines = [f"file {concat_quote(artifact.resolve())}" for artifact in artifacts]
        try:
            manifest.write_text("\n".join(lines) + "\n")
        except OSError as e:
            raise _io_error(e) from e

    @staticmethod
    def _replace(source: Path, target: Path) -> None:
        try:
            os.replace(source, target)
        except OSError as e:
            raise _io_error(e) from e

    @staticmethod
    def _cleanup(paths: List[Path]) -> None:
        for path in paths:
            try:
                path.unlink()
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"[Orchestrator] Could not clean up {path}: {e}")
            else:
                logger.debug(f"[Orchestrator] Removed {path}")


def concat_quote(path: Union[str, Path]) -> str:
    """Quote a path for a concat-demuxer manifest line."""
    return "'" + str(path).replace("'", "'\\''") + "'"


def _encoding_message(iteration: Optional[int], iterations: Optional[int]) -> str:
    if iterations and iterations > 1:
        return f"Transcoding iteration {iteration} of {iterations}..."
    return "Transcoding..."


def _io_error(error: OSError) -> EncodeError:
    kind, message = classify_failure(str(error))
    return EncodeError(kind, message, detail=str(error))

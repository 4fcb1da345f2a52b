"""
Encode Stage: one FFmpeg invocation per (input, target).

Translates declarative options into deterministic FFmpeg arguments, streams
stderr through ProgressParser, and raises a classified EncodeError when the
process exits non-zero or is killed.

Flags shared by every encode:
- -b:a 128k       fixed audio bitrate
- -threads 0      let FFmpeg pick the thread count
- -bufsize 2M     bounded rate-control buffer
- -maxrate <b>    clamp to the target video bitrate

The format-specific codec pair and tuning flags come from formats.FORMATS.
"""

import logging
import os
import shutil
import subprocess
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, List, Optional, Type, Union

from ..jobs.models import Bitrate, QualityPreset, TargetFormat
from .errors import ConcatenationError, EncodeError, EngineNotAvailableError
from .failures import FailureKind, classify_failure
from .formats import AUDIO_BITRATE, BUFFER_SIZE, get_format, parse_resolution
from .progress import ProgressEvent, ProgressParser

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ProgressEvent], None]

# Lines of stderr kept as diagnostic detail on failure
STDERR_TAIL_LINES = 20

# Checked when ffmpeg is not on PATH
COMMON_FFMPEG_PATHS = ("/usr/local/bin/ffmpeg", "/usr/bin/ffmpeg", "/opt/homebrew/bin/ffmpeg")


@dataclass
class EncodeResult:
    """Outcome of a successful engine run."""

    output_path: Path
    duration: Optional[float] = None  # Source duration in seconds, if reported


class EncodeStage:
    """
    Drives a single FFmpeg process.

    process_factory is subprocess.Popen in production; tests inject a fake
    that replays scripted stderr lines.
    """

    def __init__(
        self,
        ffmpeg_path: Optional[str] = None,
        process_factory: Callable[..., subprocess.Popen] = subprocess.Popen,
    ):
        self._ffmpeg_path = ffmpeg_path
        self._process_factory = process_factory

    def find_ffmpeg(self) -> str:
        """
        Find ffmpeg binary path.

        Raises:
            EngineNotAvailableError: If no binary is configured or on PATH
        """
        if self._ffmpeg_path:
            return self._ffmpeg_path

        ffmpeg_path = shutil.which("ffmpeg")
        if ffmpeg_path:
            self._ffmpeg_path = ffmpeg_path
            return ffmpeg_path

        for path in COMMON_FFMPEG_PATHS:
            if os.path.isfile(path) and os.access(path, os.X_OK):
                self._ffmpeg_path = path
                return path

        raise EngineNotAvailableError("FFmpeg is not available on this worker.")

    def build_command(
        self,
        input_url: str,
        resolution: str,
        target_format: TargetFormat,
        preset: QualityPreset,
        bitrate: Bitrate,
        output_path: Union[str, Path],
    ) -> List[str]:
        """
        Build the FFmpeg argument list for one encode.

        Raises:
            ValueError: Malformed resolution or unsupported format
        """
        width, height = parse_resolution(resolution)
        spec = get_format(target_format)
        bitrate_value = Bitrate(bitrate).value

        return [
            self.find_ffmpeg(),
            "-hide_banner",
            "-nostdin",
            "-y",
            "-i", input_url,
            "-c:v", spec.video_codec,
            "-c:a", spec.audio_codec,
            "-s", f"{width}x{height}",
            "-b:v", bitrate_value,
            "-b:a", AUDIO_BITRATE,
            "-threads", "0",
            "-bufsize", BUFFER_SIZE,
            "-maxrate", bitrate_value,
            *spec.tuning(QualityPreset(preset)),
            "-f", spec.container,
            str(output_path),
        ]

    def build_concat_command(
        self,
        list_path: Union[str, Path],
        output_path: Union[str, Path],
        target_format: TargetFormat,
    ) -> List[str]:
        """Build a stream-copy concatenation over a concat-demuxer manifest."""
        spec = get_format(target_format)
        return [
            self.find_ffmpeg(),
            "-hide_banner",
            "-nostdin",
            "-y",
            "-f", "concat",
            "-safe", "0",
            "-i", str(list_path),
            "-c", "copy",
            "-f", spec.container,
            str(output_path),
        ]

    def encode(
        self,
        input_url: str,
        resolution: str,
        target_format: TargetFormat,
        preset: QualityPreset,
        bitrate: Bitrate,
        output_path: Union[str, Path],
        on_progress: Optional[ProgressCallback] = None,
    ) -> EncodeResult:
        """
        Run one encode to completion.

        Raises:
            EngineNotAvailableError: FFmpeg missing
            EncodeError: Non-zero exit or killed, already classified
        """
        cmd = self.build_command(input_url, resolution, target_format, preset, bitrate, output_path)
        parser = ProgressParser(on_progress=on_progress)
        self._run(cmd, parser, EncodeError)
        return EncodeResult(output_path=Path(output_path), duration=parser.duration)

    def concatenate(
        self,
        list_path: Union[str, Path],
        output_path: Union[str, Path],
        target_format: TargetFormat,
        duration: Optional[float] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> EncodeResult:
        """
        Join the files listed in list_path without re-encoding.

        Args:
            duration: Expected total duration, used for percent when known

        Raises:
            ConcatenationError: Non-zero exit or killed
        """
        cmd = self.build_concat_command(list_path, output_path, target_format)
        parser = ProgressParser(duration=duration, on_progress=on_progress)
        self._run(cmd, parser, ConcatenationError)
        return EncodeResult(output_path=Path(output_path), duration=parser.duration)

    def _run(self, cmd: List[str], parser: ProgressParser, error_cls: Type[EncodeError]) -> None:
        logger.info(f"[FFmpeg] Executing: {' '.join(cmd)}")

        try:
            process = self._process_factory(
                cmd,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.PIPE,
                text=True,
                # Metadata tags are echoed as raw bytes and need not be UTF-8
                encoding="utf-8",
                errors="replace",
            )
        except OSError as e:
            raise EngineNotAvailableError(f"FFmpeg could not be started: {e}") from e

        logger.info(f"[FFmpeg] Started PID {process.pid}")

        # FFmpeg separates status lines with \r; text mode splits on it too
        tail: Deque[str] = deque(maxlen=STDERR_TAIL_LINES)
        try:
            for line in process.stderr:
                line = line.rstrip()
                if not line:
                    continue
                event = parser.parse_line(line)
                if event is None:
                    tail.append(line)
                else:
                    logger.debug(f"[FFmpeg] {event.percent:.1f}% at {event.timemark} ({event.kbps:.0f}kb/s)")
        except BaseException:
            logger.error(f"[FFmpeg] Reading output of PID {process.pid} failed, killing it")
            process.kill()
            process.wait()
            raise

        exit_code = process.wait()
        logger.info(f"[FFmpeg] PID {process.pid} exited with code {exit_code}")

        if exit_code == 0:
            self._verify_output(cmd[-1], error_cls)
            return

        detail = "\n".join(tail)
        if exit_code < 0:
            detail = f"{detail}\nProcess killed by signal {-exit_code}".strip()
        kind, message = classify_failure(detail, exit_code)
        if error_cls is ConcatenationError:
            message = f"Failed to concatenate iterations: {message}"
        logger.error(f"[FFmpeg] Failed ({kind.value}): {detail}")
        raise error_cls(kind, message, detail=detail, exit_code=exit_code)

    @staticmethod
    def _verify_output(output_path: str, error_cls: Type[EncodeError]) -> None:
        path = Path(output_path)
        if not path.is_file() or path.stat().st_size == 0:
            raise error_cls(
                FailureKind.ENGINE_FAILED,
                "Transcoding produced no output.",
                detail=f"Output missing or empty after exit 0: {path}",
                exit_code=0,
            )

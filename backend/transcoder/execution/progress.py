"""
FFmpeg progress parsing.

FFmpeg writes a header and then periodic status lines to stderr:

    Duration: 00:00:10.00, start: 0.000000, bitrate: 1205 kb/s
    frame=   24 fps= 12 q=28.0 size=     256kB time=00:00:01.00 bitrate=2097.2kbits/s

We parse:
- Duration: from the input header → total seconds (unless known upfront)
- time=HH:MM:SS.cc → current position, compared against duration → percent
- bitrate= / fps= / frame= → throughput figures for the progress detail

Also defines the progress windows the orchestrator uses to map each
encode's 0-100 onto one job-wide 0-100 scale.
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple


# Matches: time=00:00:01.00 or time=00:01:23.45
TIME_PATTERN = re.compile(r'time=(\d{2}):(\d{2}):(\d{2})\.(\d{2})')

# Matches: Duration: 00:00:10.00
DURATION_PATTERN = re.compile(r'Duration:\s*(\d{2}):(\d{2}):(\d{2})\.(\d{2})')

# Regex to extract frame count
FRAME_PATTERN = re.compile(r'frame=\s*(\d+)')

# Regex to extract fps (encoding speed)
FPS_PATTERN = re.compile(r'fps=\s*([\d.]+)')

# Regex to extract current output bitrate
BITRATE_PATTERN = re.compile(r'bitrate=\s*([\d.]+)kbits/s')

# Share of the job-wide scale given to encode iterations; the rest is concatenation
ENCODE_SHARE = 95.0
CONCAT_WINDOW: Tuple[float, float] = (ENCODE_SHARE, 100.0)


@dataclass
class ProgressEvent:
    """One progress update from a running encode."""

    percent: float = 0.0
    timemark: str = "00:00:00.00"
    kbps: float = 0.0
    fps: float = 0.0
    frame: int = 0


def _seconds(match: "re.Match[str]") -> float:
    hours, minutes, seconds, centis = (int(g) for g in match.groups())
    return hours * 3600 + minutes * 60 + seconds + centis / 100.0


class ProgressParser:
    """
    Parse FFmpeg stderr output for progress information.

    Usage:
        parser = ProgressParser(on_progress=callback)
        for line in ffmpeg_stderr:
            parser.parse_line(line)
    """

    def __init__(
        self,
        duration: Optional[float] = None,
        on_progress: Optional[Callable[[ProgressEvent], None]] = None,
    ):
        """
        Args:
            duration: Total media duration in seconds. When None it is
                taken from the first Duration: header line.
            on_progress: Optional callback for each status line
        """
        self.duration = duration
        self.on_progress = on_progress

    def parse_line(self, line: str) -> Optional[ProgressEvent]:
        """
        Parse a single line of FFmpeg stderr output.

        Returns:
            A ProgressEvent if the line was a status line, None otherwise
        """
        if self.duration is None:
            duration_match = DURATION_PATTERN.search(line)
            if duration_match:
                self.duration = _seconds(duration_match)
                return None

        time_match = TIME_PATTERN.search(line)
        if not time_match:
            return None

        current_time = _seconds(time_match)
        event = ProgressEvent(timemark=time_match.group(0)[len("time="):])

        if self.duration and self.duration > 0:
            event.percent = max(0.0, min(100.0, (current_time / self.duration) * 100.0))

        frame_match = FRAME_PATTERN.search(line)
        if frame_match:
            event.frame = int(frame_match.group(1))

        fps_match = FPS_PATTERN.search(line)
        if fps_match:
            event.fps = float(fps_match.group(1))

        bitrate_match = BITRATE_PATTERN.search(line)
        if bitrate_match:
            event.kbps = float(bitrate_match.group(1))

        if self.on_progress:
            self.on_progress(event)

        return event


def iteration_window(iteration: int, iterations: int) -> Tuple[float, float]:
    """
    Job-wide percent window for one encode iteration (1-based).

    Iteration i of N owns [(i-1)/N, i/N] × 95.
    """
    if iterations < 1 or not 1 <= iteration <= iterations:
        raise ValueError(f"Iteration {iteration} out of range 1..{iterations}")
    low = (iteration - 1) / iterations * ENCODE_SHARE
    high = iteration / iterations * ENCODE_SHARE
    return low, high


def rescale(percent: float, window: Tuple[float, float]) -> float:
    """Map a 0-100 stage percent linearly into window."""
    low, high = window
    clamped = max(0.0, min(100.0, percent))
    return low + (high - low) * clamped / 100.0

"""
Test doubles shared across test modules.

FakeProcessFactory stands in for subprocess.Popen and replays scripted
FFmpeg stderr; FakeStage stands in for the whole Encode Stage.
"""

from pathlib import Path
from typing import List, Optional

from transcoder.execution.encoder import EncodeResult
from transcoder.execution.errors import ConcatenationError, EncodeError
from transcoder.execution.failures import FailureKind
from transcoder.execution.progress import ProgressEvent


FFMPEG_HEADER = [
    "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'input.mp4':\n",
    "  Duration: 00:00:10.00, start: 0.000000, bitrate: 1205 kb/s\n",
    "Stream mapping:\n",
]

FFMPEG_PROGRESS = [
    "frame=   60 fps= 30 q=28.0 size=     256kB time=00:00:02.50 bitrate= 838.9kbits/s speed=1.2x\n",
    "frame=  120 fps= 31 q=28.0 size=     512kB time=00:00:05.00 bitrate= 838.9kbits/s speed=1.2x\n",
    "frame=  240 fps= 32 q=-1.0 Lsize=    1024kB time=00:00:10.00 bitrate= 838.9kbits/s speed=1.2x\n",
]


class FakeProcess:
    """Minimal Popen stand-in."""

    def __init__(self, cmd: List[str], lines: List, returncode: int, write_output: bool, **kwargs):
        self.cmd = cmd
        self.stderr = self._decode(lines, kwargs.get("encoding") or "utf-8", kwargs.get("errors") or "strict")
        self.returncode = returncode
        self.pid = 4242
        self.killed = False
        self.waited = False
        if write_output and returncode == 0:
            Path(cmd[-1]).write_bytes(b"encoded")

    @staticmethod
    def _decode(lines, encoding, errors):
        # Bytes lines are decoded lazily, the way a text-mode pipe would
        for line in lines:
            yield line.decode(encoding, errors) if isinstance(line, bytes) else line

    def kill(self):
        self.killed = True
        self.returncode = -9

    def wait(self):
        self.waited = True
        return self.returncode


class FakeProcessFactory:
    """
    Records commands; each call pops the next scripted (lines, returncode).

    Lines may be bytes; they are decoded with the encoding and errors
    arguments passed to the factory, strictly when none are given.
    """

    def __init__(self, script=None, write_output: bool = True):
        self.script = list(script or [(FFMPEG_HEADER + FFMPEG_PROGRESS, 0)])
        self.write_output = write_output
        self.calls: List[List[str]] = []
        self.kwargs: List[dict] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(cmd)
        self.kwargs.append(kwargs)
        lines, returncode = self.script[0] if len(self.script) == 1 else self.script.pop(0)
        self.process = FakeProcess(cmd, lines, returncode, self.write_output, **kwargs)
        return self.process


class FakeStage:
    """
    Encode Stage double.

    encode() writes a small artifact per call and reports 0/50/100;
    concatenate() checks the manifest and joins artifact contents.
    """

    def __init__(
        self,
        fail_on_iteration: Optional[int] = None,
        fail_concat: bool = False,
        failure_kind: FailureKind = FailureKind.RESOURCE_EXHAUSTED,
        duration: float = 10.0,
    ):
        self.fail_on_iteration = fail_on_iteration
        self.fail_concat = fail_concat
        self.failure_kind = failure_kind
        self.duration = duration
        self.encode_calls: List[dict] = []
        self.concat_calls: List[dict] = []

    def encode(self, input_url, resolution, target_format, preset, bitrate, output_path, on_progress=None):
        output_path = Path(output_path)
        self.encode_calls.append({
            "input_url": input_url,
            "resolution": resolution,
            "target_format": target_format,
            "preset": preset,
            "bitrate": bitrate,
            "output_path": output_path,
        })
        iteration = len(self.encode_calls)

        if on_progress:
            on_progress(ProgressEvent(percent=0.0, timemark="00:00:00.00"))
            on_progress(ProgressEvent(percent=50.0, timemark="00:00:05.00", kbps=800.0, fps=30.0))

        # Partial output exists before the failure, like a killed encoder
        output_path.write_bytes(f"iteration-{iteration}|".encode())
        if self.fail_on_iteration == iteration:
            raise EncodeError(
                self.failure_kind,
                "Processing failed due to insufficient memory or CPU resources.",
                detail="Killed\nProcess killed by signal 9",
                exit_code=-9,
            )

        if on_progress:
            on_progress(ProgressEvent(percent=100.0, timemark="00:00:10.00", kbps=800.0, fps=30.0))
        return EncodeResult(output_path=output_path, duration=self.duration)

    def concatenate(self, list_path, output_path, target_format, duration=None, on_progress=None):
        list_path = Path(list_path)
        output_path = Path(output_path)
        lines = list_path.read_text().splitlines()
        sources = [Path(line[len("file '"):-1].replace("'\\''", "'")) for line in lines]
        self.concat_calls.append({
            "list_path": list_path,
            "output_path": output_path,
            "lines": lines,
            "sources_exist": all(p.exists() for p in sources),
            "duration": duration,
        })

        if on_progress:
            on_progress(ProgressEvent(percent=0.0))
            on_progress(ProgressEvent(percent=50.0))

        output_path.write_bytes(b"".join(p.read_bytes() for p in sources))
        if self.fail_concat:
            raise ConcatenationError(
                FailureKind.DISK_FULL,
                "Failed to concatenate iterations: Processing failed due to insufficient disk space.",
                detail="No space left on device",
                exit_code=1,
            )

        if on_progress:
            on_progress(ProgressEvent(percent=100.0))
        return EncodeResult(output_path=output_path, duration=duration)

"""
Worker: queue consumer driving the transcode pipeline.
"""

from .progress import ProgressReporter
from .loop import TranscodeWorker

__all__ = ["ProgressReporter", "TranscodeWorker"]

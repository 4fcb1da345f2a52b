"""
Execution: FFmpeg encode stage, progress parsing, failure classification
and the multi-iteration orchestrator.
"""

from .errors import ConcatenationError, EncodeError, EngineNotAvailableError, ExecutionError
from .failures import FailureKind, classify_failure
from .formats import FORMATS, FormatSpec, get_format, parse_resolution
from .progress import ProgressEvent, ProgressParser
from .encoder import EncodeResult, EncodeStage
from .orchestrator import MultiIterationOrchestrator

__all__ = [
    "ConcatenationError",
    "EncodeError",
    "EngineNotAvailableError",
    "ExecutionError",
    "FailureKind",
    "classify_failure",
    "FORMATS",
    "FormatSpec",
    "get_format",
    "parse_resolution",
    "ProgressEvent",
    "ProgressParser",
    "EncodeResult",
    "EncodeStage",
    "MultiIterationOrchestrator",
]

"""
Encode failure classification.

Turns a raw engine failure (stderr tail, exit code, kill signal) into a
failure kind plus a user-presentable message. The raw text is kept by the
caller as diagnostic detail; users only ever see the message.

Classification is heuristic substring matching, checked most specific first.
"""

from enum import Enum
from typing import Optional, Tuple


class FailureKind(str, Enum):
    """Why an encode failed."""

    RESOURCE_EXHAUSTED = "RESOURCE_EXHAUSTED"
    """Engine killed (OOM killer, SIGKILL) or starved of CPU/memory"""

    DISK_FULL = "DISK_FULL"
    """Scratch or output volume ran out of space"""

    CORRUPT_INPUT = "CORRUPT_INPUT"
    """Input could not be read or decoded"""

    ENGINE_FAILED = "ENGINE_FAILED"
    """Any other non-zero exit"""


FAILURE_MESSAGES = {
    FailureKind.RESOURCE_EXHAUSTED: (
        "Processing failed due to insufficient memory or CPU resources. "
        "Try a faster preset or a smaller resolution."
    ),
    FailureKind.DISK_FULL: "Processing failed due to insufficient disk space.",
    FailureKind.CORRUPT_INPUT: "Input file may be corrupted or in an unsupported format.",
}

_RESOURCE_PATTERNS = ("sigkill", "killed", "out of memory", "cannot allocate memory")
_DISK_PATTERNS = ("no space left",)
_CORRUPT_PATTERNS = ("input/output error", "invalid data found", "moov atom not found")


def classify_failure(raw: str, exit_code: Optional[int] = None) -> Tuple[FailureKind, str]:
    """
    Classify an engine failure.

    Args:
        raw: Raw failure text (stderr tail or exception message)
        exit_code: Process return code; negative means killed by a signal

    Returns:
        (kind, user-presentable message)
    """
    text = (raw or "").lower()

    if (exit_code is not None and exit_code < 0) or any(p in text for p in _RESOURCE_PATTERNS):
        kind = FailureKind.RESOURCE_EXHAUSTED
    elif any(p in text for p in _DISK_PATTERNS):
        kind = FailureKind.DISK_FULL
    elif any(p in text for p in _CORRUPT_PATTERNS):
        kind = FailureKind.CORRUPT_INPUT
    else:
        kind = FailureKind.ENGINE_FAILED

    if kind == FailureKind.ENGINE_FAILED:
        # No friendlier wording exists; surface the last diagnostic line
        last_line = next((ln.strip() for ln in reversed((raw or "").splitlines()) if ln.strip()), "")
        message = f"Transcoding failed: {last_line}" if last_line else "Transcoding failed."
        if exit_code is not None:
            message = f"{message} (exit code {exit_code})"
        return kind, message

    return kind, FAILURE_MESSAGES[kind]

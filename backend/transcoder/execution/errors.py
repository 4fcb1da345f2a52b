"""
Execution-specific errors.

Raised by the Encode Stage and the orchestrator. The worker turns every
ExecutionError into a failed job; none of them are fatal to the worker.
"""

from typing import Optional

from .failures import FailureKind


class ExecutionError(Exception):
    """
    Base exception for execution failures.

    str() is always a user-presentable message.
    """

    pass


class EngineNotAvailableError(ExecutionError):
    """FFmpeg binary could not be found or started."""

    pass


class EncodeError(ExecutionError):
    """
    An engine invocation exited non-zero or was killed.

    Attributes:
        kind: Classified failure kind
        user_message: Friendly message (also str(self))
        detail: Raw low-level diagnostic (stderr tail), never shown to users
        exit_code: Process return code, negative if killed by a signal
    """

    def __init__(
        self,
        kind: FailureKind,
        user_message: str,
        detail: str = "",
        exit_code: Optional[int] = None,
    ):
        self.kind = kind
        self.user_message = user_message
        self.detail = detail
        self.exit_code = exit_code
        super().__init__(user_message)


class ConcatenationError(EncodeError):
    """The stream-copy concatenation pass failed."""

    pass

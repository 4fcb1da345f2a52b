"""
Queue-specific errors.
"""


class QueueError(Exception):
    """Raised when the queue backend is unavailable or rejects an operation."""

    pass

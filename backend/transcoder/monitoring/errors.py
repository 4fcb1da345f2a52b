"""
Monitoring-specific errors.
"""


class MonitoringError(Exception):
    """Base exception for monitoring operations."""
    pass


class DownloadNotAvailableError(MonitoringError):
    """Raised when a download is requested for a job with no retrievable output."""

    def __init__(self, job_id: str, reason: str):
        self.job_id = job_id
        self.reason = reason
        super().__init__(reason)

"""
Storage-specific errors.
"""


class BlobStoreError(Exception):
    """
    Raised when the Blob Store is unavailable or rejects an operation.

    The worker treats this as a transient infrastructure failure.
    """

    pass


class BlobNotFoundError(BlobStoreError):
    """Raised when a blob key does not exist."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Blob not found: {key}")

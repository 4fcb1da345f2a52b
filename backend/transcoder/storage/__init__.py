"""
Blob storage for original uploads and processed outputs.
"""

from .errors import BlobNotFoundError, BlobStoreError
from .blobs import CATEGORIES, ORIGINAL, PROCESSED, BlobStore, LocalBlobStore, UploadResult, blob_key

__all__ = [
    "BlobNotFoundError",
    "BlobStoreError",
    "CATEGORIES",
    "ORIGINAL",
    "PROCESSED",
    "BlobStore",
    "LocalBlobStore",
    "UploadResult",
    "blob_key",
]

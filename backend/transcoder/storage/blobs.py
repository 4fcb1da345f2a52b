"""
Blob Store interface and local filesystem backend.

Blobs live in one of two namespaces: "original" (uploaded sources) and
"processed" (transcoded outputs). Keys are deterministic: uploading the same
name for the same owner twice overwrites the first blob.
"""

import logging
import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .errors import BlobNotFoundError, BlobStoreError

logger = logging.getLogger(__name__)

ORIGINAL = "original"
PROCESSED = "processed"
CATEGORIES = (ORIGINAL, PROCESSED)


@dataclass
class UploadResult:
    """Where an uploaded blob ended up."""

    key: str
    location: str
    size: int = 0


def blob_key(name: str, owner_id: Optional[str] = None) -> str:
    """Object key for a blob name, grouped per owner when one is given."""
    safe_name = os.path.basename(name)
    if not safe_name:
        raise BlobStoreError(f"Invalid blob name: {name!r}")
    return f"{owner_id}/{safe_name}" if owner_id else safe_name


def _check_category(category: str) -> str:
    if category not in CATEGORIES:
        raise BlobStoreError(f"Unknown blob category '{category}'. Expected one of: {', '.join(CATEGORIES)}")
    return category


class BlobStore(ABC):
    """Abstract Blob Store."""

    @abstractmethod
    def upload(
        self,
        data: bytes,
        name: str,
        category: str = ORIGINAL,
        content_type: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> UploadResult:
        """Store bytes under a deterministic key in category. Overwrites."""
        pass

    @abstractmethod
    def download(self, key: str, category: str = ORIGINAL) -> bytes:
        """Return the blob's bytes."""
        pass

    @abstractmethod
    def signed_url(self, key: str, ttl_seconds: int, bucket_hint: str = ORIGINAL) -> str:
        """Time-limited URL a client (or FFmpeg) can read the blob from."""
        pass

    @abstractmethod
    def delete(self, key: str, category: str = ORIGINAL) -> None:
        pass


class LocalBlobStore(BlobStore):
    """
    Filesystem Blob Store.

    Layout: <root>/original/<key>, <root>/processed/<key>.
    Signed URLs are "file:<absolute path>" with the path left unencoded,
    which is what FFmpeg's file protocol opens; ttl is ignored.
    """

    def __init__(self, root: Union[str, Path]):
        self.root = Path(root)

    def path_for(self, key: str, category: str = ORIGINAL) -> Path:
        base = (self.root / _check_category(category)).resolve()
        path = (base / key).resolve()
        if base not in path.parents:
            raise BlobStoreError(f"Blob key escapes storage root: {key}")
        return path

    def upload(
        self,
        data: bytes,
        name: str,
        category: str = ORIGINAL,
        content_type: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> UploadResult:
        key = blob_key(name, owner_id)
        path = self.path_for(key, category)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            # Write then rename so readers never see a half-written blob
            tmp = path.with_name(f".{path.name}.tmp")
            tmp.write_bytes(data)
            os.replace(tmp, path)
        except OSError as e:
            raise BlobStoreError(f"Failed to write blob {key}: {e}") from e
        logger.info(f"[Storage] Stored {category}/{key} ({len(data)} bytes)")
        return UploadResult(key=key, location=str(path), size=len(data))

    def download(self, key: str, category: str = ORIGINAL) -> bytes:
        path = self.path_for(key, category)
        if not path.is_file():
            raise BlobNotFoundError(key)
        try:
            return path.read_bytes()
        except OSError as e:
            raise BlobStoreError(f"Failed to read blob {key}: {e}") from e

    def signed_url(self, key: str, ttl_seconds: int, bucket_hint: str = ORIGINAL) -> str:
        path = self.path_for(key, bucket_hint)
        if not path.is_file():
            raise BlobNotFoundError(key)
        return f"file:{path}"

    def delete(self, key: str, category: str = ORIGINAL) -> None:
        path = self.path_for(key, category)
        try:
            path.unlink()
        except FileNotFoundError:
            raise BlobNotFoundError(key)
        except OSError as e:
            raise BlobStoreError(f"Failed to delete blob {key}: {e}") from e

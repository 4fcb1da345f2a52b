"""
Amazon S3 Blob Store backend.

One bucket per namespace (original, processed). Works against S3 or any
S3-compatible endpoint (MinIO) when endpoint_url is set.
"""

import logging
from typing import Dict, Optional

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from .blobs import ORIGINAL, PROCESSED, BlobStore, UploadResult, _check_category, blob_key
from .errors import BlobNotFoundError, BlobStoreError

logger = logging.getLogger(__name__)

_MISSING_CODES = {"NoSuchKey", "404", "NotFound"}


class S3BlobStore(BlobStore):
    """Blob Store backed by two S3 buckets."""

    def __init__(
        self,
        original_bucket: str,
        processed_bucket: str,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        client=None,
    ):
        self.buckets: Dict[str, str] = {ORIGINAL: original_bucket, PROCESSED: processed_bucket}
        self._client = client or boto3.client(
            "s3",
            region_name=region_name,
            endpoint_url=endpoint_url,
            config=BotoConfig(
                s3={"addressing_style": "path"} if endpoint_url else {},
                signature_version="s3v4",
            ),
        )

    def bucket_for(self, category: str) -> str:
        return self.buckets[_check_category(category)]

    def upload(
        self,
        data: bytes,
        name: str,
        category: str = ORIGINAL,
        content_type: Optional[str] = None,
        owner_id: Optional[str] = None,
    ) -> UploadResult:
        key = blob_key(name, owner_id)
        bucket = self.bucket_for(category)
        extra = {"ContentType": content_type} if content_type else {}
        try:
            self._client.put_object(Bucket=bucket, Key=key, Body=data, **extra)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"S3 upload failed for {bucket}/{key}: {e}") from e
        logger.info(f"[Storage] Uploaded s3://{bucket}/{key} ({len(data)} bytes)")
        return UploadResult(key=key, location=f"s3://{bucket}/{key}", size=len(data))

    def download(self, key: str, category: str = ORIGINAL) -> bytes:
        bucket = self.bucket_for(category)
        try:
            response = self._client.get_object(Bucket=bucket, Key=key)
            return response["Body"].read()
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise BlobNotFoundError(key) from e
            raise BlobStoreError(f"S3 download failed for {bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise BlobStoreError(f"S3 download failed for {bucket}/{key}: {e}") from e

    def signed_url(self, key: str, ttl_seconds: int, bucket_hint: str = ORIGINAL) -> str:
        """Presigned GET URL; the object must exist."""
        bucket = self.bucket_for(bucket_hint)
        try:
            self._client.head_object(Bucket=bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in _MISSING_CODES:
                raise BlobNotFoundError(key) from e
            raise BlobStoreError(f"S3 lookup failed for {bucket}/{key}: {e}") from e
        except BotoCoreError as e:
            raise BlobStoreError(f"S3 lookup failed for {bucket}/{key}: {e}") from e

        try:
            return self._client.generate_presigned_url(
                ClientMethod="get_object",
                Params={"Bucket": bucket, "Key": key},
                ExpiresIn=ttl_seconds,
                HttpMethod="GET",
            )
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"Could not sign URL for {bucket}/{key}: {e}") from e

    def delete(self, key: str, category: str = ORIGINAL) -> None:
        bucket = self.bucket_for(category)
        try:
            self._client.delete_object(Bucket=bucket, Key=key)
        except (BotoCoreError, ClientError) as e:
            raise BlobStoreError(f"S3 delete failed for {bucket}/{key}: {e}") from e

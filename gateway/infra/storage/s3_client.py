"""S3-compatible storage client implementation.

This module provides an S3-compatible storage client that works with
AWS S3, MinIO, and other S3-compatible object storage services.

Dependencies:
    - boto3
    - botocore
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, BinaryIO

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from gateway.infra.storage.client import ObjectDownload, StorageError

if TYPE_CHECKING:
    from gateway.common.config import Settings

# Region that rejects an explicit LocationConstraint on CreateBucket
DEFAULT_REGION = "us-east-1"


def _storage_error(message: str, exc: Exception) -> StorageError:
    """Build a StorageError carrying the backend error code when there is one."""
    code: str | None = None
    status_code: int | None = None
    if isinstance(exc, ClientError):
        error = exc.response.get("Error") or {}
        metadata = exc.response.get("ResponseMetadata") or {}
        raw_code = error.get("Code")
        code = str(raw_code) if raw_code is not None else None
        raw_status = metadata.get("HTTPStatusCode")
        status_code = int(raw_status) if raw_status is not None else None
    return StorageError(f"{message}: {exc}", code=code, status_code=status_code)


class S3StorageClient:
    """S3-compatible object storage client.

    Supports AWS S3, MinIO, and other S3-compatible services.
    Uses boto3 for all storage operations.
    """

    def __init__(self, *, settings: "Settings") -> None:
        """Initialize the S3 client with configuration from settings.

        Args:
            settings: Application settings containing S3 configuration.
        """
        self._settings = settings
        self._client = self._build_client(settings)

    @staticmethod
    def _build_client(settings: "Settings") -> Any:
        """Create a boto3 S3 client from settings.

        Unset credentials and region fall through to the default boto3
        resolution chain (environment, shared config, instance profile).
        """
        addressing_style = (settings.S3_ADDRESSING_STYLE or "path").strip().lower()
        config = Config(s3={"addressing_style": addressing_style})

        return boto3.client(
            "s3",
            endpoint_url=settings.S3_ENDPOINT_URL,
            region_name=settings.S3_REGION,
            aws_access_key_id=settings.S3_ACCESS_KEY_ID,
            aws_secret_access_key=settings.S3_SECRET_ACCESS_KEY,
            use_ssl=bool(settings.S3_USE_SSL),
            config=config,
        )

    def head_bucket(self, *, bucket: str) -> None:
        """Check that a bucket exists and is accessible."""
        try:
            self._client.head_bucket(Bucket=bucket)
        except Exception as exc:
            raise _storage_error(f"Failed to head bucket {bucket}", exc) from exc

    def create_bucket(self, *, bucket: str) -> None:
        """Create a bucket in the configured region."""
        params: dict[str, Any] = {"Bucket": bucket}
        region = (self._settings.S3_REGION or "").strip()
        if region and region != DEFAULT_REGION:
            params["CreateBucketConfiguration"] = {"LocationConstraint": region}

        try:
            self._client.create_bucket(**params)
        except Exception as exc:
            raise _storage_error(f"Failed to create bucket {bucket}", exc) from exc

    def delete_bucket(self, *, bucket: str) -> None:
        """Delete an empty bucket."""
        try:
            self._client.delete_bucket(Bucket=bucket)
        except Exception as exc:
            raise _storage_error(f"Failed to delete bucket {bucket}", exc) from exc

    def list_object_keys(self, *, bucket: str) -> list[str]:
        """List every object key in a bucket, following continuation tokens."""
        keys: list[str] = []
        try:
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=bucket):
                keys.extend(item["Key"] for item in page.get("Contents", []))
        except Exception as exc:
            raise _storage_error(f"Failed to list bucket {bucket}", exc) from exc
        return keys

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: BinaryIO,
        size_bytes: int,
        content_type: str | None = None,
    ) -> None:
        """Stream an object to storage with a known content length."""
        params: dict[str, Any] = {
            "Bucket": bucket,
            "Key": object_key,
            "Body": body,
            "ContentLength": int(size_bytes),
        }
        if content_type:
            params["ContentType"] = content_type

        try:
            self._client.put_object(**params)
        except Exception as exc:
            raise _storage_error("Failed to upload object", exc) from exc

    def get_object(self, *, bucket: str, object_key: str) -> ObjectDownload:
        """Open a streaming read of an object."""
        try:
            response = self._client.get_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise _storage_error("Failed to get object", exc) from exc

        size = response.get("ContentLength")
        return ObjectDownload(
            body=response["Body"],
            size_bytes=int(size) if size is not None else None,
            content_type=response.get("ContentType"),
            etag=response.get("ETag"),
        )

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage."""
        try:
            self._client.delete_object(Bucket=bucket, Key=object_key)
        except Exception as exc:
            raise _storage_error("Failed to delete object", exc) from exc

    def presign_download(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for downloading an object."""
        try:
            url = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": bucket, "Key": object_key},
                ExpiresIn=int(expires_in),
            )
        except Exception as exc:
            raise _storage_error("Failed to generate download URL", exc) from exc

        if not url:
            raise StorageError("Generated presigned URL is empty")

        return str(url)

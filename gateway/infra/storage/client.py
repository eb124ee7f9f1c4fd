"""Storage client protocol and data types.

This module defines the abstract interface for object storage operations,
covering bucket lifecycle, streamed object transfer, listing and presigned
download URLs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import BinaryIO, Iterator, Protocol


class StorageError(RuntimeError):
    """Raised when object storage operations fail.

    ``code`` is the backend error code (``NoSuchKey``, ``AccessDenied``, ...)
    and ``status_code`` the HTTP status the backend answered with. Both are
    ``None`` when the failure happened before a response was received.
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.status_code = status_code


class ObjectBody(Protocol):
    """Forward-only byte stream returned by ``get_object``."""

    def iter_chunks(self, chunk_size: int = ...) -> Iterator[bytes]: ...

    def close(self) -> None: ...


@dataclass(frozen=True, slots=True)
class ObjectDownload:
    """An open object read handle and the metadata returned with it."""

    body: ObjectBody
    size_bytes: int | None
    content_type: str | None
    etag: str | None


class StorageClient(Protocol):
    """Protocol defining the interface for object storage backends.

    Implementations must provide all methods defined here.
    Currently supports S3-compatible storage services.
    """

    def head_bucket(self, *, bucket: str) -> None:
        """Check that a bucket exists and is accessible.

        Raises:
            StorageError: If the bucket is missing, forbidden, or the call fails.
        """
        ...

    def create_bucket(self, *, bucket: str) -> None:
        """Create a bucket.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def delete_bucket(self, *, bucket: str) -> None:
        """Delete an (empty) bucket.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def list_object_keys(self, *, bucket: str) -> list[str]:
        """List every object key in a bucket, in backend order.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def put_object(
        self,
        *,
        bucket: str,
        object_key: str,
        body: BinaryIO,
        size_bytes: int,
        content_type: str | None = None,
    ) -> None:
        """Stream ``body`` to the backend, replacing any object at the key.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            body: File-like object read once from its current position.
            size_bytes: Exact number of bytes that will be read from ``body``.
            content_type: MIME type of the object.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def get_object(self, *, bucket: str, object_key: str) -> ObjectDownload:
        """Open a streaming read of an object.

        The caller owns the returned body and must close it.

        Raises:
            StorageError: If the object doesn't exist or the operation fails.
        """
        ...

    def delete_object(self, *, bucket: str, object_key: str) -> None:
        """Delete an object from storage.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) to delete.

        Raises:
            StorageError: If the operation fails.
        """
        ...

    def presign_download(
        self,
        *,
        bucket: str,
        object_key: str,
        expires_in: int,
    ) -> str:
        """Generate a presigned URL for downloading an object.

        Args:
            bucket: Target bucket name.
            object_key: Object key (path) in the bucket.
            expires_in: URL expiration time in seconds.

        Returns:
            Presigned URL for GET request.

        Raises:
            StorageError: If URL generation fails.
        """
        ...

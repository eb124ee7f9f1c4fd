"""Object storage service.

This module provides the application service layer for objects in the
configured default bucket: upload, deletion, listing and streamed retrieval.
Content is never held in memory as a whole; uploads stream the caller's file
object to the backend and retrievals hand back an :class:`ObjectStream` that
reads the backend response chunk by chunk.
"""

from __future__ import annotations

import logging
from typing import BinaryIO, Iterator

from gateway.app.services.base import BaseService
from gateway.app.services.bucket_service import BucketService
from gateway.app.services.errors import (
    ErrorKind,
    Resource,
    StorageGatewayError,
    classify,
    missing_resource,
)
from gateway.common.config import DEFAULT_DOWNLOAD_CHUNK_SIZE
from gateway.infra.storage.client import ObjectDownload, StorageClient, StorageError

logger = logging.getLogger(__name__)


class ObjectStream:
    """A finite, forward-only stream over one object's content.

    Iterating yields byte chunks. The stream must be drained or closed to
    release the backend connection; using it as a context manager closes it
    on exit. A read failure is raised as ``StorageGatewayError`` and closes the
    stream, so a partial transfer never looks like a complete one.
    """

    def __init__(
        self,
        download: ObjectDownload,
        *,
        bucket: str,
        key: str,
        chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        self._download = download
        self._bucket = bucket
        self._key = key
        self._chunk_size = chunk_size
        self._chunks: Iterator[bytes] | None = None
        self._closed = False

    @property
    def key(self) -> str:
        return self._key

    @property
    def size_bytes(self) -> int | None:
        return self._download.size_bytes

    @property
    def content_type(self) -> str | None:
        return self._download.content_type

    @property
    def etag(self) -> str | None:
        return self._download.etag

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> "ObjectStream":
        return self

    def __next__(self) -> bytes:
        if self._closed:
            raise StopIteration
        if self._chunks is None:
            self._chunks = iter(self._download.body.iter_chunks(self._chunk_size))
        try:
            chunk = next(self._chunks)
        except StopIteration:
            self.close()
            raise
        except Exception as exc:
            self.close()
            logger.error(
                "Stream of file %s from bucket %s failed mid-transfer: %s",
                self._key,
                self._bucket,
                exc,
            )
            raise StorageGatewayError.retrieve_failed(
                self._bucket, self._key, exc
            ) from exc
        return chunk

    def read_chunk(self) -> bytes:
        """Return the next chunk, or ``b""`` once the stream is exhausted."""
        try:
            return next(self)
        except StopIteration:
            return b""

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._download.body.close()

    def __enter__(self) -> "ObjectStream":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()


class ObjectService(BaseService):
    """Application service for objects in a single configured bucket."""

    def __init__(
        self,
        storage: StorageClient,
        *,
        bucket: str,
        bucket_service: BucketService | None = None,
        chunk_size: int = DEFAULT_DOWNLOAD_CHUNK_SIZE,
    ) -> None:
        super().__init__(storage)
        self._bucket = bucket
        self._buckets = bucket_service or BucketService(storage)
        self._chunk_size = chunk_size

    @property
    def bucket(self) -> str:
        return self._bucket

    def ensure_default_bucket(self) -> None:
        """Make sure the configured bucket exists before serving requests.

        Meant to run once at process start; any failure propagates so that
        the process does not come up half-configured.
        """
        if self._buckets.create(self._bucket):
            logger.info("Created default bucket %s", self._bucket)

    def list(self) -> list[str]:
        """Return every object key in the bucket, in backend order."""
        try:
            return self.storage.list_object_keys(bucket=self._bucket)
        except StorageError as exc:
            raise StorageGatewayError.list_failed(self._bucket, exc) from exc

    def upload(
        self,
        key: str,
        content: BinaryIO,
        size_bytes: int,
        *,
        content_type: str | None = None,
    ) -> None:
        """Stream ``content`` to the backend under ``key``.

        Any object already stored at ``key`` is replaced. ``content`` is read
        exactly once, from its current position, for ``size_bytes`` bytes.

        Raises:
            ValueError: If the key is blank or the size is negative.
            StorageGatewayError: If the backend rejects the upload.
        """
        if not key or not key.strip():
            raise ValueError("object key must not be blank")
        if size_bytes < 0:
            raise ValueError("size_bytes must not be negative")
        try:
            self.storage.put_object(
                bucket=self._bucket,
                object_key=key,
                body=content,
                size_bytes=size_bytes,
                content_type=content_type,
            )
        except StorageError as exc:
            raise StorageGatewayError.upload_failed(self._bucket, key, exc) from exc
        logger.info(
            "Uploaded file %s (%d bytes) to bucket %s", key, size_bytes, self._bucket
        )

    def delete(self, key: str) -> None:
        """Delete ``key``; deleting a key that is not there is not an error."""
        try:
            self.storage.delete_object(bucket=self._bucket, object_key=key)
        except StorageError as exc:
            if (
                classify(exc) is ErrorKind.NOT_FOUND
                and missing_resource(exc, Resource.OBJECT) is Resource.OBJECT
            ):
                logger.info("File %s already absent from bucket %s", key, self._bucket)
                return
            raise StorageGatewayError.delete_failed(self._bucket, key, exc) from exc
        logger.info("Deleted file %s from bucket %s", key, self._bucket)

    def retrieve(self, key: str) -> ObjectStream:
        """Open a streaming read of ``key``.

        Raises:
            StorageGatewayError: ``NOT_FOUND`` about the object when the key
                does not exist; otherwise the classified backend failure.
        """
        try:
            download = self.storage.get_object(bucket=self._bucket, object_key=key)
        except StorageError as exc:
            if (
                classify(exc) is ErrorKind.NOT_FOUND
                and missing_resource(exc, Resource.OBJECT) is Resource.OBJECT
            ):
                raise StorageGatewayError.object_not_found(
                    self._bucket, key, exc
                ) from exc
            raise StorageGatewayError.retrieve_failed(self._bucket, key, exc) from exc
        return ObjectStream(
            download, bucket=self._bucket, key=key, chunk_size=self._chunk_size
        )

from __future__ import annotations

from dataclasses import dataclass, field

from gateway.common.config import Settings
from gateway.infra.storage.client import StorageClient
from gateway.infra.storage.s3_client import S3StorageClient

from .bucket_service import BucketService
from .link_service import LinkService
from .object_service import ObjectService


@dataclass
class ServiceBundle:
    """Lazily constructs application services sharing one storage client."""

    storage: StorageClient
    settings: Settings
    _bucket: BucketService | None = field(default=None, init=False, repr=False)
    _objects: ObjectService | None = field(default=None, init=False, repr=False)
    _links: LinkService | None = field(default=None, init=False, repr=False)

    def bucket(self) -> BucketService:
        if self._bucket is None:
            self._bucket = BucketService(self.storage)
        return self._bucket

    def objects(self) -> ObjectService:
        if self._objects is None:
            self._objects = ObjectService(
                self.storage,
                bucket=self.settings.S3_BUCKET,
                bucket_service=self.bucket(),
                chunk_size=self.settings.STORAGE_DOWNLOAD_CHUNK_SIZE,
            )
        return self._objects

    def links(self) -> LinkService:
        if self._links is None:
            self._links = LinkService(self.storage, bucket=self.settings.S3_BUCKET)
        return self._links


def build_storage_client(settings: Settings) -> StorageClient:
    """Build the storage client for the configured backend."""
    return S3StorageClient(settings=settings)


def get_service_bundle(
    settings: Settings, storage: StorageClient | None = None
) -> ServiceBundle:
    return ServiceBundle(
        storage=storage or build_storage_client(settings), settings=settings
    )

from __future__ import annotations

from gateway.infra.storage.client import StorageClient


class BaseService:
    """Provides the backend handle shared by application services.

    Services hold no state of their own between calls: the backend is the
    single source of truth for buckets and objects.
    """

    def __init__(self, storage: StorageClient):
        self._storage = storage

    @property
    def storage(self) -> StorageClient:
        return self._storage

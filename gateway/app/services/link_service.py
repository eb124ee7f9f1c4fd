from __future__ import annotations

import logging
from datetime import timedelta

from gateway.app.services.base import BaseService
from gateway.app.services.errors import StorageGatewayError
from gateway.infra.storage.client import StorageClient, StorageError

logger = logging.getLogger(__name__)

# SigV4 presigned URLs cannot outlive seven days
MAX_LINK_VALIDITY = timedelta(days=7)


class LinkService(BaseService):
    """Issues time-limited read links for objects in the configured bucket.

    Links are signed by the backend and never recorded here: expiry is
    enforced entirely by the backend's signature check.
    """

    def __init__(self, storage: StorageClient, *, bucket: str) -> None:
        super().__init__(storage)
        self._bucket = bucket

    def issue_read_link(self, key: str, valid_for: timedelta) -> str:
        """Return a signed URL granting read access to ``key`` for ``valid_for``.

        The key is not checked for existence; a link to a missing object fails
        when its holder dereferences it.
        """
        if valid_for <= timedelta(0):
            raise ValueError("link validity must be positive")
        if valid_for > MAX_LINK_VALIDITY:
            raise ValueError(
                f"link validity cannot exceed {MAX_LINK_VALIDITY.days} days"
            )
        try:
            url = self.storage.presign_download(
                bucket=self._bucket,
                object_key=key,
                expires_in=int(valid_for.total_seconds()),
            )
        except StorageError as exc:
            raise StorageGatewayError.link_issuance_failed(
                self._bucket, key, exc
            ) from exc
        logger.info(
            "Issued read link for file %s valid for %ss",
            key,
            int(valid_for.total_seconds()),
        )
        return url

"""Bucket lifecycle service.

Existence checks, idempotent creation and idempotent deletion of buckets.
Creation and deletion look before they leap: they query existence first so
that repeating them never reaches the backend with a duplicate create or a
delete of a missing bucket.
"""

from __future__ import annotations

import logging

from gateway.app.services.base import BaseService
from gateway.app.services.errors import ErrorKind, StorageGatewayError, classify
from gateway.infra.storage.client import StorageError

logger = logging.getLogger(__name__)


class BucketService(BaseService):
    """Application service for bucket existence, creation and deletion."""

    def exists(self, bucket: str) -> bool:
        """Return whether ``bucket`` exists.

        Raises:
            StorageGatewayError: ``UNAUTHORIZED`` when the bucket exists but is
                outside the caller's account or permissions.
            StorageError: Any other backend fault, unchanged.
        """
        try:
            self.storage.head_bucket(bucket=bucket)
        except StorageError as exc:
            kind = classify(exc)
            if kind is ErrorKind.NOT_FOUND:
                logger.info("Bucket %s does not exist", bucket)
                return False
            if kind is ErrorKind.UNAUTHORIZED:
                raise StorageGatewayError.unauthorized_access(bucket, exc) from exc
            raise
        logger.info("Bucket %s already exists", bucket)
        return True

    def create(self, bucket: str) -> bool:
        """Create ``bucket`` unless it already exists.

        Returns:
            True when the bucket was created, False when it already existed.

        Raises:
            StorageGatewayError: When the create call itself fails, or when the
                existence check is unauthorized.
        """
        if self.exists(bucket):
            logger.info("Skipping creation of bucket %s: already exists", bucket)
            return False
        try:
            self.storage.create_bucket(bucket=bucket)
        except StorageError as exc:
            raise StorageGatewayError.bucket_creation_failed(bucket, exc) from exc
        logger.info("Bucket %s successfully created", bucket)
        return True

    def delete(self, bucket: str) -> bool:
        """Delete ``bucket`` if it exists.

        Errors from the delete call itself (a non-empty bucket, for one) are
        not wrapped.

        Returns:
            True when the bucket was deleted, False when it was already absent.
        """
        if not self.exists(bucket):
            return False
        self.storage.delete_bucket(bucket=bucket)
        logger.info("Bucket %s successfully deleted", bucket)
        return True

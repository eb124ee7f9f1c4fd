"""Bucket API router.

Existence check, idempotent creation and idempotent deletion of buckets.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status

from gateway.api.deps import get_bucket_service
from gateway.app.services import BucketService

router = APIRouter()


@router.get(
    "/buckets/{bucket_name}",
    response_model=bool,
    summary="Check bucket existence",
    description="Return whether the bucket exists in the storage backend.",
)
def bucket_exists(
    bucket_name: str,
    buckets: BucketService = Depends(get_bucket_service),
) -> bool:
    return buckets.exists(bucket_name)


@router.post(
    "/buckets/{bucket_name}",
    status_code=status.HTTP_200_OK,
    response_class=Response,
    summary="Create bucket",
    description="Create the bucket. Succeeds without change if it already exists.",
)
def create_bucket(
    bucket_name: str,
    buckets: BucketService = Depends(get_bucket_service),
) -> Response:
    buckets.create(bucket_name)
    return Response(status_code=status.HTTP_200_OK)


@router.delete(
    "/buckets/{bucket_name}",
    status_code=status.HTTP_200_OK,
    response_class=Response,
    summary="Delete bucket",
    description="Delete the bucket. Succeeds without change if it does not exist.",
)
def delete_bucket(
    bucket_name: str,
    buckets: BucketService = Depends(get_bucket_service),
) -> Response:
    buckets.delete(bucket_name)
    return Response(status_code=status.HTTP_200_OK)

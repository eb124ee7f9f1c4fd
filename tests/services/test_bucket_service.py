"""Tests for BucketService."""

from __future__ import annotations

import pytest

from gateway.app.services.bucket_service import BucketService
from gateway.app.services.errors import ErrorKind, Operation, StorageGatewayError
from gateway.infra.storage.client import StorageError
from tests.services.mock_storage import MockStorageClient


@pytest.fixture()
def mock_storage():
    return MockStorageClient()


@pytest.fixture()
def bucket_service(mock_storage):
    return BucketService(mock_storage)


class TestExists:
    def test_returns_false_for_missing_bucket(self, bucket_service):
        assert bucket_service.exists("dummy-bucket-name") is False

    def test_returns_true_for_existing_bucket(self, bucket_service, mock_storage):
        mock_storage.buckets["present"] = {}
        assert bucket_service.exists("present") is True

    def test_unauthorized_is_not_conflated_with_missing(
        self, bucket_service, mock_storage
    ):
        mock_storage.forbidden_buckets.add("someone-elses-bucket")

        with pytest.raises(StorageGatewayError) as excinfo:
            bucket_service.exists("someone-elses-bucket")

        assert excinfo.value.kind is ErrorKind.UNAUTHORIZED
        assert excinfo.value.operation is Operation.BUCKET_EXISTS
        assert excinfo.value.bucket == "someone-elses-bucket"

    def test_other_faults_propagate_unchanged(self, bucket_service, mock_storage):
        failure = StorageError("service unavailable", code="503", status_code=503)
        mock_storage.failures["head_bucket"] = failure

        with pytest.raises(StorageError) as excinfo:
            bucket_service.exists("any")

        assert excinfo.value is failure


class TestCreate:
    def test_create_then_exists(self, bucket_service, mock_storage):
        assert bucket_service.create("dummy-bucket-name") is True
        assert bucket_service.exists("dummy-bucket-name") is True
        assert mock_storage.count("create_bucket") == 1

    def test_create_is_idempotent(self, bucket_service, mock_storage):
        bucket_service.create("dummy-bucket-name")
        assert bucket_service.create("dummy-bucket-name") is False

        assert mock_storage.count("create_bucket") == 1
        assert "dummy-bucket-name" in mock_storage.buckets

    def test_backend_failure_is_wrapped(self, bucket_service, mock_storage):
        cause = StorageError("bad name", code="InvalidBucketName", status_code=400)
        mock_storage.failures["create_bucket"] = cause

        with pytest.raises(StorageGatewayError) as excinfo:
            bucket_service.create("Invalid_Name")

        err = excinfo.value
        assert err.operation is Operation.BUCKET_CREATE
        assert err.kind is ErrorKind.BACKEND_FAULT
        assert err.bucket == "Invalid_Name"
        assert err.cause is cause

    def test_unauthorized_check_blocks_creation(self, bucket_service, mock_storage):
        mock_storage.forbidden_buckets.add("taken")

        with pytest.raises(StorageGatewayError):
            bucket_service.create("taken")

        assert mock_storage.count("create_bucket") == 0


class TestDelete:
    def test_delete_then_not_exists(self, bucket_service, mock_storage):
        mock_storage.buckets["doomed"] = {}

        assert bucket_service.delete("doomed") is True
        assert bucket_service.exists("doomed") is False

    def test_delete_is_idempotent(self, bucket_service, mock_storage):
        mock_storage.buckets["doomed"] = {}

        bucket_service.delete("doomed")
        assert bucket_service.delete("doomed") is False

        assert mock_storage.count("delete_bucket") == 1

    def test_delete_missing_bucket_makes_no_delete_call(
        self, bucket_service, mock_storage
    ):
        assert bucket_service.delete("never-existed") is False
        assert mock_storage.count("delete_bucket") == 0

    def test_delete_errors_are_not_wrapped(self, bucket_service, mock_storage):
        mock_storage.buckets["full"] = {"k": {"data": b"x"}}

        with pytest.raises(StorageError) as excinfo:
            bucket_service.delete("full")

        assert not isinstance(excinfo.value, StorageGatewayError)
        assert excinfo.value.code == "BucketNotEmpty"

"""API tests for file endpoints."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from gateway.app.services.errors import StorageGatewayError
from gateway.infra.storage.client import StorageError
from gateway.main import create_app

FILE_NAME = "dummyFileName.txt"
FILE_CONTENT = "Hello, World!"


def _exception_chain(exc: BaseException):
    """Yield ``exc``, its causes and contexts, and grouped sub-exceptions."""
    pending = [exc]
    seen: set[int] = set()
    while pending:
        current = pending.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        pending.extend(getattr(current, "exceptions", ()))
        pending.extend([current.__cause__, current.__context__])


def _upload(client, name=FILE_NAME, content=FILE_CONTENT, content_type="text/plain"):
    return client.post(
        "/storage/files/upload",
        files={"file": (name, content.encode("utf-8"), content_type)},
    )


class TestUploadFile:
    def test_uploads_file(self, client, storage, default_bucket):
        resp = _upload(client)

        assert resp.status_code == 200
        assert resp.content == b""
        assert storage.read(default_bucket, FILE_NAME) == FILE_CONTENT.encode()

    def test_overwrites_existing_content(self, client, storage, default_bucket):
        _upload(client)
        _upload(client, content="new file content")

        assert storage.read(default_bucket, FILE_NAME) == b"new file content"

    def test_keeps_content_type(self, client, storage, default_bucket):
        _upload(client, name="doc.json", content="{}", content_type="application/json")

        stored = storage.buckets[default_bucket]["doc.json"]
        assert stored["content_type"] == "application/json"

    def test_missing_file_part_is_rejected(self, client):
        resp = client.post("/storage/files/upload")
        assert resp.status_code == 422

    def test_backend_failure_is_500(self, client, storage):
        storage.failures["put_object"] = StorageError(
            "request timeout", code="RequestTimeout", status_code=400
        )

        resp = _upload(client)

        assert resp.status_code == 500
        assert f"Error while uploading file {FILE_NAME}" in resp.text


class TestGetFile:
    def test_round_trip(self, client):
        _upload(client)

        resp = client.get(f"/storage/files/{FILE_NAME}")

        assert resp.status_code == 200
        assert resp.text == FILE_CONTENT
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.headers["content-length"] == str(len(FILE_CONTENT))

    def test_large_object_streams_in_chunks(self, client, storage):
        payload = "x" * (200 * 1024)
        _upload(client, name="big.bin", content=payload, content_type=None)

        resp = client.get("/storage/files/big.bin")

        assert resp.status_code == 200
        assert resp.content == payload.encode()
        assert storage.bodies[-1].chunks_read > 1
        assert storage.bodies[-1].closed

    def test_read_failure_mid_stream_is_not_a_clean_response(self, client, storage):
        payload = "y" * (4 * 64 * 1024)
        _upload(client, name="big.txt", content=payload)
        storage.fail_reads_after_chunks = 1

        with pytest.raises(Exception) as excinfo:
            client.get("/storage/files/big.txt")

        chain = list(_exception_chain(excinfo.value))
        assert any(isinstance(exc, StorageGatewayError) for exc in chain)
        assert storage.bodies[-1].chunks_read == 1
        assert storage.bodies[-1].closed

    def test_read_failure_mid_stream_truncates_body(self, storage):
        payload = "y" * (4 * 64 * 1024)
        app = create_app(storage_client=storage)

        with TestClient(app, raise_server_exceptions=False) as client:
            _upload(client, name="big.txt", content=payload)
            storage.fail_reads_after_chunks = 1
            resp = client.get("/storage/files/big.txt")

        assert resp.headers["content-length"] == str(len(payload))
        assert len(resp.content) < len(payload)
        assert storage.bodies[-1].closed

    def test_missing_file_is_400(self, client):
        resp = client.get("/storage/files/missing.txt")

        assert resp.status_code == 400
        assert resp.text == "File not found in storage for given file name"

    def test_missing_bucket_is_500(self, client, storage, default_bucket):
        del storage.buckets[default_bucket]

        resp = client.get(f"/storage/files/{FILE_NAME}")

        assert resp.status_code == 500
        assert resp.text == "Bucket not found"

    def test_backend_failure_is_500_with_message(self, client, storage):
        storage.failures["get_object"] = StorageError(
            "internal error", code="InternalError", status_code=500
        )

        resp = client.get(f"/storage/files/{FILE_NAME}")

        assert resp.status_code == 500
        assert f"Error while retrieving file {FILE_NAME}" in resp.text


class TestDeleteFile:
    def test_deletes_file(self, client, storage, default_bucket):
        _upload(client)

        resp = client.delete(f"/storage/files/{FILE_NAME}")

        assert resp.status_code == 200
        assert FILE_NAME not in storage.buckets[default_bucket]
        assert client.get(f"/storage/files/{FILE_NAME}").status_code == 400

    def test_deleting_missing_file_twice_succeeds(self, client):
        assert client.delete("/storage/files/nothing.txt").status_code == 200
        assert client.delete("/storage/files/nothing.txt").status_code == 200


class TestListFiles:
    def test_lists_present_keys(self, client):
        for name in ("c.txt", "a.txt", "b.txt"):
            _upload(client, name=name)
        client.delete("/storage/files/b.txt")

        resp = client.get("/storage/files")

        assert resp.status_code == 200
        assert sorted(resp.json()) == ["a.txt", "c.txt"]

    def test_empty_bucket(self, client):
        resp = client.get("/storage/files")

        assert resp.status_code == 200
        assert resp.json() == []

    def test_missing_bucket_is_500(self, client, storage, default_bucket):
        del storage.buckets[default_bucket]

        resp = client.get("/storage/files")

        assert resp.status_code == 500
        assert resp.text == "Bucket not found"


class TestShareFile:
    def test_returns_signed_url_as_text(self, client):
        _upload(client)

        resp = client.get(
            f"/storage/files/{FILE_NAME}/share",
            params={"expirationTimeInMinutes": 2},
        )

        assert resp.status_code == 200
        assert resp.headers["content-type"].startswith("text/plain")
        assert resp.text.strip()
        assert FILE_NAME in resp.text
        assert "X-Amz-Expires=120" in resp.text

    def test_expiration_is_required(self, client):
        resp = client.get(f"/storage/files/{FILE_NAME}/share")
        assert resp.status_code == 422

    def test_expiration_must_be_positive(self, client):
        resp = client.get(
            f"/storage/files/{FILE_NAME}/share",
            params={"expirationTimeInMinutes": 0},
        )
        assert resp.status_code == 422
        assert resp.json()["error_code"] == "validation_error"

    def test_expiration_over_seven_days_is_rejected(self, client):
        resp = client.get(
            f"/storage/files/{FILE_NAME}/share",
            params={"expirationTimeInMinutes": 7 * 24 * 60 + 1},
        )
        assert resp.status_code == 422

    def test_backend_failure_is_500(self, client, storage):
        storage.failures["presign_download"] = StorageError("no credentials")

        resp = client.get(
            f"/storage/files/{FILE_NAME}/share",
            params={"expirationTimeInMinutes": 2},
        )

        assert resp.status_code == 500
        assert "pre-signed url" in resp.text

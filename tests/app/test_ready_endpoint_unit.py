"""测试 /health 与 /ready 端点的各种场景（使用内存存储替身）。"""

from __future__ import annotations

from gateway.infra.storage.client import StorageError


class TestHealthEndpoint:
    def test_reports_ok(self, client) -> None:
        r = client.get("/health")
        assert r.status_code == 200
        assert r.json() == {"status": "ok"}


class TestReadyEndpoint:
    """测试 /ready 端点。"""

    def test_reports_ready_when_bucket_exists(self, client, default_bucket) -> None:
        r = client.get("/ready")

        assert r.status_code == 200
        assert r.json() == {"status": "ready", "bucket": default_bucket, "detail": None}

    def test_reports_missing_bucket(self, client, storage, default_bucket) -> None:
        """默认存储桶被外部删除后应报告 not_ready。"""
        del storage.buckets[default_bucket]

        r = client.get("/ready")

        assert r.status_code == 200
        payload = r.json()
        assert payload["status"] == "not_ready"
        assert payload["detail"] == "default bucket is missing"

    def test_reports_backend_fault(self, client, storage) -> None:
        """后端不可用时应报告 not_ready 并附带错误信息。"""
        storage.failures["head_bucket"] = StorageError(
            "connection refused", code=None, status_code=None
        )

        r = client.get("/ready")

        assert r.status_code == 200
        payload = r.json()
        assert payload["status"] == "not_ready"
        assert "connection refused" in payload["detail"]

    def test_reports_unauthorized(self, client, storage, default_bucket) -> None:
        storage.forbidden_buckets.add(default_bucket)

        r = client.get("/ready")

        payload = r.json()
        assert payload["status"] == "not_ready"
        assert "not authorized" in payload["detail"]

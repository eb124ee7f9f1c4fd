from __future__ import annotations

import os

import pytest
from fastapi.testclient import TestClient

os.environ["S3_BUCKET"] = os.environ.get("TEST_S3_BUCKET") or "gateway-test-bucket"
os.environ.setdefault("ENABLE_METRICS", "true")
os.environ["TRACE_HTTP"] = "false"

from gateway.common.config import get_settings  # noqa: E402
from gateway.main import create_app  # noqa: E402

from tests.services.mock_storage import MockStorageClient  # noqa: E402

get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()  # type: ignore[attr-defined]
    yield
    get_settings.cache_clear()  # type: ignore[attr-defined]


@pytest.fixture
def default_bucket() -> str:
    return get_settings().S3_BUCKET


@pytest.fixture
def storage() -> MockStorageClient:
    return MockStorageClient()


@pytest.fixture
def client(storage):
    app = create_app(storage_client=storage)
    with TestClient(app) as test_client:
        yield test_client

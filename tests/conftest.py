"""
Shared fixtures.

API tests run against the in-memory storage backend, so nothing here
needs credentials or network access.
"""

import pytest
from fastapi.testclient import TestClient

from filegateway.config.settings import Settings
from filegateway.infrastructure.storage.client import MockStorageClient
from filegateway.main import create_app


@pytest.fixture
def settings() -> Settings:
    """Mock-backed settings, isolated from any local .env file."""
    return Settings(
        _env_file=None,
        storage_backend="mock",
        storage_bucket_name="test-bucket",
        storage_eager_init=False,
    )


@pytest.fixture
def storage() -> MockStorageClient:
    return MockStorageClient(bucket_name="test-bucket")


@pytest.fixture
def app(settings, storage):
    return create_app(settings, storage_factory=lambda: storage)


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client

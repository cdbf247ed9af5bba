"""
Object storage client for uploaded files.

Supports Google Cloud Storage and any S3-compatible store, with a mock mode
for local development. Each backend lives in its own module and imports its
SDK lazily, so the mock works without either SDK configured.

Mock mode stores objects in memory, enabling API testing without
provisioning an actual bucket.
"""

import io
import logging
import shutil
from typing import BinaryIO, Protocol

from ...config.settings import Settings
from ...core.files.models import DEFAULT_CONTENT_TYPE, StoredObject

logger = logging.getLogger(__name__)

# Chunk size for stream copies. Large enough to keep syscalls down, small
# enough that a 100 MiB upload never sits in memory at once.
COPY_CHUNK_SIZE = 1024 * 1024


class StorageError(Exception):
    """Raised when storage operations fail."""
    pass


class StorageInitializationError(StorageError):
    """Raised when the storage client cannot be constructed."""
    pass


class ObjectNotFoundError(StorageError):
    """Raised when the requested key does not exist in the bucket."""

    def __init__(self, key: str) -> None:
        super().__init__(f"Object not found: {key}")
        self.key = key


class StorageClient(Protocol):
    """
    Protocol for object storage operations.

    Using a protocol means tests can provide mocks and we can
    swap storage backends without changing dependent code.
    """

    @property
    def bucket_name(self) -> str:
        ...

    async def upload_stream(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> str:
        """Copy the stream to the object at key and return the key."""
        ...

    async def download(self, key: str) -> StoredObject:
        """Read the object at key with its metadata."""
        ...

    async def exists(self, key: str) -> bool:
        """Check whether an object exists at key."""
        ...


# ---------------------------------------------------------------------------
# Mock Storage for Local Development
# ---------------------------------------------------------------------------

class MockStorageClient:
    """
    In-memory storage for local development.

    This mock enables testing the full API flow without provisioning
    a real bucket. Objects are kept in a dictionary keyed by object key.

    Not suitable for production, but perfect for development and testing.
    """

    def __init__(self, bucket_name: str = "mock-bucket") -> None:
        # {key: (data, content_type)}
        self._objects: dict[str, tuple[bytes, str]] = {}
        self._bucket_name = bucket_name
        logger.info("Initialized mock storage client (in-memory)")

    @property
    def bucket_name(self) -> str:
        return self._bucket_name

    @property
    def keys(self) -> list[str]:
        return list(self._objects)

    async def upload_stream(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> str:
        """Store the stream's bytes in memory."""
        buffer = io.BytesIO()
        shutil.copyfileobj(stream, buffer, COPY_CHUNK_SIZE)
        self._objects[key] = (buffer.getvalue(), content_type or DEFAULT_CONTENT_TYPE)

        logger.debug(
            "Stored object in mock storage",
            extra={"key": key, "size_bytes": buffer.tell()}
        )

        return key

    async def download(self, key: str) -> StoredObject:
        """Retrieve object from memory."""
        if key not in self._objects:
            raise ObjectNotFoundError(key)

        data, content_type = self._objects[key]
        return StoredObject(key=key, data=data, content_type=content_type, size=len(data))

    async def exists(self, key: str) -> bool:
        return key in self._objects


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

def create_storage_client(settings: Settings) -> StorageClient:
    """
    Create storage client based on configuration.

    Factory function pattern because:
    - Centralizes client creation logic
    - Makes the backend decision explicit
    - Simplifies dependency injection in FastAPI

    Raises StorageInitializationError when the SDK client cannot be built
    (bad credentials file, malformed key JSON, missing SDK).
    """
    backend = settings.storage_backend

    if backend == "mock":
        return MockStorageClient(bucket_name=settings.storage_bucket_name)

    try:
        if backend == "gcs":
            from .gcs import GCSConfig, GCSStorageClient

            return GCSStorageClient(GCSConfig(
                bucket_name=settings.storage_bucket_name,
                project=settings.gcs_project,
                credentials_json=settings.gcs_credentials_json or None,
                credentials_path=settings.gcs_credentials_path,
            ))

        if backend == "s3":
            from .s3 import S3Config, S3StorageClient

            return S3StorageClient(S3Config(
                bucket_name=settings.storage_bucket_name,
                endpoint_url=settings.s3_endpoint_url,
                access_key_id=settings.s3_access_key_id or None,
                secret_access_key=settings.s3_secret_access_key or None,
                region=settings.s3_region,
            ))
    except StorageInitializationError:
        raise
    except Exception as e:
        logger.error(
            "Failed to create storage client",
            extra={"backend": backend, "error": str(e)}
        )
        raise StorageInitializationError(
            f"Failed to create {backend} storage client: {e}"
        ) from e

    raise StorageInitializationError(f"Unknown storage backend: {backend}")

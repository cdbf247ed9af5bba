"""
Object storage integration for uploaded files.

Supports Google Cloud Storage natively and any S3-compatible store via boto3.
Includes mock mode for local development without credentials.
"""

from .client import (
    MockStorageClient,
    ObjectNotFoundError,
    StorageClient,
    StorageError,
    StorageInitializationError,
    create_storage_client,
)
from .provider import StorageClientProvider

__all__ = [
    "MockStorageClient",
    "ObjectNotFoundError",
    "StorageClient",
    "StorageClientProvider",
    "StorageError",
    "StorageInitializationError",
    "create_storage_client",
]

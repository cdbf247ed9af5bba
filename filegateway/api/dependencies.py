"""
FastAPI dependency injection.

Dependencies provide instances of services, clients, and configuration
to route handlers. Using dependency injection means:
- Routes don't instantiate their own dependencies (easier to test)
- Dependencies can be overridden in tests
- Configuration is centralized

The storage provider and key generator are built once by the application
factory and kept on app.state; the functions here only look them up.
"""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from ..config.settings import Settings, get_settings
from ..core.files.keys import ObjectKeyGenerator
from ..infrastructure.storage.client import StorageClient, StorageInitializationError
from ..infrastructure.storage.provider import StorageClientProvider

logger = logging.getLogger(__name__)


def get_storage_provider(request: Request) -> StorageClientProvider:
    """Provide the process-wide storage provider."""
    return request.app.state.storage_provider


def get_key_generator(request: Request) -> ObjectKeyGenerator:
    """Provide the process-wide object key generator."""
    return request.app.state.key_generator


async def get_storage_client(
    provider: Annotated[StorageClientProvider, Depends(get_storage_provider)],
) -> StorageClient:
    """
    Provide the shared storage client.

    The first request after a failed startup initialization retries the
    construction. If it still fails the request gets a 503 instead of a
    half-working handler.
    """
    try:
        return await provider.get()
    except StorageInitializationError as e:
        logger.error("Storage unavailable", extra={"error": str(e)})
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Storage backend unavailable",
        )


# ---------------------------------------------------------------------------
# Convenience Type Aliases
# ---------------------------------------------------------------------------

# These type aliases make route signatures cleaner
StorageProviderDep = Annotated[StorageClientProvider, Depends(get_storage_provider)]
StorageClientDep = Annotated[StorageClient, Depends(get_storage_client)]
KeyGeneratorDep = Annotated[ObjectKeyGenerator, Depends(get_key_generator)]
SettingsDep = Annotated[Settings, Depends(get_settings)]

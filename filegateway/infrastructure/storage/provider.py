"""
Process-wide storage client provider.

Every request shares one storage client. The provider builds it once,
hands the same instance to every caller, and serializes construction so
concurrent first requests cannot build two clients.

A failed construction is not remembered: the next call tries again. A
transient credential or network problem at startup therefore does not
leave the process unable to reach storage until it is restarted.
"""

import asyncio
import logging
from typing import Callable, Optional

from fastapi.concurrency import run_in_threadpool

from .client import StorageClient, StorageInitializationError

logger = logging.getLogger(__name__)


class StorageClientProvider:
    """
    Lazily constructs and memoizes a single StorageClient.

    The factory is synchronous (SDK constructors are) and runs in the
    thread pool while the lock is held.
    """

    def __init__(self, factory: Callable[[], StorageClient]) -> None:
        self._factory = factory
        self._client: Optional[StorageClient] = None
        self._lock = asyncio.Lock()

    @property
    def initialized(self) -> bool:
        return self._client is not None

    async def get(self) -> StorageClient:
        """
        Return the shared client, constructing it on first use.

        Raises StorageInitializationError if construction fails.
        """
        client = self._client
        if client is not None:
            return client

        async with self._lock:
            # another caller may have finished while we waited
            if self._client is not None:
                return self._client

            try:
                client = await run_in_threadpool(self._factory)
            except StorageInitializationError:
                raise
            except Exception as e:
                logger.error(
                    "Storage client initialization failed",
                    extra={"error": str(e)}
                )
                raise StorageInitializationError(
                    f"Failed to initialize storage client: {e}"
                ) from e

            self._client = client
            logger.info(
                "Storage client ready",
                extra={"client": type(client).__name__}
            )
            return client

    async def close(self) -> None:
        """Release the client if the backend supports closing."""
        async with self._lock:
            client, self._client = self._client, None

        close = getattr(client, "close", None)
        if close is not None:
            await run_in_threadpool(close)
            logger.info("Storage client closed")

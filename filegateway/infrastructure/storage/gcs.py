"""
Google Cloud Storage backend.

Uploads go through a resumable blob writer so a file is copied to the
bucket chunk by chunk instead of being read into memory first. Closing
the writer commits the object; a failure there means the object was never
created.

The google-cloud-storage SDK is synchronous, so every call is pushed to
Starlette's thread pool to keep the event loop free.
"""

import json
import logging
import shutil
from dataclasses import dataclass
from typing import BinaryIO, Optional

from fastapi.concurrency import run_in_threadpool

from ...core.files.models import DEFAULT_CONTENT_TYPE, StoredObject
from .client import (
    COPY_CHUNK_SIZE,
    ObjectNotFoundError,
    StorageError,
    StorageInitializationError,
)

logger = logging.getLogger(__name__)


@dataclass
class GCSConfig:
    """
    Configuration for Google Cloud Storage.

    Credentials resolve in order: inline service account JSON, key file
    path, then application default credentials.
    """
    bucket_name: str
    project: Optional[str] = None
    credentials_json: Optional[str] = None
    credentials_path: Optional[str] = None


class GCSStorageClient:
    """Google Cloud Storage client for a single bucket."""

    def __init__(self, config: GCSConfig) -> None:
        """
        Initialize the GCS client.

        We import the SDK here (not at module level) because mock mode
        doesn't need it.
        """
        try:
            from google.cloud import storage
        except ImportError:
            raise ImportError(
                "google-cloud-storage is required for GCS storage. "
                "Install with: pip install google-cloud-storage"
            )

        self._config = config

        if config.credentials_json:
            try:
                info = json.loads(config.credentials_json)
            except json.JSONDecodeError as e:
                raise StorageInitializationError(
                    f"GCS credentials JSON is malformed: {e}"
                ) from e
            self._client = storage.Client.from_service_account_info(
                info, project=config.project
            )
        elif config.credentials_path:
            self._client = storage.Client.from_service_account_json(
                config.credentials_path, project=config.project
            )
        else:
            self._client = storage.Client(project=config.project)

        self._bucket = self._client.bucket(config.bucket_name)

        logger.info(
            "Initialized GCS storage client",
            extra={"bucket": config.bucket_name, "project": self._client.project}
        )

    @property
    def bucket_name(self) -> str:
        return self._config.bucket_name

    async def upload_stream(
        self,
        key: str,
        stream: BinaryIO,
        content_type: str = DEFAULT_CONTENT_TYPE,
    ) -> str:
        """Copy the stream into a new object at key."""
        await run_in_threadpool(self._write_object, key, stream, content_type)
        return key

    def _write_object(self, key: str, stream: BinaryIO, content_type: str) -> None:
        blob = self._bucket.blob(key)

        try:
            writer = blob.open(
                "wb",
                content_type=content_type or DEFAULT_CONTENT_TYPE,
                ignore_flush=True,
            )
        except Exception as e:
            logger.error(
                "Failed to open object writer",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}") from e

        try:
            shutil.copyfileobj(stream, writer, COPY_CHUNK_SIZE)
        except Exception as e:
            logger.error(
                "Failed to write object",
                extra={"key": key, "error": str(e)}
            )
            self._discard(writer, blob, key)
            raise StorageError(f"Upload failed: {e}") from e

        try:
            writer.close()
        except Exception as e:
            logger.error(
                "Failed to finalize object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Upload finalize failed: {e}") from e

        logger.debug("Uploaded object", extra={"key": key})

    def _discard(self, writer, blob, key: str) -> None:
        """
        Tear down a writer whose copy failed.

        BlobWriter has no abort, so closing ends the resumable session by
        committing what was sent; the truncated object is then deleted.
        Errors here are logged only, the copy failure is what gets raised.
        """
        for step, action in (("close", writer.close), ("delete", blob.delete)):
            try:
                action()
            except Exception as e:
                logger.warning(
                    "Cleanup after failed write did not complete",
                    extra={"key": key, "step": step, "error": str(e)}
                )

    async def download(self, key: str) -> StoredObject:
        """Read an object and its metadata from GCS."""
        return await run_in_threadpool(self._read_object, key)

    def _read_object(self, key: str) -> StoredObject:
        from google.api_core.exceptions import NotFound

        try:
            blob = self._bucket.get_blob(key)
            if blob is None:
                raise ObjectNotFoundError(key)
            data = blob.download_as_bytes()
        except ObjectNotFoundError:
            raise
        except NotFound as e:
            # deleted between the metadata fetch and the read
            raise ObjectNotFoundError(key) from e
        except Exception as e:
            logger.error(
                "Failed to download object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Download failed: {e}") from e

        return StoredObject(
            key=key,
            data=data,
            content_type=blob.content_type or DEFAULT_CONTENT_TYPE,
            size=blob.size if blob.size is not None else len(data),
        )

    async def exists(self, key: str) -> bool:
        try:
            return await run_in_threadpool(self._bucket.blob(key).exists)
        except Exception as e:
            raise StorageError(f"Existence check failed: {e}") from e

    def close(self) -> None:
        """Release the SDK's HTTP session."""
        self._client.close()

"""
S3-compatible storage backend.

Uses boto3 because the S3 API is spoken by AWS S3, Cloudflare R2, MinIO
and Google Cloud Storage's interoperability endpoint alike. Pointing
s3_endpoint_url at https://storage.googleapis.com with HMAC keys gives a
GCS bucket without the google-cloud-storage SDK.
"""

import logging
from dataclasses import dataclass
from typing import BinaryIO, Optional

from fastapi.concurrency import run_in_threadpool

from ...core.files.models import DEFAULT_CONTENT_TYPE, StoredObject
from .client import ObjectNotFoundError, StorageError

logger = logging.getLogger(__name__)

_NOT_FOUND_CODES = {"NoSuchKey", "404", "NotFound"}


@dataclass
class S3Config:
    """
    Configuration for S3-compatible storage.

    Credentials left as None fall through to boto3's own chain
    (environment, shared config, instance role).
    """
    bucket_name: str
    endpoint_url: Optional[str] = None
    access_key_id: Optional[str] = None
    secret_access_key: Optional[str] = None
    region: str = "auto"


class S3StorageClient:
    """
    S3-compatible object storage client.

    All methods are async to match the Protocol even though boto3 is
    synchronous; the blocking calls run in the thread pool.
    """

    def __init__(self, config: S3Config) -> None:
        """
        Initialize the client with boto3.

        We import boto3 here (not at module level) because mock mode
        doesn't need it.
        """
        try:
            import boto3
            from botocore.config import Config
        except ImportError:
            raise ImportError(
                "boto3 is required for S3 storage. Install with: pip install boto3"
            )

        self._config = config

        # v4 signatures and path-style addressing work across providers
        boto_config = Config(
            signature_version='s3v4',
            s3={'addressing_style': 'path'},
        )

        self._s3_client = boto3.client(
            's3',
            endpoint_url=config.endpoint_url,
            aws_access_key_id=config.access_key_id,
            aws_secret_access_key=config.secret_access_key,
            region_name=config.region,
            config=boto_config,
        )

        logger.info(
            "Initialized S3 storage client",
            extra={
                "bucket": config.bucket_name,
                "endpoint": config.endpoint_url,
            }
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
        """
        Stream a file object to the bucket.

        upload_fileobj reads the stream in parts and switches to a
        multipart upload for large files; it returns only once the upload
        is completed, so a failure to complete surfaces here.
        """
        try:
            await run_in_threadpool(
                self._s3_client.upload_fileobj,
                stream,
                self._config.bucket_name,
                key,
                ExtraArgs={'ContentType': content_type or DEFAULT_CONTENT_TYPE},
            )
        except Exception as e:
            logger.error(
                "Failed to upload object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Upload failed: {e}") from e

        logger.debug("Uploaded object", extra={"key": key})
        return key

    async def download(self, key: str) -> StoredObject:
        """Download an object with its metadata."""
        return await run_in_threadpool(self._get_object, key)

    def _get_object(self, key: str) -> StoredObject:
        from botocore.exceptions import ClientError

        try:
            response = self._s3_client.get_object(
                Bucket=self._config.bucket_name,
                Key=key,
            )
            data = response['Body'].read()
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                raise ObjectNotFoundError(key) from e
            logger.error(
                "Failed to download object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Download failed: {e}") from e
        except Exception as e:
            logger.error(
                "Failed to download object",
                extra={"key": key, "error": str(e)}
            )
            raise StorageError(f"Download failed: {e}") from e

        return StoredObject(
            key=key,
            data=data,
            content_type=response.get('ContentType') or DEFAULT_CONTENT_TYPE,
            size=response.get('ContentLength', len(data)),
        )

    async def exists(self, key: str) -> bool:
        return await run_in_threadpool(self._head_object, key)

    def _head_object(self, key: str) -> bool:
        from botocore.exceptions import ClientError

        try:
            self._s3_client.head_object(Bucket=self._config.bucket_name, Key=key)
        except ClientError as e:
            if _error_code(e) in _NOT_FOUND_CODES:
                return False
            raise StorageError(f"Existence check failed: {e}") from e
        except Exception as e:
            raise StorageError(f"Existence check failed: {e}") from e
        return True

    def close(self) -> None:
        self._s3_client.close()


def _error_code(error) -> str:
    return str(error.response.get('Error', {}).get('Code', ''))

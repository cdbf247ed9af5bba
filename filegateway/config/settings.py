"""
Application configuration using Pydantic settings.

Configuration is loaded from environment variables with sensible defaults.
Using Pydantic's BaseSettings means we get:
- Type validation at startup (fail fast if config is wrong)
- Documentation of what's required vs optional
- Easy testing with different configurations

The mock storage backend enables local development without a bucket.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    All settings can be overridden via environment variables.
    For lists (like cors_origins), use comma-separated values in env.
    """

    # API Configuration
    api_title: str = "File Gateway API"
    api_version: str = "v1"

    # Storage Configuration
    storage_backend: Literal["gcs", "s3", "mock"] = Field(
        default="gcs",
        description="Which object store to talk to. 'mock' keeps objects in memory."
    )
    storage_bucket_name: str = Field(
        default="GCSBucketName",
        description="Bucket holding every uploaded object"
    )
    storage_eager_init: bool = Field(
        default=True,
        description="Build the storage client during startup instead of on the first request."
    )

    # Google Cloud Storage
    gcs_project: Optional[str] = Field(
        default=None,
        description="GCP project. Inferred from credentials when empty."
    )
    gcs_credentials_json: str = Field(
        default="",
        description="Service account key JSON. Takes precedence over gcs_credentials_path."
    )
    gcs_credentials_path: Optional[str] = Field(
        default=None,
        description="Path to a service account key file. Application default credentials are used when neither is set."
    )

    # S3-compatible storage (AWS S3, R2, MinIO, GCS interoperability)
    s3_endpoint_url: Optional[str] = Field(
        default=None,
        description="Custom endpoint, e.g. https://storage.googleapis.com for GCS HMAC keys"
    )
    s3_access_key_id: str = Field(
        default="",
        description="S3 access key ID"
    )
    s3_secret_access_key: str = Field(
        default="",
        description="S3 secret access key"
    )
    s3_region: str = Field(
        default="auto",
        description="Region name passed to boto3. R2 and GCS accept 'auto'; AWS needs a real region."
    )

    # Application Behavior
    max_upload_size_mb: int = Field(
        default=100,
        description="Maximum total upload size in MiB. Larger bodies are rejected before any write."
    )
    upload_field_name: str = Field(
        default="FileUploadKey",
        description="Multipart form field carrying the uploaded files"
    )
    download_gzip: bool = Field(
        default=True,
        description="Gzip download bodies for clients that send Accept-Encoding: gzip"
    )
    key_timezone: str = Field(
        default="UTC",
        description="Timezone used for the MM-DD-YYYY date partition of object keys"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # CORS
    cors_origins: str = Field(
        default="*",
        description="Comma-separated list of allowed CORS origins."
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    @property
    def cors_origins_list(self) -> list[str]:
        """Parse comma-separated CORS origins into a list."""
        if self.cors_origins == "*":
            return ["*"]
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    def validate_required_fields(self) -> list[str]:
        """
        Validate that required fields are set for the selected backend.

        Returns list of missing required fields.
        This is separate from Pydantic validation because requirements
        depend on which storage backend is configured.
        """
        missing = []

        if self.storage_backend != "mock" and not self.storage_bucket_name:
            missing.append("STORAGE_BUCKET_NAME")

        # boto3 can also pick credentials up from its own chain, but a
        # custom endpoint always needs explicit keys
        if self.storage_backend == "s3" and self.s3_endpoint_url:
            if not self.s3_access_key_id:
                missing.append("S3_ACCESS_KEY_ID")
            if not self.s3_secret_access_key:
                missing.append("S3_SECRET_ACCESS_KEY")

        return missing


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Using lru_cache means we only load settings once per process.
    For tests, you can call get_settings.cache_clear() to reset.
    """
    return Settings()

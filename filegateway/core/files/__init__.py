"""
File handling logic.

Contains the stored-object model, object key derivation, and the rules for
delivering an object back to a client.
"""

from .delivery import (
    CORS_HEADERS,
    DownloadPayload,
    accepts_gzip,
    build_download_payload,
    content_disposition,
)
from .keys import ObjectKeyGenerator, derive_object_key, sanitize_filename
from .models import DEFAULT_CONTENT_TYPE, StoredObject

__all__ = [
    "CORS_HEADERS",
    "DEFAULT_CONTENT_TYPE",
    "DownloadPayload",
    "ObjectKeyGenerator",
    "StoredObject",
    "accepts_gzip",
    "build_download_payload",
    "content_disposition",
    "derive_object_key",
    "sanitize_filename",
]

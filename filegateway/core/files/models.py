"""
Domain models for stored files.

These models describe files as the gateway sees them, independent of
which object store holds the bytes or how they travel over HTTP.
"""

from dataclasses import dataclass

DEFAULT_CONTENT_TYPE = "application/octet-stream"


@dataclass(frozen=True)
class StoredObject:
    """
    An object read back from the bucket.

    Frozen because a download is a snapshot: the store may change
    afterwards but this value never does.
    """
    key: str
    data: bytes
    content_type: str = DEFAULT_CONTENT_TYPE
    size: int = -1

    def __post_init__(self) -> None:
        if not self.key:
            raise ValueError("Object key cannot be empty")
        if not self.content_type:
            object.__setattr__(self, "content_type", DEFAULT_CONTENT_TYPE)
        if self.size < 0:
            object.__setattr__(self, "size", len(self.data))

"""
Object key derivation for uploaded files.

Every upload is stored under

    <MM-DD-YYYY>/<filename><nanoseconds>_<filename>

The date prefix partitions the bucket by upload day, which keeps listings
browsable in the cloud console. The nanosecond timestamp makes each key
unique per upload event, so re-uploading the same filename never overwrites
an earlier object.
"""

import re
import threading
import time
from datetime import datetime, timezone, tzinfo
from typing import Callable, Optional
from zoneinfo import ZoneInfo

DATE_FORMAT = "%m-%d-%Y"
KEY_DELIMITER = "_"
FALLBACK_FILENAME = "file"

_CONTROL_CHARS = re.compile(r"[\x00-\x1f\x7f]")


def sanitize_filename(filename: Optional[str]) -> str:
    """
    Reduce a client-supplied filename to something safe inside a key.

    Browsers on Windows have been known to send full paths, and anything
    with a slash would add path segments that the download route cannot
    address. Only the last path component is kept, control characters are
    dropped, and an empty result falls back to "file".
    """
    if not filename:
        return FALLBACK_FILENAME

    name = re.split(r"[\\/]", filename)[-1]
    name = _CONTROL_CHARS.sub("", name).strip()

    if name in ("", ".", ".."):
        return FALLBACK_FILENAME
    return name


def format_date_partition(now_ns: int, tz: tzinfo = timezone.utc) -> str:
    """Format a nanosecond timestamp as the MM-DD-YYYY key prefix."""
    moment = datetime.fromtimestamp(now_ns // 1_000_000_000, tz=tz)
    return moment.strftime(DATE_FORMAT)


def derive_object_key(
    original_filename: str,
    now_ns: Optional[int] = None,
    tz: tzinfo = timezone.utc,
) -> str:
    """
    Build the object key for a single upload.

    The derived name is the filename with the timestamp digits appended
    directly (no separator), then the original filename follows after an
    underscore.

        >>> derive_object_key("a.txt", now_ns=1704067200000000000)
        '01-01-2024/a.txt1704067200000000000_a.txt'
    """
    if now_ns is None:
        now_ns = time.time_ns()

    date_part = format_date_partition(now_ns, tz)
    derived_name = f"{original_filename}{now_ns}"
    return f"{date_part}/{derived_name}{KEY_DELIMITER}{original_filename}"


class ObjectKeyGenerator:
    """
    Issues object keys with strictly increasing timestamps.

    time.time_ns() is only as fine as the platform clock. On some systems
    two calls within the same tick return the same value, which would give
    two uploads of the same filename the same key. The generator remembers
    the last timestamp it handed out and bumps by one nanosecond when the
    clock has not moved.
    """

    def __init__(
        self,
        clock: Callable[[], int] = time.time_ns,
        tz: tzinfo = timezone.utc,
    ) -> None:
        self._clock = clock
        self._tz = tz
        self._last_ns = 0
        self._lock = threading.Lock()

    @classmethod
    def for_timezone(cls, name: str) -> "ObjectKeyGenerator":
        """Build a generator whose date partition uses the named timezone."""
        tz = timezone.utc if name.upper() == "UTC" else ZoneInfo(name)
        return cls(tz=tz)

    def next_timestamp(self) -> int:
        with self._lock:
            now_ns = self._clock()
            if now_ns <= self._last_ns:
                now_ns = self._last_ns + 1
            self._last_ns = now_ns
            return now_ns

    def derive(self, original_filename: Optional[str]) -> str:
        """Sanitize the filename and derive its key."""
        name = sanitize_filename(original_filename)
        return derive_object_key(name, now_ns=self.next_timestamp(), tz=self._tz)

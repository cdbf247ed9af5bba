"""
Rules for handing a stored object back to an HTTP client.

Kept free of FastAPI so the header logic can be tested on its own. The
route only has to pair these headers with the encoded body.
"""

import gzip
import re
from dataclasses import dataclass, field
from urllib.parse import quote

from .models import StoredObject

INLINE_CONTENT_MARKERS = ("image", "pdf")

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "POST, GET, OPTIONS, PUT, DELETE",
}

# RFC 7230 token characters
_TOKEN = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")
# printable ASCII that can sit inside a quoted-string without escaping
_QUOTABLE = re.compile(r"[ !#-\[\]-~]+")


def format_filename_param(filename: str) -> str:
    """
    Render the filename parameter of Content-Disposition (RFC 6266).

    Plain tokens such as the keys this service issues go out bare.
    Printable ASCII with separators is quoted. Anything else (non-ASCII,
    quotes, backslashes, control characters) is percent-encoded as
    filename*=UTF-8'', the same fallback Starlette's FileResponse uses,
    since header values must encode as Latin-1.
    """
    if _TOKEN.fullmatch(filename):
        return f"filename={filename}"
    if _QUOTABLE.fullmatch(filename):
        return f'filename="{filename}"'
    return f"filename*=UTF-8''{quote(filename, safe='')}"


def content_disposition(content_type: str, filename: str) -> str:
    """
    Build the Content-Disposition header value.

    Images and PDFs render in the browser tab; everything else is
    offered as a download.
    """
    lowered = (content_type or "").lower()
    disposition = "attachment"
    if any(marker in lowered for marker in INLINE_CONTENT_MARKERS):
        disposition = "inline"
    return f"{disposition}; {format_filename_param(filename)}"


def accepts_gzip(accept_encoding: str | None) -> bool:
    """True when the Accept-Encoding header lists gzip with a non-zero q."""
    if not accept_encoding:
        return False

    for item in accept_encoding.split(","):
        parts = [p.strip() for p in item.split(";")]
        coding = parts[0].lower()
        if coding not in ("gzip", "*"):
            continue
        for param in parts[1:]:
            if param.startswith("q="):
                try:
                    if float(param[2:]) == 0:
                        break
                except ValueError:
                    break
        else:
            return True
    return False


@dataclass
class DownloadPayload:
    """
    Body plus headers ready to be written to the response.

    Content-Type is part of the headers so the framework does not append
    a charset to the object's stored type.
    """
    body: bytes
    headers: dict[str, str] = field(default_factory=dict)


def build_download_payload(
    stored: StoredObject,
    filename: str,
    compress: bool,
) -> DownloadPayload:
    """
    Encode a stored object for the response.

    Content-Length always describes the bytes actually sent, so when the
    body is gzipped it is the compressed length, not the object size.
    """
    body = stored.data
    headers = {
        "Content-Type": stored.content_type,
        "Content-Disposition": content_disposition(stored.content_type, filename),
        **CORS_HEADERS,
    }

    if compress:
        body = gzip.compress(body)
        headers["Content-Encoding"] = "gzip"
        headers["Vary"] = "Accept-Encoding"

    headers["Content-Length"] = str(len(body))

    return DownloadPayload(body=body, headers=headers)

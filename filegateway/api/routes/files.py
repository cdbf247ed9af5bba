"""
File transfer endpoints.

Two endpoints move files between clients and the bucket:
- POST /upload stores every file in a multipart form under a derived key
- GET /file/{dir}/{filename} returns a stored object

Uploads are streamed from the parsed form's temporary files straight to
the object store. Size limits are enforced before the first byte is
written, so an oversized request never leaves partial objects behind.
"""

import logging

from fastapi import APIRouter, HTTPException, Request, Response, status
from pydantic import BaseModel, Field
from starlette.datastructures import UploadFile

from ...core.files.delivery import accepts_gzip, build_download_payload
from ...core.files.models import DEFAULT_CONTENT_TYPE
from ...infrastructure.storage.client import ObjectNotFoundError, StorageError
from ..dependencies import KeyGeneratorDep, SettingsDep, StorageClientDep

logger = logging.getLogger(__name__)

router = APIRouter()


# ---------------------------------------------------------------------------
# Request/Response Models
# ---------------------------------------------------------------------------

class UploadResponse(BaseModel):
    """Response after storing uploaded files."""
    status: str = Field(default="OK", description="Outcome of the upload")
    message: str = Field(description="Status message")
    links: list[str] = Field(description="Object keys of the stored files, in upload order")


# ---------------------------------------------------------------------------
# Helper Functions
# ---------------------------------------------------------------------------

def _part_size(upload: UploadFile) -> int:
    """Size of a parsed file part, measuring the spooled file if needed."""
    if upload.size is not None:
        return upload.size

    position = upload.file.tell()
    upload.file.seek(0, 2)
    size = upload.file.tell()
    upload.file.seek(position)
    return size


def _too_large(max_mb: int) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
        detail=f"Upload too large. Maximum size: {max_mb}MB",
    )


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@router.post(
    "/upload",
    response_model=UploadResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload files",
    description="Store every file of a multipart form in the bucket",
    responses={
        400: {"description": "Malformed form or no files"},
        413: {"description": "Body exceeds the upload size limit"},
        502: {"description": "Object store rejected a write"},
        503: {"description": "Storage backend unavailable"},
    },
)
async def upload_files(
    request: Request,
    settings: SettingsDep,
    storage: StorageClientDep,
    key_generator: KeyGeneratorDep,
) -> UploadResponse:
    """
    Upload files to the bucket.

    Files are read from the form field configured as upload_field_name.
    Each file gets its own key; the response lists them in order.

    Processing stops at the first file that fails. Files stored before
    the failure stay in the bucket.
    """
    max_bytes = settings.max_upload_size_bytes

    # reject on the declared length before parsing anything
    content_length = request.headers.get("content-length")
    if content_length is not None:
        try:
            declared = int(content_length)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid Content-Length header",
            )
        if declared > max_bytes:
            logger.warning(
                "Upload rejected by declared length",
                extra={"content_length": declared, "max_bytes": max_bytes}
            )
            raise _too_large(settings.max_upload_size_mb)

    async with request.form() as form:
        files = [
            item for item in form.getlist(settings.upload_field_name)
            if isinstance(item, UploadFile)
        ]

        if not files:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail=f"No files found in form field '{settings.upload_field_name}'",
            )

        # chunked bodies carry no Content-Length, so check the parsed parts too
        total_size = sum(_part_size(f) for f in files)
        if total_size > max_bytes:
            logger.warning(
                "Upload rejected by total part size",
                extra={"total_bytes": total_size, "max_bytes": max_bytes}
            )
            raise _too_large(settings.max_upload_size_mb)

        logger.info(
            "Upload started",
            extra={"file_count": len(files), "total_bytes": total_size}
        )

        links: list[str] = []
        for upload in files:
            key = key_generator.derive(upload.filename)

            try:
                await upload.seek(0)
                await storage.upload_stream(
                    key=key,
                    stream=upload.file,
                    content_type=upload.content_type or DEFAULT_CONTENT_TYPE,
                )
            except StorageError as e:
                logger.error(
                    "Failed to store uploaded file",
                    extra={
                        "upload_filename": upload.filename,
                        "key": key,
                        "stored_before_failure": len(links),
                        "error": str(e),
                    }
                )
                raise HTTPException(
                    status_code=status.HTTP_502_BAD_GATEWAY,
                    detail=f"Failed to store file '{upload.filename}'",
                )

            links.append(key)
            logger.info("File stored", extra={"key": key})

    return UploadResponse(
        status="OK",
        message="Files Uploaded Successfully",
        links=links,
    )


@router.get(
    "/file/{dir}/{filename}",
    summary="Download a file",
    description="Return a stored object, gzip-encoded when the client accepts it",
    response_class=Response,
    responses={
        200: {"description": "Object bytes"},
        404: {"description": "No object at this key"},
        502: {"description": "Object store read failed"},
        503: {"description": "Storage backend unavailable"},
    },
)
async def download_file(
    dir: str,
    filename: str,
    request: Request,
    settings: SettingsDep,
    storage: StorageClientDep,
) -> Response:
    """
    Download a stored object.

    The key is dir/filename, matching the keys returned by the upload
    endpoint. The whole object is read before responding so that
    Content-Length is exact.
    """
    key = f"{dir}/{filename}"

    try:
        stored = await storage.download(key)
    except ObjectNotFoundError:
        logger.info("Requested object not found", extra={"key": key})
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="File not found",
        )
    except StorageError as e:
        logger.error(
            "Failed to fetch object",
            extra={"key": key, "error": str(e)}
        )
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Failed to read file from storage",
        )

    compress = settings.download_gzip and accepts_gzip(
        request.headers.get("accept-encoding")
    )
    payload = build_download_payload(stored, filename, compress=compress)

    logger.debug(
        "Serving object",
        extra={
            "key": key,
            "content_type": stored.content_type,
            "size_bytes": stored.size,
            "gzip": compress,
        }
    )

    return Response(
        content=payload.body,
        status_code=status.HTTP_200_OK,
        headers=payload.headers,
    )

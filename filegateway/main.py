"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order
- Can create multiple app instances if needed (e.g., for testing)

For local development:
    STORAGE_BACKEND=mock uvicorn filegateway.main:app --reload

For production:
    gunicorn filegateway.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .api.routes import files, health
from .config.settings import Settings, get_settings
from .core.files.keys import ObjectKeyGenerator
from .infrastructure.storage.client import (
    StorageClient,
    StorageInitializationError,
    create_storage_client,
)
from .infrastructure.storage.provider import StorageClientProvider

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    On startup the storage client is built eagerly (unless disabled), so
    the first request does not pay for credential loading. A failure here
    is logged, not fatal: the provider retries on the next request.
    On shutdown the client's HTTP session is released.
    """
    settings: Settings = app.state.settings

    logger.info(
        "File gateway starting",
        extra={
            "version": settings.api_version,
            "storage_backend": settings.storage_backend,
            "bucket": settings.storage_bucket_name,
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    provider: StorageClientProvider = app.state.storage_provider
    if settings.storage_eager_init:
        try:
            await provider.get()
        except StorageInitializationError as e:
            logger.error(
                "Storage client not available at startup, will retry on demand",
                extra={"error": str(e)}
            )

    yield

    await provider.close()
    logger.info("File gateway shutting down")


def create_app(
    settings: Optional[Settings] = None,
    storage_factory: Optional[Callable[[], StorageClient]] = None,
) -> FastAPI:
    """
    Application factory.

    Args:
        settings: Settings to use instead of the environment-derived ones.
            Route dependencies see the same instance.
        storage_factory: Builds the storage client. Defaults to the backend
            selected in settings; tests pass their own.
    """
    explicit_settings = settings is not None
    settings = settings or get_settings()

    logging.getLogger().setLevel(settings.log_level.upper())

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Upload files to an object-storage bucket and download them again.

        ## Workflow

        1. **Upload**: `POST /upload`
           - Multipart form, files in the `FileUploadKey` field
           - Returns the object key of every stored file

        2. **Download**: `GET /file/{dir}/{filename}`
           - `dir/filename` is a key returned by the upload
           - Images and PDFs are served inline, everything else as attachment
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    if storage_factory is None:
        def storage_factory() -> StorageClient:
            return create_storage_client(settings)

    app.state.settings = settings
    app.state.storage_provider = StorageClientProvider(storage_factory)
    app.state.key_generator = ObjectKeyGenerator.for_timezone(settings.key_timezone)

    if explicit_settings:
        app.dependency_overrides[get_settings] = lambda: settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_methods=["POST", "GET", "OPTIONS", "PUT", "DELETE"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        files.router,
        tags=["Files"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - service summary."""
        return {
            "message": settings.api_title,
            "version": __version__,
            "upload": "/upload",
            "download": "/file/{dir}/{filename}",
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Prevents stack traces from leaking to clients. We log the full
        error server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"}
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "storage_backend": settings.storage_backend,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "filegateway.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )

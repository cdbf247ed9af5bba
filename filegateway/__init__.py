"""
File Gateway - upload and download files through an object-storage bucket.

This package contains the complete application:
- core: Framework-agnostic file handling (keys, delivery rules)
- infrastructure: Object storage backends and the shared client provider
- api: FastAPI routes and dependencies
- config: Application configuration
"""

__version__ = "0.1.0"

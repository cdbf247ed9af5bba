"""
Infrastructure layer - external service integrations.

- storage: Object storage (Google Cloud Storage, S3-compatible, in-memory)

These wrappers translate between SDK formats and our domain models.
"""

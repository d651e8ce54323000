"""Infrastructure layer for disk_images app.

This package contains integrations with external systems:
- Custom storage backend (S3/MinIO/R2) with multipart primitives
- Object naming and metadata helpers

Keep infrastructure concerns separate from business logic.
"""

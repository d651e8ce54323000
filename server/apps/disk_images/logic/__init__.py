"""Business logic layer for disk_images app.

This package contains all business logic for disk image operations:
- Upload size routing (simple vs multipart)
- Multipart sessions: open, submit parts, complete, abort
- Image listing, upload, download and delete

All business logic should be implemented here, separate from
views (HTTP layer) and infrastructure (external systems).
"""

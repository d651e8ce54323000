"""Disk image upload settings."""

from server.settings.components import config

_MIB = 1024 * 1024

# Only object names with this suffix are accepted and listed
DISK_IMAGES_SUFFIX = config('DISK_IMAGES_SUFFIX', default='.iso')

# Upload limits
DISK_IMAGES_MAX_SIZE = config(
    'DISK_IMAGES_MAX_SIZE',
    cast=int,
    default=10 * 1024 * _MIB,
)
DISK_IMAGES_MULTIPART_THRESHOLD = config(
    'DISK_IMAGES_MULTIPART_THRESHOLD',
    cast=int,
    default=100 * _MIB,
)
DISK_IMAGES_PART_SIZE = config(
    'DISK_IMAGES_PART_SIZE',
    cast=int,
    default=10 * _MIB,
)

# Multipart driver
DISK_IMAGES_UPLOAD_WORKERS = config(
    'DISK_IMAGES_UPLOAD_WORKERS',
    cast=int,
    default=4,
)
DISK_IMAGES_PART_ATTEMPTS = config(
    'DISK_IMAGES_PART_ATTEMPTS',
    cast=int,
    default=3,
)
DISK_IMAGES_RETRY_DELAY = config(
    'DISK_IMAGES_RETRY_DELAY',
    cast=float,
    default=1.0,
)

# Sessions older than this are aborted by `abort_stale_uploads`
DISK_IMAGES_STALE_UPLOAD_HOURS = config(
    'DISK_IMAGES_STALE_UPLOAD_HOURS',
    cast=int,
    default=24,
)

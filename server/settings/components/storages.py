"""Django storage configuration for S3-compatible backends.

This module configures django-storages to work with:
- MinIO for local development
- Cloudflare R2 for production

Both are S3-compatible and use the same S3Storage backend.
"""

from typing import Any, Final

from botocore.config import Config

from server.settings.components import config

# Seconds before a stalled connect or read is treated as a failed request
_STORE_TIMEOUT: Final = config('DISK_IMAGES_PART_TIMEOUT', cast=int, default=300)

# Storage configuration dictionary
# Disk images live in the bucket, static files stay local
STORAGES: Final[dict[str, dict[str, Any]]] = {
    'default': {
        'BACKEND': 'server.apps.disk_images.infrastructure.storage.ImageStorage',
        'OPTIONS': {
            'bucket_name': config(
                'AWS_STORAGE_BUCKET_NAME',
                default='disk-images',
            ),
            'access_key': config('AWS_ACCESS_KEY_ID', default=None),
            'secret_key': config('AWS_SECRET_ACCESS_KEY', default=None),
            'endpoint_url': config(
                'AWS_S3_ENDPOINT_URL',
                default=None,
            ),
            'region_name': config(
                'AWS_S3_REGION_NAME',
                default='us-east-1',
            ),
            'file_overwrite': True,  # Same name replaces the image
            'default_acl': None,  # Inherit bucket ACL
            'client_config': Config(
                connect_timeout=_STORE_TIMEOUT,
                read_timeout=_STORE_TIMEOUT,
                retries={'mode': 'standard', 'total_max_attempts': 1},
                s3={'addressing_style': 'path'},
            ),
        },
    },
    'staticfiles': {
        'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage',
    },
}

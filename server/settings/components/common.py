"""Core Django settings for the disk image store."""

from typing import Final

from server.settings.components import config

SECRET_KEY = config('DJANGO_SECRET_KEY', default='insecure-development-key')

INSTALLED_APPS: Final = (
    'server.apps.disk_images',
)

MIDDLEWARE: Final = (
    'server.apps.disk_images.middleware.CorsMiddleware',
    'django.middleware.security.SecurityMiddleware',
    'django.middleware.common.CommonMiddleware',
    'server.apps.disk_images.middleware.ApiErrorMiddleware',
)

ROOT_URLCONF = 'server.urls'

WSGI_APPLICATION = 'server.wsgi.application'

# The service keeps no state of its own, everything lives in the bucket
DATABASES: Final[dict[str, dict[str, str]]] = {}

USE_TZ = True
TIME_ZONE = 'UTC'

# Upload-part bodies are read whole into memory, one part per request
DATA_UPLOAD_MAX_MEMORY_SIZE = None

# Spool form uploads above this size to a temporary file
FILE_UPLOAD_MAX_MEMORY_SIZE = config(
    'FILE_UPLOAD_MAX_MEMORY_SIZE',
    cast=int,
    default=10 * 1024 * 1024,
)

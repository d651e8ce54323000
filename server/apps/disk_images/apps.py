"""Django app configuration for disk_images app."""

from django.apps import AppConfig


class DiskImagesConfig(AppConfig):
    """Configuration for disk_images app."""

    name = 'server.apps.disk_images'
    verbose_name = 'Disk images'

"""Choose between simple and multipart uploads by file size."""

from typing import Final

from django.conf import settings

from server.apps.disk_images.entities import UploadPath
from server.apps.disk_images.exceptions import InvalidInputError

_DEFAULT_THRESHOLD: Final = 100 * 1024 * 1024  # 100 MiB


def get_multipart_threshold() -> int:
    """Get the largest size uploaded in a single request.

    Returns:
        Threshold in bytes from settings or 100 MiB.
    """
    return getattr(
        settings,
        'DISK_IMAGES_MULTIPART_THRESHOLD',
        _DEFAULT_THRESHOLD,
    )


def choose_upload_path(size: int, threshold: int | None = None) -> UploadPath:
    """Classify an upload by its size.

    A file exactly at the threshold still goes through the simple path.

    Args:
        size: File size in bytes.
        threshold: Override for the configured threshold.

    Returns:
        UploadPath.SIMPLE or UploadPath.MULTIPART.

    Raises:
        InvalidInputError: If size is negative.
    """
    if size < 0:
        raise InvalidInputError(f'File size cannot be negative: {size}')

    if threshold is None:
        threshold = get_multipart_threshold()

    if size <= threshold:
        return UploadPath.SIMPLE
    return UploadPath.MULTIPART

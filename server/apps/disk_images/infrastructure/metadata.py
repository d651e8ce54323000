"""Object naming and metadata utilities for disk images."""

from datetime import UTC, datetime
from pathlib import PurePosixPath
from typing import Final
from urllib.parse import quote

from django.conf import settings
from django.utils.http import content_disposition_header

from server.apps.disk_images.exceptions import InvalidKeyError

_DEFAULT_SUFFIX: Final = '.iso'

OCTET_STREAM: Final = 'application/octet-stream'


def get_managed_suffix() -> str:
    """Get the file suffix of managed disk images.

    Returns:
        Lowercase suffix from settings, '.iso' by default.
    """
    return getattr(settings, 'DISK_IMAGES_SUFFIX', _DEFAULT_SUFFIX).lower()


def is_managed_name(name: str) -> bool:
    """Check whether an object name carries the managed suffix.

    Args:
        name: Object name in the bucket.

    Returns:
        True if the name ends with the suffix, ignoring case.
    """
    return name.lower().endswith(get_managed_suffix())


def validate_image_name(name: str | None) -> str:
    """Validate an object name for upload.

    Args:
        name: Proposed object name, usually the client's file name.

    Returns:
        The name with surrounding whitespace removed.

    Raises:
        InvalidKeyError: If the name is empty, is a bare suffix or does
            not end with the managed suffix.
    """
    cleaned = (name or '').strip()
    if not cleaned:
        raise InvalidKeyError('File name is required')

    if not is_managed_name(cleaned):
        raise InvalidKeyError(
            f'Only {get_managed_suffix()} files can be uploaded',
        )

    if extract_filename(cleaned).lower() == get_managed_suffix():
        raise InvalidKeyError(f'Invalid file name: {cleaned}')

    return cleaned


def extract_filename(name: str) -> str:
    """Extract the last path component of an object name.

    Args:
        name: Object name (e.g., 'mirrors/debian-12.iso').

    Returns:
        File name (e.g., 'debian-12.iso').
    """
    return PurePosixPath(name).name


def attachment_header(name: str) -> str:
    """Build a Content-Disposition value that downloads the object.

    Args:
        name: Object name.

    Returns:
        Header value such as 'attachment; filename="debian-12.iso"'.
    """
    return content_disposition_header(
        as_attachment=True,
        filename=extract_filename(name),
    )


def build_object_metadata(
    name: str,
    extra: dict[str, str] | None = None,
) -> dict[str, str]:
    """Build user metadata stored alongside an uploaded image.

    Args:
        name: Object name.
        extra: Caller supplied metadata merged over the defaults.

    Returns:
        Metadata dictionary with 'uploaded-at' and 'original-name'.
    """
    metadata = {
        'uploaded-at': datetime.now(UTC).isoformat(),
        # S3 metadata travels in headers and must stay ASCII
        'original-name': quote(extract_filename(name)),
    }
    if extra:
        metadata.update(extra)
    return metadata


def normalize_etag(etag: str | None) -> str:
    """Strip the quotes S3 puts around etags.

    Args:
        etag: Raw etag from a store response, possibly missing.

    Returns:
        Unquoted etag, empty string if there was none.
    """
    if not etag:
        return ''
    return etag.strip('"')

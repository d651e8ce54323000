"""Business logic for disk image operations."""

import logging
import os
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, BinaryIO, Final

from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.core.files.base import File as DjangoFile
from django.core.files.storage import default_storage

from server.apps.disk_images.entities import (
    FileDescriptor,
    ImageDownload,
    UploadPath,
    UploadResult,
)
from server.apps.disk_images.exceptions import (
    FileTooLargeError,
    InvalidInputError,
    NotFoundError,
    StoreError,
)
from server.apps.disk_images.infrastructure.metadata import (
    is_managed_name,
    validate_image_name,
)
from server.apps.disk_images.logic.multipart import (
    ProgressCallback,
    upload_multipart,
)
from server.apps.disk_images.logic.routing import choose_upload_path

if TYPE_CHECKING:
    from server.apps.disk_images.infrastructure.storage import ImageStorage

logger = logging.getLogger(__name__)

_DEFAULT_MAX_SIZE: Final = 10 * 1024 * 1024 * 1024  # 10 GiB


def _get_storage() -> 'ImageStorage':
    """Get the configured default storage backend.

    Returns:
        ImageStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


def get_max_size() -> int:
    """Get the largest accepted upload.

    Returns:
        Maximum size in bytes from settings or 10 GiB.
    """
    return getattr(settings, 'DISK_IMAGES_MAX_SIZE', _DEFAULT_MAX_SIZE)


def list_images() -> list[FileDescriptor]:
    """List stored disk images.

    Joins the bucket listing with a metadata lookup per object. Objects
    without the managed suffix are skipped.

    Returns:
        Descriptors sorted by name.

    Raises:
        StoreError: If the store cannot be listed.
    """
    storage = _get_storage()

    try:
        summaries = storage.list_objects()
        images = [
            _describe(storage, summary)
            for summary in summaries
            if is_managed_name(summary['key'])
        ]
    except (ClientError, BotoCoreError) as error:
        raise StoreError(f'Failed to list files: {error}') from error

    logger.debug('Listed %d images', len(images))
    return sorted(images, key=lambda image: image.name)


def _describe(
    storage: 'ImageStorage',
    summary: dict,
) -> FileDescriptor:
    """Build a listing entry from a listing summary and a head lookup.

    Args:
        storage: Storage backend.
        summary: Entry from ImageStorage.list_objects().

    Returns:
        Descriptor, with an empty etag if the object disappeared between
        the listing and the lookup.
    """
    head = storage.head(summary['key']) or {}
    return FileDescriptor(
        name=summary['key'],
        size=summary['size'],
        last_modified=summary['last_modified'] or datetime.now(UTC),
        etag=head.get('etag', ''),
    )


def upload_image(
    name: str | None,
    file_obj: BinaryIO | DjangoFile,
    size: int | None = None,
    progress: ProgressCallback | None = None,
    **multipart_options: Any,
) -> UploadResult:
    """Upload a disk image, choosing simple or multipart by size.

    Args:
        name: Object name, usually the client's file name.
        file_obj: Seekable file-like object with the image content.
        size: Size in bytes, read from file_obj when omitted.
        progress: Called with (uploaded_parts, part_count) on the
            multipart path.
        multipart_options: Overrides passed to upload_multipart, such as
            part_size or max_workers.

    Returns:
        Name, size and the path the upload took.

    Raises:
        InvalidKeyError: If the name lacks the managed suffix.
        InvalidInputError: If the file is empty.
        FileTooLargeError: If the file exceeds the maximum size.
        StoreError: If the store fails the upload.
    """
    key = validate_image_name(name)
    if size is None:
        size = _get_file_size(file_obj)

    if size <= 0:
        raise InvalidInputError('File is empty')

    max_size = get_max_size()
    if size > max_size:
        raise FileTooLargeError(size_bytes=size, max_bytes=max_size)

    path = choose_upload_path(size)
    logger.info('Uploading image %s (%d bytes) via %s', key, size, path.value)

    if path is UploadPath.SIMPLE:
        _upload_simple(key, file_obj)
    else:
        file_obj.seek(0)
        upload_multipart(
            key,
            file_obj,
            size,
            progress=progress,
            **multipart_options,
        )

    return UploadResult(name=key, size=size, path=path)


def _upload_simple(key: str, file_obj: BinaryIO | DjangoFile) -> None:
    """Store a small image with one request.

    Args:
        key: Validated object name.
        file_obj: File content.

    Raises:
        StoreError: If the store fails the upload.
    """
    storage = _get_storage()
    try:
        storage.save(key, file_obj)
    except (ClientError, BotoCoreError) as error:
        raise StoreError(f'Upload failed: {error}') from error


def _get_file_size(file_obj: BinaryIO | DjangoFile) -> int:
    """Get file size from file object.

    Args:
        file_obj: File-like object.

    Returns:
        File size in bytes.
    """
    if hasattr(file_obj, 'size'):
        return file_obj.size
    file_obj.seek(0, os.SEEK_END)
    file_size = file_obj.tell()
    file_obj.seek(0)
    return file_size


def download_image(name: str) -> ImageDownload:
    """Open a stored image for streaming.

    Args:
        name: Object name.

    Returns:
        Download with the body stream and its size.

    Raises:
        NotFoundError: If no object has that name.
        StoreError: If the store fails the request.
    """
    storage = _get_storage()
    try:
        stored = storage.get(name)
    except (ClientError, BotoCoreError) as error:
        raise StoreError(f'Download failed: {error}') from error

    if stored is None:
        logger.info('Image not found for download: %s', name)
        raise NotFoundError(f'File not found: {name}')

    return ImageDownload(
        name=name,
        size=stored['size'],
        etag=stored['etag'],
        body=stored['body'],
    )


def delete_image(name: str) -> None:
    """Delete a stored image.

    Args:
        name: Object name.

    Raises:
        NotFoundError: If no object has that name.
        StoreError: If the store fails the request.
    """
    storage = _get_storage()
    try:
        if storage.head(name) is None:
            logger.info('Image not found for delete: %s', name)
            raise NotFoundError(f'File not found: {name}')
        storage.delete(name)
    except (ClientError, BotoCoreError) as error:
        raise StoreError(f'Delete failed: {error}') from error

    logger.info('Image deleted: %s', name)

"""Shared fixtures for disk_images app tests."""

import boto3
import pytest
from django.core.files.base import ContentFile
from moto import mock_aws

MIB = 1024 * 1024

# moto enforces the S3 minimum for every part but the last one
PART_SIZE = 5 * MIB
THRESHOLD = 6 * MIB


@pytest.fixture(autouse=True)
def upload_settings(settings):
    """Shrink upload limits so multipart tests stay small and fast.

    Args:
        settings: pytest-django settings fixture.

    Returns:
        Patched settings.
    """
    settings.DISK_IMAGES_PART_SIZE = PART_SIZE
    settings.DISK_IMAGES_MULTIPART_THRESHOLD = THRESHOLD
    settings.DISK_IMAGES_UPLOAD_WORKERS = 2
    settings.DISK_IMAGES_PART_ATTEMPTS = 3
    settings.DISK_IMAGES_RETRY_DELAY = 0
    return settings


@pytest.fixture
def mock_s3():
    """Mock S3 service with disk-images bucket.

    Yields:
        boto3 S3 resource with disk-images bucket created.
    """
    with mock_aws():
        # Create S3 resource
        conn = boto3.resource('s3', region_name='us-east-1')

        # Create bucket
        conn.create_bucket(Bucket='disk-images')

        yield conn


@pytest.fixture
def bucket(mock_s3):
    """Get the mocked disk-images bucket.

    Args:
        mock_s3: Mock S3 fixture.

    Returns:
        boto3 Bucket resource.
    """
    return mock_s3.Bucket('disk-images')


@pytest.fixture
def image_bytes():
    """Build deterministic image content of a given size.

    Returns:
        Function mapping a size in bytes to content of that size.
    """
    def factory(size: int) -> bytes:
        pattern = bytes(range(251))
        repeats = size // len(pattern) + 1
        return (pattern * repeats)[:size]

    return factory


@pytest.fixture
def small_image():
    """Small disk image uploaded in one request.

    Returns:
        ContentFile named debian-12.iso.
    """
    return ContentFile(b'small disk image content', name='debian-12.iso')


@pytest.fixture
def stored_image(bucket):
    """Put an image straight into the mocked bucket.

    Args:
        bucket: Mocked bucket fixture.

    Returns:
        Name of the stored object.
    """
    bucket.put_object(Key='alpine-3.20.iso', Body=b'alpine image bytes')
    return 'alpine-3.20.iso'


@pytest.fixture
def open_uploads(mock_s3):
    """List multipart uploads the mocked store still holds.

    Args:
        mock_s3: Mock S3 fixture.

    Returns:
        Function returning the open uploads of the bucket.
    """
    def list_open() -> list[dict]:
        response = mock_s3.meta.client.list_multipart_uploads(
            Bucket='disk-images',
        )
        return response.get('Uploads', [])

    return list_open

"""Custom storage backend for S3-compatible storage."""

import logging
from collections.abc import Sequence
from typing import Any, Final, final, override

from botocore.exceptions import ClientError
from storages.backends.s3 import S3Storage

from server.apps.disk_images.entities import PartRecord
from server.apps.disk_images.infrastructure.metadata import (
    OCTET_STREAM,
    attachment_header,
    build_object_metadata,
    normalize_etag,
)

logger = logging.getLogger(__name__)

# Error codes S3-compatible stores use for an absent object
_MISSING_CODES: Final = frozenset(('404', 'NoSuchKey', 'NotFound'))


def error_code(error: ClientError) -> str:
    """Get the S3 error code from a botocore ClientError.

    Args:
        error: Error raised by a boto3 call.

    Returns:
        Error code such as 'NoSuchUpload', empty string if absent.
    """
    return error.response.get('Error', {}).get('Code', '')


@final
class ImageStorage(S3Storage):
    """Custom S3 storage backend for disk images.

    Extends django-storages S3Storage with:
    - Download-friendly object parameters on every write
    - Listing and head lookups shaped for the image listing
    - Multipart upload primitives (create, part, complete, abort)
    - Enhanced error logging
    """

    @property
    def s3_client(self) -> Any:
        """Low level boto3 client bound to this thread's connection."""
        return self.connection.meta.client

    @override
    def get_object_parameters(self, name: str) -> dict[str, Any]:
        """Get parameters applied to every object written by this storage.

        Args:
            name: Object name.

        Returns:
            boto3 ExtraArgs with content type, disposition and metadata.
        """
        params = super().get_object_parameters(name)
        params.update(
            ContentType=OCTET_STREAM,
            ContentDisposition=attachment_header(name),
            Metadata=build_object_metadata(name),
        )
        return params

    @override
    def save(  # noqa: WPS211
        self,
        name: str,
        content: Any,
        max_length: int | None = None,
    ) -> str:
        """Save file to S3 with error handling and logging.

        Args:
            name: Object name for the file.
            content: File content (file-like object).
            max_length: Optional maximum length for the filename.

        Returns:
            Actual object name used.

        Raises:
            Exception: If S3 upload fails.
        """
        try:
            logger.info('Uploading file to storage: %s', name)
            saved_name = super().save(name, content, max_length)
            logger.info('Successfully uploaded file: %s', saved_name)
        except Exception:
            logger.exception('Failed to upload file to storage: %s', name)
            raise
        else:
            return saved_name

    @override
    def delete(self, name: str) -> None:
        """Delete file from S3 with error handling and logging.

        Args:
            name: Object name of file to delete.

        Raises:
            Exception: If S3 delete fails.
        """
        try:
            logger.info('Deleting file from storage: %s', name)
            super().delete(name)
            logger.info('Successfully deleted file: %s', name)
        except Exception:
            logger.exception('Failed to delete file from storage: %s', name)
            raise

    def list_objects(self) -> list[dict[str, Any]]:
        """List every object in the bucket.

        Returns:
            Dicts with 'key', 'size' and 'last_modified'.

        Raises:
            Exception: If the listing fails.
        """
        try:
            summaries = [
                {
                    'key': summary.key,
                    'size': summary.size or 0,
                    'last_modified': summary.last_modified,
                }
                for summary in self.bucket.objects.all()
            ]
        except Exception:
            logger.exception('Failed to list bucket: %s', self.bucket_name)
            raise
        logger.debug('Listed %d objects', len(summaries))
        return summaries

    def head(self, name: str) -> dict[str, Any] | None:
        """Look up object metadata without fetching the body.

        Args:
            name: Object name.

        Returns:
            Dict with 'size', 'etag', 'last_modified' and 'metadata',
            or None if the object does not exist.

        Raises:
            ClientError: If the store fails for any other reason.
        """
        try:
            response = self.s3_client.head_object(
                Bucket=self.bucket_name,
                Key=name,
            )
        except ClientError as error:
            if error_code(error) in _MISSING_CODES:
                return None
            logger.exception('Failed to read metadata: %s', name)
            raise

        return {
            'size': response.get('ContentLength', 0),
            'etag': normalize_etag(response.get('ETag')),
            'last_modified': response.get('LastModified'),
            'metadata': response.get('Metadata', {}),
        }

    def get(self, name: str) -> dict[str, Any] | None:
        """Open a streaming read of an object.

        Args:
            name: Object name.

        Returns:
            Dict with 'body' (botocore StreamingBody), 'size' and 'etag',
            or None if the object does not exist.

        Raises:
            ClientError: If the store fails for any other reason.
        """
        try:
            response = self.s3_client.get_object(
                Bucket=self.bucket_name,
                Key=name,
            )
        except ClientError as error:
            if error_code(error) in _MISSING_CODES:
                return None
            logger.exception('Failed to open file for download: %s', name)
            raise

        return {
            'body': response['Body'],
            'size': response.get('ContentLength', 0),
            'etag': normalize_etag(response.get('ETag')),
        }

    def create_multipart_upload(
        self,
        name: str,
        metadata: dict[str, str] | None = None,
    ) -> str:
        """Open a multipart upload session.

        Args:
            name: Object name the parts will be merged into.
            metadata: Extra user metadata for the final object.

        Returns:
            Upload id issued by the store.

        Raises:
            ClientError: If the store refuses the session.
        """
        params = self.get_object_parameters(name)
        params['Metadata'] = build_object_metadata(name, metadata)
        try:
            logger.info('Creating multipart upload: %s', name)
            response = self.s3_client.create_multipart_upload(
                Bucket=self.bucket_name,
                Key=name,
                **params,
            )
        except Exception:
            logger.exception('Failed to create multipart upload: %s', name)
            raise

        upload_id = response['UploadId']
        logger.info('Created multipart upload %s for %s', upload_id, name)
        return upload_id

    def upload_part(
        self,
        name: str,
        upload_id: str,
        part_number: int,
        data: bytes,
    ) -> str:
        """Store one part of an open multipart upload.

        Uploading the same part number again replaces the earlier part.

        Args:
            name: Object name of the session.
            upload_id: Upload id of the session.
            part_number: Part number, starting at 1.
            data: Part content.

        Returns:
            Unquoted etag of the stored part.

        Raises:
            ClientError: If the store rejects the part.
            BotoCoreError: On transport failures and timeouts.
        """
        try:
            logger.debug(
                'Uploading part %d (%d bytes) of %s',
                part_number,
                len(data),
                name,
            )
            response = self.s3_client.upload_part(
                Bucket=self.bucket_name,
                Key=name,
                UploadId=upload_id,
                PartNumber=part_number,
                Body=data,
            )
        except Exception:
            logger.exception('Failed to upload part %d of %s', part_number, name)
            raise

        return normalize_etag(response.get('ETag'))

    def complete_multipart_upload(
        self,
        name: str,
        upload_id: str,
        parts: Sequence[PartRecord],
    ) -> str:
        """Merge the uploaded parts into the final object.

        Args:
            name: Object name of the session.
            upload_id: Upload id of the session.
            parts: Parts in ascending part number order.

        Returns:
            Unquoted etag of the merged object.

        Raises:
            ClientError: If the store rejects the part list or session.
        """
        try:
            logger.info(
                'Completing multipart upload %s for %s (%d parts)',
                upload_id,
                name,
                len(parts),
            )
            response = self.s3_client.complete_multipart_upload(
                Bucket=self.bucket_name,
                Key=name,
                UploadId=upload_id,
                MultipartUpload={
                    'Parts': [
                        {'PartNumber': part.part_number, 'ETag': part.etag}
                        for part in parts
                    ],
                },
            )
        except Exception:
            logger.exception('Failed to complete multipart upload: %s', name)
            raise

        logger.info('Completed multipart upload: %s', name)
        return normalize_etag(response.get('ETag'))

    def abort_multipart_upload(self, name: str, upload_id: str) -> None:
        """Abort an open multipart upload and drop its parts.

        Args:
            name: Object name of the session.
            upload_id: Upload id of the session.

        Raises:
            ClientError: If the store refuses the abort.
        """
        try:
            logger.warning('Aborting multipart upload %s for %s', upload_id, name)
            self.s3_client.abort_multipart_upload(
                Bucket=self.bucket_name,
                Key=name,
                UploadId=upload_id,
            )
        except Exception:
            logger.exception('Failed to abort multipart upload: %s', name)
            raise

    def list_multipart_uploads(self) -> list[dict[str, Any]]:
        """List multipart uploads that are still open in the bucket.

        Returns:
            Dicts with 'key', 'upload_id' and 'initiated'.

        Raises:
            ClientError: If the listing fails.
        """
        paginator = self.s3_client.get_paginator('list_multipart_uploads')
        uploads = []
        try:
            for page in paginator.paginate(Bucket=self.bucket_name):
                uploads.extend(
                    {
                        'key': upload['Key'],
                        'upload_id': upload['UploadId'],
                        'initiated': upload['Initiated'],
                    }
                    for upload in page.get('Uploads', [])
                )
        except Exception:
            logger.exception(
                'Failed to list multipart uploads: %s',
                self.bucket_name,
            )
            raise
        return uploads

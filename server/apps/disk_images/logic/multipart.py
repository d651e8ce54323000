"""Business logic for multipart uploads.

A multipart upload is driven by whoever holds the session's key and
upload id: open a session, submit parts in any order (possibly from
several workers), then complete it with the ordered, gapless part list.
The store merges the parts into one object. Sessions that will never be
completed should be aborted, otherwise their parts keep occupying the
bucket until the store expires them.
"""

import logging
import math
import threading
import time
from collections.abc import Callable, Sequence
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from datetime import datetime
from typing import TYPE_CHECKING, BinaryIO, Final

from botocore.exceptions import BotoCoreError, ClientError
from django.conf import settings
from django.core.files.storage import default_storage

from server.apps.disk_images.entities import (
    CompletedUpload,
    PartRange,
    PartRecord,
    UploadSession,
)
from server.apps.disk_images.exceptions import (
    IncompletePartSetError,
    InvalidInputError,
    PartUploadFailedError,
    SessionNotFoundError,
    StoreError,
)
from server.apps.disk_images.infrastructure.metadata import validate_image_name
from server.apps.disk_images.infrastructure.storage import error_code

if TYPE_CHECKING:
    from server.apps.disk_images.infrastructure.storage import ImageStorage

logger = logging.getLogger(__name__)

# S3 limits shared by R2 and MinIO
MAX_PARTS: Final = 10000

_DEFAULT_PART_SIZE: Final = 10 * 1024 * 1024  # 10 MiB
_DEFAULT_WORKERS: Final = 4
_DEFAULT_ATTEMPTS: Final = 3
_DEFAULT_RETRY_DELAY: Final = 1.0

# Store error codes meaning the part list does not match the session
_PART_SET_CODES: Final = frozenset((
    'InvalidPart',
    'InvalidPartOrder',
    'EntityTooSmall',
    'MalformedXML',
))
_NO_SUCH_UPLOAD: Final = 'NoSuchUpload'

ProgressCallback = Callable[[int, int], None]


def _get_storage() -> 'ImageStorage':
    """Get the configured default storage backend.

    Returns:
        ImageStorage instance with proper S3 configuration.
    """
    return default_storage  # type: ignore[return-value]


def get_part_size() -> int:
    """Get the preferred part size.

    Returns:
        Part size in bytes from settings or 10 MiB.
    """
    return getattr(settings, 'DISK_IMAGES_PART_SIZE', _DEFAULT_PART_SIZE)


def get_upload_workers() -> int:
    """Get how many parts of one file are uploaded at the same time.

    Returns:
        Worker count from settings or 4.
    """
    return getattr(settings, 'DISK_IMAGES_UPLOAD_WORKERS', _DEFAULT_WORKERS)


def get_part_attempts() -> int:
    """Get how many times a single part is tried before giving up.

    Returns:
        Attempt count from settings or 3.
    """
    return getattr(settings, 'DISK_IMAGES_PART_ATTEMPTS', _DEFAULT_ATTEMPTS)


def get_retry_delay() -> float:
    """Get the base delay between attempts of the same part.

    Returns:
        Delay in seconds from settings or 1.0.
    """
    return getattr(settings, 'DISK_IMAGES_RETRY_DELAY', _DEFAULT_RETRY_DELAY)


def choose_part_size(file_size: int, preferred: int | None = None) -> int:
    """Pick a part size that keeps the part count within store limits.

    Args:
        file_size: File size in bytes.
        preferred: Preferred part size, the configured one by default.

    Returns:
        The preferred size, or a larger one if the file would otherwise
        need more than MAX_PARTS parts.
    """
    if preferred is None:
        preferred = get_part_size()
    return max(preferred, math.ceil(file_size / MAX_PARTS))


def plan_parts(file_size: int, part_size: int) -> list[PartRange]:
    """Split a file into contiguous part ranges.

    The ranges cover ``[0, file_size)`` exactly once, in order. Every
    range is ``part_size`` long except possibly the last one.

    Args:
        file_size: File size in bytes.
        part_size: Size of every part but the last.

    Returns:
        Ranges for part numbers 1..ceil(file_size / part_size).

    Raises:
        InvalidInputError: If either size is not positive or the plan
            would exceed MAX_PARTS.
    """
    if file_size <= 0:
        raise InvalidInputError('Cannot split an empty file into parts')
    if part_size <= 0:
        raise InvalidInputError(f'Part size must be positive: {part_size}')

    part_count = math.ceil(file_size / part_size)
    if part_count > MAX_PARTS:
        raise InvalidInputError(
            f'{part_count} parts exceed the limit of {MAX_PARTS}',
        )

    return [
        PartRange(
            part_number=part_number,
            start=(part_number - 1) * part_size,
            end=min(part_number * part_size, file_size),
        )
        for part_number in range(1, part_count + 1)
    ]


def open_session(
    name: str,
    metadata: dict[str, str] | None = None,
) -> UploadSession:
    """Open a multipart upload session for an image.

    Args:
        name: Object name of the final image.
        metadata: Extra user metadata for the final object.

    Returns:
        Session holding the key and the upload id issued by the store.

    Raises:
        InvalidKeyError: If the name lacks the managed suffix.
        StoreError: If the store refuses the session.
    """
    key = validate_image_name(name)
    storage = _get_storage()

    try:
        upload_id = storage.create_multipart_upload(key, metadata)
    except (ClientError, BotoCoreError) as error:
        raise StoreError(
            f'Failed to create multipart upload: {error}',
        ) from error

    return UploadSession(key=key, upload_id=upload_id)


def submit_part(
    session: UploadSession,
    part_number: int,
    data: bytes,
) -> PartRecord:
    """Upload one part of a session.

    Submitting the same part number again replaces the earlier part; the
    store keeps only the latest attempt for each number.

    Args:
        session: Open session.
        part_number: Part number between 1 and MAX_PARTS.
        data: Non-empty part content.

    Returns:
        Part number and the etag assigned by the store.

    Raises:
        InvalidInputError: If part_number or data is invalid.
        SessionNotFoundError: If the store does not know the session.
        PartUploadFailedError: On any other store or transport failure.
    """
    if (
        isinstance(part_number, bool)
        or not isinstance(part_number, int)
        or not 1 <= part_number <= MAX_PARTS
    ):
        raise InvalidInputError(
            f'Part number must be between 1 and {MAX_PARTS}: {part_number}',
        )
    if not data:
        raise InvalidInputError(f'Part {part_number} is empty')

    storage = _get_storage()
    try:
        etag = storage.upload_part(
            session.key,
            session.upload_id,
            part_number,
            data,
        )
    except ClientError as error:
        if error_code(error) == _NO_SUCH_UPLOAD:
            raise SessionNotFoundError(
                f'Upload session not found: {session.upload_id}',
            ) from error
        raise PartUploadFailedError(part_number, str(error)) from error
    except BotoCoreError as error:
        raise PartUploadFailedError(part_number, str(error)) from error

    part = PartRecord(part_number=part_number, etag=etag)
    session.record(part)
    return part


def validate_part_set(
    parts: Sequence[PartRecord],
    expected_parts: int | None = None,
) -> list[PartRecord]:
    """Check that parts form the sequence 1..N without gaps or repeats.

    Args:
        parts: Parts in any order.
        expected_parts: Required N, if known.

    Returns:
        Parts sorted by part number.

    Raises:
        IncompletePartSetError: If the list is empty, has duplicates or
            gaps, lacks an etag, or does not have expected_parts entries.
    """
    if not parts:
        raise IncompletePartSetError('No parts to complete')

    ordered = sorted(parts, key=lambda part: part.part_number)
    numbers = [part.part_number for part in ordered]

    if len(set(numbers)) != len(numbers):
        raise IncompletePartSetError(f'Duplicate part numbers: {numbers}')

    if numbers[0] < 1:
        raise IncompletePartSetError('Part numbers start at 1')

    if numbers[-1] > MAX_PARTS:
        raise IncompletePartSetError(
            f'Part numbers must not exceed {MAX_PARTS}: {numbers[-1]}',
        )

    # Unique and sorted, so 1..N holds iff the last number is N
    if numbers[-1] != len(numbers):
        missing = sorted(set(range(1, len(numbers) + 1)) - set(numbers))
        raise IncompletePartSetError(f'Missing parts: {missing}')

    if expected_parts is not None and len(ordered) != expected_parts:
        raise IncompletePartSetError(
            f'Expected {expected_parts} parts, got {len(ordered)}',
        )

    if any(not part.etag for part in ordered):
        raise IncompletePartSetError('Every part needs an etag')

    return ordered


def complete_session(
    session: UploadSession,
    parts: Sequence[PartRecord] | None = None,
    expected_parts: int | None = None,
) -> CompletedUpload:
    """Merge the parts of a session into the final object.

    Either the object now consists of exactly the given parts in order,
    or nothing is created under the key.

    Args:
        session: Open session.
        parts: Parts to merge, the session's recorded parts by default.
        expected_parts: Number of parts the file was split into, if known.

    Returns:
        Key and etag of the merged object.

    Raises:
        IncompletePartSetError: If parts are missing, repeated or do not
            match what the store holds.
        SessionNotFoundError: If the store does not know the session.
        StoreError: On any other store failure.
    """
    if parts is None:
        parts = session.ordered_parts()
    ordered = validate_part_set(parts, expected_parts)

    storage = _get_storage()
    try:
        etag = storage.complete_multipart_upload(
            session.key,
            session.upload_id,
            ordered,
        )
    except ClientError as error:
        code = error_code(error)
        if code == _NO_SUCH_UPLOAD:
            raise SessionNotFoundError(
                f'Upload session not found: {session.upload_id}',
            ) from error
        if code in _PART_SET_CODES:
            raise IncompletePartSetError(str(error)) from error
        raise StoreError(
            f'Failed to complete multipart upload: {error}',
        ) from error
    except BotoCoreError as error:
        raise StoreError(
            f'Failed to complete multipart upload: {error}',
        ) from error

    return CompletedUpload(key=session.key, etag=etag)


def abort_session(session: UploadSession) -> None:
    """Abort a session and release the parts the store holds for it.

    Args:
        session: Open session.

    Raises:
        SessionNotFoundError: If the store does not know the session.
        StoreError: On any other store failure.
    """
    storage = _get_storage()
    try:
        storage.abort_multipart_upload(session.key, session.upload_id)
    except ClientError as error:
        if error_code(error) == _NO_SUCH_UPLOAD:
            raise SessionNotFoundError(
                f'Upload session not found: {session.upload_id}',
            ) from error
        raise StoreError(f'Failed to abort multipart upload: {error}') from error
    except BotoCoreError as error:
        raise StoreError(f'Failed to abort multipart upload: {error}') from error


def list_open_sessions() -> list[tuple[UploadSession, datetime]]:
    """List multipart sessions the store still holds open.

    Returns:
        Pairs of session and the time it was started, oldest first.

    Raises:
        StoreError: If the store cannot be listed.
    """
    storage = _get_storage()
    try:
        uploads = storage.list_multipart_uploads()
    except (ClientError, BotoCoreError) as error:
        raise StoreError(f'Failed to list multipart uploads: {error}') from error

    sessions = [
        (
            UploadSession(key=upload['key'], upload_id=upload['upload_id']),
            upload['initiated'],
        )
        for upload in uploads
    ]
    return sorted(sessions, key=lambda pair: pair[1])


def upload_multipart(  # noqa: WPS211
    name: str,
    file_obj: BinaryIO,
    size: int,
    *,
    part_size: int | None = None,
    max_workers: int | None = None,
    max_attempts: int | None = None,
    retry_delay: float | None = None,
    metadata: dict[str, str] | None = None,
    progress: ProgressCallback | None = None,
) -> CompletedUpload:
    """Upload a whole file through one multipart session.

    Parts are read from ``file_obj`` and uploaded by a pool of workers.
    A failed part is retried at the same part number in the same session.
    When a part runs out of attempts the session is aborted and the
    error is raised.

    Args:
        name: Object name of the final image.
        file_obj: Seekable binary file holding ``size`` bytes.
        size: File size in bytes.
        part_size: Preferred part size, from settings by default.
        max_workers: Parallel part uploads, from settings by default.
        max_attempts: Tries per part, from settings by default.
        retry_delay: Base delay between tries, from settings by default.
        metadata: Extra user metadata for the final object.
        progress: Called with (uploaded_parts, part_count) after every
            accepted part.

    Returns:
        Key and etag of the merged object.

    Raises:
        InvalidKeyError: If the name lacks the managed suffix.
        InvalidInputError: If the file is empty.
        PartUploadFailedError: If a part failed every attempt.
        StoreError: If the session could not be opened or completed.
    """
    ranges = plan_parts(size, choose_part_size(size, part_size))
    part_count = len(ranges)
    session = open_session(name, metadata)
    logger.info(
        'Uploading %s in %d parts (upload id %s)',
        session.key,
        part_count,
        session.upload_id,
    )

    uploader = _PartWorker(
        session,
        file_obj,
        max_attempts or get_part_attempts(),
        get_retry_delay() if retry_delay is None else retry_delay,
    )
    results: list[PartRecord | None] = [None] * part_count
    workers = min(max_workers or get_upload_workers(), part_count)

    try:
        with ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix='upload-part',
        ) as executor:
            futures = {
                executor.submit(uploader.upload, part_range): part_range
                for part_range in ranges
            }
            _collect_parts(session, futures, results, progress)
        completed = complete_session(
            session,
            [part for part in results if part is not None],
            expected_parts=part_count,
        )
    except Exception:
        logger.exception('Multipart upload failed: %s', session.key)
        _abort_quietly(session)
        raise

    logger.info('Uploaded %s (%d bytes)', completed.key, size)
    return completed


def _collect_parts(
    session: UploadSession,
    futures: dict[Future[PartRecord], PartRange],
    results: list[PartRecord | None],
    progress: ProgressCallback | None,
) -> None:
    """Wait for part uploads and store each result at its index.

    Stops at the first failure, cancelling parts not yet started.
    """
    pending = set(futures)
    done_count = 0
    while pending:
        done, pending = wait(pending, return_when=FIRST_EXCEPTION)
        for future in done:
            error = future.exception()
            if error is not None:
                for waiting in pending:
                    waiting.cancel()
                raise error
            part = future.result()
            results[part.part_number - 1] = part
            session.record(part)
            done_count += 1
            logger.debug('Part %d/%d done', done_count, len(results))
            if progress is not None:
                progress(done_count, len(results))


def _abort_quietly(session: UploadSession) -> None:
    """Abort a failed session without masking the original error."""
    try:
        abort_session(session)
    except Exception:
        # Best effort: the store expires abandoned sessions eventually
        logger.exception(
            'Failed to abort multipart upload %s, parts left in store: %s',
            session.upload_id,
            session.key,
        )


class _PartWorker:
    """Reads part ranges from a shared file and uploads them with retries."""

    def __init__(
        self,
        session: UploadSession,
        file_obj: BinaryIO,
        max_attempts: int,
        retry_delay: float,
    ) -> None:
        self._session = session
        self._file = file_obj
        self._max_attempts = max(1, max_attempts)
        self._retry_delay = retry_delay
        self._read_lock = threading.Lock()

    def upload(self, part_range: PartRange) -> PartRecord:
        """Upload one range, retrying transient failures.

        Args:
            part_range: Range to read and upload.

        Returns:
            The accepted part.

        Raises:
            PartUploadFailedError: If every attempt failed.
            SessionNotFoundError: If the session disappeared.
        """
        data = self._read(part_range)
        attempt = 1
        while True:
            try:
                return self._submit(part_range.part_number, data)
            except PartUploadFailedError as error:
                if attempt >= self._max_attempts:
                    raise
                logger.warning(
                    'Retrying part %d of %s (attempt %d/%d): %s',
                    part_range.part_number,
                    self._session.key,
                    attempt + 1,
                    self._max_attempts,
                    error.reason,
                )
                time.sleep(self._retry_delay * attempt)
                attempt += 1

    def _submit(self, part_number: int, data: bytes) -> PartRecord:
        # The shared session is only read here; results are recorded by
        # the collecting thread.
        detached = UploadSession(
            key=self._session.key,
            upload_id=self._session.upload_id,
        )
        return submit_part(detached, part_number, data)

    def _read(self, part_range: PartRange) -> bytes:
        with self._read_lock:
            self._file.seek(part_range.start)
            data = self._file.read(part_range.size)
        if len(data) != part_range.size:
            raise InvalidInputError(
                f'File ended early at part {part_range.part_number}: '
                f'expected {part_range.size} bytes, read {len(data)}',
            )
        return data

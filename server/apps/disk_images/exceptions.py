"""Exceptions for disk_images app."""


class DiskImageError(Exception):
    """Base class for errors raised by disk image operations."""


class InvalidInputError(DiskImageError):
    """Raised when a request can be fixed by the caller."""


class InvalidKeyError(InvalidInputError):
    """Raised when an object name is empty or lacks the managed suffix."""


class FileTooLargeError(InvalidInputError):
    """Raised when an upload exceeds the configured maximum size."""

    def __init__(self, size_bytes: int, max_bytes: int) -> None:
        """Initialize FileTooLargeError.

        Args:
            size_bytes: Size of the rejected upload in bytes.
            max_bytes: Maximum accepted size in bytes.
        """
        self.size_bytes = size_bytes
        self.max_bytes = max_bytes
        super().__init__(
            f'File too large: {size_bytes} bytes '
            f'(maximum {max_bytes} bytes)',
        )


class IncompletePartSetError(InvalidInputError):
    """Raised when a part list cannot complete a multipart upload."""


class NotFoundError(DiskImageError):
    """Raised when an object does not exist in the store."""


class SessionNotFoundError(NotFoundError):
    """Raised when the store does not know an upload id and key pair."""


class StoreError(DiskImageError):
    """Raised when the object store fails a request."""


class PartUploadFailedError(StoreError):
    """Raised when a single part could not be stored."""

    def __init__(self, part_number: int, reason: str) -> None:
        """Initialize PartUploadFailedError.

        Args:
            part_number: Number of the part that failed.
            reason: Message from the store or transport.
        """
        self.part_number = part_number
        self.reason = reason
        super().__init__(f'Part {part_number} upload failed: {reason}')

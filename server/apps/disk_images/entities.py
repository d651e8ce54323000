"""Value types passed between the disk_images layers.

Nothing here is persisted by the service itself: upload sessions live in
the object store until they are completed or aborted, and listings are
rebuilt from the bucket on every request.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import BinaryIO, final


@final
class UploadPath(enum.Enum):
    """Which store path an upload takes."""

    SIMPLE = 'simple'
    MULTIPART = 'multipart'


@final
@dataclass(frozen=True, slots=True)
class PartRecord:
    """A part accepted by the store, identified by its number and etag."""

    part_number: int
    etag: str


@final
@dataclass(frozen=True, slots=True)
class PartRange:
    """Half-open byte range ``[start, end)`` uploaded as one part."""

    part_number: int
    start: int
    end: int

    @property
    def size(self) -> int:
        """Number of bytes in the range."""
        return self.end - self.start


@final
@dataclass(slots=True)
class UploadSession:
    """Open multipart upload in the store.

    ``key`` and ``upload_id`` together are the capability needed to add
    parts, complete or abort the upload. Both stay fixed for the lifetime
    of the session; only ``parts`` grows as parts are accepted.
    """

    key: str
    upload_id: str
    parts: list[PartRecord] = field(default_factory=list)

    def record(self, part: PartRecord) -> None:
        """Remember an accepted part, replacing an earlier attempt.

        Args:
            part: Part returned by the store.
        """
        self.parts = [
            known
            for known in self.parts
            if known.part_number != part.part_number
        ]
        self.parts.append(part)

    def ordered_parts(self) -> list[PartRecord]:
        """Get the recorded parts sorted by part number.

        Returns:
            Parts in ascending part number order.
        """
        return sorted(self.parts, key=lambda part: part.part_number)


@final
@dataclass(frozen=True, slots=True)
class CompletedUpload:
    """Object produced by a finished upload."""

    key: str
    etag: str


@final
@dataclass(frozen=True, slots=True)
class UploadResult:
    """Outcome of :func:`upload_image`."""

    name: str
    size: int
    path: UploadPath


@final
@dataclass(frozen=True, slots=True)
class FileDescriptor:
    """Listing entry for one stored disk image."""

    name: str
    size: int
    last_modified: datetime
    etag: str


@final
@dataclass(frozen=True, slots=True)
class ImageDownload:
    """Open stream over a stored disk image."""

    name: str
    size: int
    etag: str
    body: BinaryIO

"""Request and response bodies of the JSON API.

Field names are snake_case in Python and camelCase on the wire.
"""

import json
from datetime import datetime
from typing import Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from server.apps.disk_images.entities import FileDescriptor, PartRecord
from server.apps.disk_images.exceptions import InvalidInputError
from server.apps.disk_images.logic.multipart import MAX_PARTS

_Schema = TypeVar('_Schema', bound='ApiSchema')


class ApiSchema(BaseModel):
    """Base schema with camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )

    def to_json(self) -> dict[str, Any]:
        """Serialize with wire field names."""
        return self.model_dump(mode='json', by_alias=True)


def parse_body(schema: type[_Schema], body: bytes) -> _Schema:
    """Parse and validate a JSON request body.

    Args:
        schema: Schema class to validate against.
        body: Raw request body.

    Returns:
        Validated schema instance.

    Raises:
        InvalidInputError: If the body is not JSON or does not match.
    """
    try:
        payload = json.loads(body or b'{}')
    except ValueError as error:
        raise InvalidInputError(f'Invalid JSON body: {error}') from error

    return parse_data(schema, payload)


def parse_data(schema: type[_Schema], payload: Any) -> _Schema:
    """Validate already decoded data against a schema.

    Args:
        schema: Schema class to validate against.
        payload: Decoded data, e.g. a dict of query parameters.

    Returns:
        Validated schema instance.

    Raises:
        InvalidInputError: If the data does not match.
    """
    try:
        return schema.model_validate(payload)
    except ValidationError as error:
        problems = '; '.join(
            '{0}: {1}'.format(
                '.'.join(str(loc) for loc in problem['loc']) or 'body',
                problem['msg'],
            )
            for problem in error.errors()
        )
        raise InvalidInputError(f'Invalid request: {problems}') from error


class FileOut(ApiSchema):
    """One entry of GET /api/files."""

    name: str
    size: int
    last_modified: datetime
    etag: str

    @classmethod
    def from_descriptor(cls, descriptor: FileDescriptor) -> 'FileOut':
        """Build from a listing descriptor."""
        return cls(
            name=descriptor.name,
            size=descriptor.size,
            last_modified=descriptor.last_modified,
            etag=descriptor.etag,
        )


class UploadOut(ApiSchema):
    """Response of POST /api/upload."""

    message: str
    file_name: str
    file_size: int


class MultipartCreateIn(ApiSchema):
    """Body of POST /api/multipart/create."""

    file_name: str = Field(min_length=1)


class MultipartCreateOut(ApiSchema):
    """Response of POST /api/multipart/create."""

    key: str
    upload_id: str
    file_name: str


class UploadPartQuery(ApiSchema):
    """Query string of PUT /api/multipart/upload-part."""

    upload_id: str = Field(min_length=1)
    part_number: int = Field(ge=1, le=MAX_PARTS)
    key: str = Field(min_length=1)


class PartIn(ApiSchema):
    """One part of a completion request."""

    part_number: int = Field(ge=1, le=MAX_PARTS)
    etag: str = Field(min_length=1)

    def to_record(self) -> PartRecord:
        """Convert to the logic layer part type."""
        return PartRecord(part_number=self.part_number, etag=self.etag)


class PartOut(ApiSchema):
    """Response of PUT /api/multipart/upload-part."""

    part_number: int
    etag: str


class MultipartCompleteIn(ApiSchema):
    """Body of POST /api/multipart/complete."""

    key: str = Field(min_length=1)
    upload_id: str = Field(min_length=1)
    parts: list[PartIn] = Field(min_length=1)


class MultipartCompleteOut(ApiSchema):
    """Response of POST /api/multipart/complete."""

    message: str
    file_name: str
    etag: str


class MultipartAbortIn(ApiSchema):
    """Body of POST /api/multipart/abort."""

    key: str = Field(min_length=1)
    upload_id: str = Field(min_length=1)


class MultipartAbortOut(ApiSchema):
    """Response of POST /api/multipart/abort."""

    message: str
    file_name: str

"""HTTP views of the disk image API.

Views only translate between HTTP and the logic layer. Domain errors
propagate to ``ApiErrorMiddleware``, which turns them into status codes.
"""

import logging

from django.http import (
    FileResponse,
    HttpRequest,
    HttpResponse,
    JsonResponse,
)
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from server.apps.disk_images.entities import UploadSession
from server.apps.disk_images.exceptions import InvalidInputError
from server.apps.disk_images.infrastructure.metadata import (
    OCTET_STREAM,
    extract_filename,
)
from server.apps.disk_images.logic import file_operations, multipart
from server.apps.disk_images.schemas import (
    FileOut,
    MultipartAbortIn,
    MultipartAbortOut,
    MultipartCompleteIn,
    MultipartCompleteOut,
    MultipartCreateIn,
    MultipartCreateOut,
    PartOut,
    UploadOut,
    UploadPartQuery,
    parse_body,
    parse_data,
)

logger = logging.getLogger(__name__)


@require_http_methods(['GET'])
def list_files(request: HttpRequest) -> JsonResponse:
    """Return every stored disk image."""
    images = file_operations.list_images()
    return JsonResponse(
        [FileOut.from_descriptor(image).to_json() for image in images],
        safe=False,
    )


@csrf_exempt
@require_http_methods(['POST'])
def upload(request: HttpRequest) -> JsonResponse:
    """Upload an image sent as the ``file`` field of a multipart form."""
    uploaded = request.FILES.get('file')
    if uploaded is None:
        raise InvalidInputError('No file selected')

    result = file_operations.upload_image(uploaded.name, uploaded, uploaded.size)
    return JsonResponse(
        UploadOut(
            message='Upload complete',
            file_name=result.name,
            file_size=result.size,
        ).to_json(),
    )


@csrf_exempt
@require_http_methods(['POST'])
def multipart_create(request: HttpRequest) -> JsonResponse:
    """Open a multipart upload session."""
    body = parse_body(MultipartCreateIn, request.body)
    session = multipart.open_session(body.file_name)
    logger.info('Opened upload session for %s', session.key)
    return JsonResponse(
        MultipartCreateOut(
            key=session.key,
            upload_id=session.upload_id,
            file_name=body.file_name,
        ).to_json(),
    )


@csrf_exempt
@require_http_methods(['PUT'])
def multipart_upload_part(request: HttpRequest) -> JsonResponse:
    """Store the raw request body as one part of a session."""
    query = parse_data(UploadPartQuery, request.GET.dict())
    session = UploadSession(key=query.key, upload_id=query.upload_id)
    part = multipart.submit_part(session, query.part_number, request.body)
    return JsonResponse(
        PartOut(part_number=part.part_number, etag=part.etag).to_json(),
    )


@csrf_exempt
@require_http_methods(['POST'])
def multipart_complete(request: HttpRequest) -> JsonResponse:
    """Merge the listed parts of a session into the final image."""
    body = parse_body(MultipartCompleteIn, request.body)
    session = UploadSession(key=body.key, upload_id=body.upload_id)
    completed = multipart.complete_session(
        session,
        [part.to_record() for part in body.parts],
    )
    return JsonResponse(
        MultipartCompleteOut(
            message='Upload complete',
            file_name=completed.key,
            etag=completed.etag,
        ).to_json(),
    )


@csrf_exempt
@require_http_methods(['POST'])
def multipart_abort(request: HttpRequest) -> JsonResponse:
    """Abort a session and drop its uploaded parts."""
    body = parse_body(MultipartAbortIn, request.body)
    multipart.abort_session(
        UploadSession(key=body.key, upload_id=body.upload_id),
    )
    return JsonResponse(
        MultipartAbortOut(
            message='Upload aborted',
            file_name=body.key,
        ).to_json(),
    )


@require_http_methods(['GET'])
def download(request: HttpRequest, name: str) -> FileResponse:
    """Stream a stored image as an attachment."""
    image = file_operations.download_image(name)
    response = FileResponse(
        image.body,
        as_attachment=True,
        filename=extract_filename(image.name),
        content_type=OCTET_STREAM,
    )
    response['Content-Length'] = str(image.size)
    return response


@csrf_exempt
@require_http_methods(['DELETE'])
def delete(request: HttpRequest, name: str) -> HttpResponse:
    """Delete a stored image."""
    file_operations.delete_image(name)
    return HttpResponse(
        f'Deleted {name}',
        content_type='text/plain; charset=utf-8',
    )

"""Middleware for the disk image API."""

import logging
from collections.abc import Callable
from typing import Final, final

from django.http import HttpRequest, HttpResponse

from server.apps.disk_images.exceptions import (
    DiskImageError,
    InvalidInputError,
    NotFoundError,
    StoreError,
)

logger = logging.getLogger(__name__)

_CORS_HEADERS: Final = {
    'Access-Control-Allow-Origin': '*',
    'Access-Control-Allow-Methods': 'GET, POST, PUT, DELETE, OPTIONS',
    'Access-Control-Allow-Headers': 'Content-Type',
}

# Most specific classes first
_STATUS_BY_ERROR: Final = (
    (InvalidInputError, 400),
    (NotFoundError, 404),
    (StoreError, 500),
)

_TEXT_PLAIN: Final = 'text/plain; charset=utf-8'


@final
class CorsMiddleware:
    """Allow cross-origin calls from any site.

    Answers OPTIONS on every path with an empty 204 and adds the CORS
    headers to every response, errors included.
    """

    def __init__(
        self,
        get_response: Callable[[HttpRequest], HttpResponse],
    ) -> None:
        """Initialize the middleware.

        Args:
            get_response: Next handler in the chain.
        """
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        """Handle a request.

        Args:
            request: Incoming request.

        Returns:
            Response with CORS headers.
        """
        if request.method == 'OPTIONS':
            response = HttpResponse(status=204)
        else:
            response = self.get_response(request)

        for header, header_value in _CORS_HEADERS.items():
            response[header] = header_value
        return response


@final
class ApiErrorMiddleware:
    """Turn exceptions raised by views into plain-text error responses."""

    def __init__(
        self,
        get_response: Callable[[HttpRequest], HttpResponse],
    ) -> None:
        """Initialize the middleware.

        Args:
            get_response: Next handler in the chain.
        """
        self.get_response = get_response

    def __call__(self, request: HttpRequest) -> HttpResponse:
        """Pass the request through unchanged."""
        return self.get_response(request)

    def process_exception(
        self,
        request: HttpRequest,
        exception: Exception,
    ) -> HttpResponse:
        """Map an exception to a status code.

        Domain errors keep their message. Anything else is logged and
        reported as an internal error.

        Args:
            request: Request whose view raised.
            exception: Raised exception.

        Returns:
            Plain-text error response.
        """
        if isinstance(exception, DiskImageError):
            status = _status_for(exception)
            if status >= 500:
                logger.error(
                    '%s %s failed: %s',
                    request.method,
                    request.path,
                    exception,
                )
            return HttpResponse(
                str(exception),
                status=status,
                content_type=_TEXT_PLAIN,
            )

        logger.exception('Unhandled error on %s %s', request.method, request.path)
        return HttpResponse(
            f'Internal Server Error: {exception}',
            status=500,
            content_type=_TEXT_PLAIN,
        )


def _status_for(exception: DiskImageError) -> int:
    for error_class, status in _STATUS_BY_ERROR:
        if isinstance(exception, error_class):
            return status
    return 500

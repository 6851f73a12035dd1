"""
Base error type and the DRF exception handler.
"""
import logging
from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import status

logger = logging.getLogger(__name__)


class RegistryError(Exception):
    """
    Base exception for caller-correctable registry errors.

    Subclasses set ``status_code`` and ``code`` so the API layer can render
    a specific message without inspecting the exception type.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    code = 'REGISTRY_ERROR'

    def __init__(self, message, details=None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self):
        return {
            'error': self.message,
            'code': self.code,
            'details': self.details,
        }


def custom_exception_handler(exc, context):
    """
    Render RegistryError subclasses and DRF errors in one JSON shape.

    Every error body carries ``request_id`` when the request has one.
    """
    request = context.get('request')
    request_id = getattr(request, 'request_id', None) if request else None

    if isinstance(exc, RegistryError):
        logger.info(
            f"Registry error: {exc.__class__.__name__}",
            extra={
                'code': exc.code,
                'error_message': exc.message,
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            }
        )
        data = exc.as_dict()
        data['request_id'] = request_id
        return Response(data, status=exc.status_code)

    response = exception_handler(exc, context)

    if response is None:
        logger.error(
            f"Unhandled API exception: {exc.__class__.__name__}",
            extra={
                'exception': str(exc),
                'request_id': request_id,
                'path': request.path if request else None,
                'method': request.method if request else None,
            },
            exc_info=True
        )
        return Response(
            {
                'error': 'Internal server error',
                'code': 'INTERNAL_ERROR',
                'request_id': request_id,
            },
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    logger.warning(
        f"API exception: {exc.__class__.__name__}",
        extra={
            'status_code': response.status_code,
            'request_id': request_id,
            'path': request.path if request else None,
        }
    )

    if isinstance(response.data, dict):
        response.data['request_id'] = request_id

    return response

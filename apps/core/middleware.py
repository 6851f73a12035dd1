"""
Request tracing middleware and the matching log filter.
"""
import threading
import uuid
import logging
from django.utils.deprecation import MiddlewareMixin

logger = logging.getLogger(__name__)

_request_local = threading.local()


def get_current_request_id():
    return getattr(_request_local, 'request_id', None)


class RequestIDMiddleware(MiddlewareMixin):
    """
    Attach a request_id to every request and echo it in X-Request-ID.

    An incoming X-Request-ID header is reused so traces can span services.
    """

    def process_request(self, request):
        request_id = request.META.get('HTTP_X_REQUEST_ID') or str(uuid.uuid4())
        request.request_id = request_id
        _request_local.request_id = request_id

    def process_response(self, request, response):
        if hasattr(request, 'request_id'):
            response['X-Request-ID'] = request.request_id
        _request_local.request_id = None
        return response


class RequestContextFilter(logging.Filter):
    """Copy the current request_id onto log records that lack one."""

    def filter(self, record):
        if not hasattr(record, 'request_id'):
            request_id = get_current_request_id()
            if request_id:
                record.request_id = request_id
        return True

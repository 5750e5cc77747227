"""
Logging configuration with request ID support
"""
import logging
import re
import threading
import uuid

_local = threading.local()

# Inbound IDs are echoed back, so only accept short opaque tokens
_REQUEST_ID_PATTERN = re.compile(r'^[A-Za-z0-9._-]{1,64}$')


def get_request_id():
    return getattr(_local, 'request_id', None)


def set_request_id(request_id):
    _local.request_id = request_id


def clear_request_id():
    try:
        del _local.request_id
    except AttributeError:
        pass


class RequestIDFilter(logging.Filter):
    """
    Logging filter to add request ID to log records.
    Records logged outside a request (scheduler, workers) get 'N/A'.
    """
    def filter(self, record):
        request_id = getattr(record, 'request_id', None) or get_request_id()
        record.request_id = request_id or 'N/A'
        return True


class RequestIDMiddleware:
    """
    Middleware to attach a request ID to each request.
    Reuses a well-formed inbound X-Request-ID (set by a proxy or a gateway
    retry) and otherwise generates one. Echoed in the X-Request-ID response
    header and present in every log line of the request.
    """

    def __init__(self, get_response):
        self.get_response = get_response

    def __call__(self, request):
        inbound = request.META.get('HTTP_X_REQUEST_ID', '')
        request_id = inbound if _REQUEST_ID_PATTERN.match(inbound) else uuid.uuid4().hex[:8]
        request.request_id = request_id
        set_request_id(request_id)
        try:
            response = self.get_response(request)
        finally:
            clear_request_id()
        response['X-Request-ID'] = request_id
        return response

    def process_exception(self, request, exception):
        """Log exceptions with request ID"""
        request_id = getattr(request, 'request_id', 'N/A')
        logger = logging.getLogger('django.request')
        logger.error(
            f"[{request_id}] Exception: {type(exception).__name__}: {str(exception)}",
            exc_info=True,
            extra={'request_id': request_id}
        )

"""
DRF exception handler for application exceptions.

Renders every error as {detail, code, category, details} so clients can tell
a failed payment (retry) from a pending one (wait) from a system error.
"""
import logging

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from core.exceptions import BaseApplicationException, ErrorCategory

logger = logging.getLogger(__name__)


def exception_handler(exc, context):
    if isinstance(exc, BaseApplicationException):
        view = context.get('view')
        log = logger.error if exc.category == ErrorCategory.SYSTEM_ERROR else logger.info
        log(f"{type(exc).__name__} in {type(view).__name__ if view else 'unknown view'}: {exc.message}")
        return Response(
            {
                'detail': exc.message,
                'code': exc.code,
                'category': exc.category,
                'details': exc.details,
            },
            status=exc.status_code,
        )

    if isinstance(exc, DjangoPermissionDenied) and str(exc):
        # Raised by immutable models (payments, audit logs)
        return Response(
            {
                'detail': str(exc),
                'code': 'IMMUTABLE_RECORD',
                'category': ErrorCategory.CLIENT_ERROR,
                'details': {},
            },
            status=status.HTTP_409_CONFLICT,
        )

    response = drf_exception_handler(exc, context)
    if response is not None and isinstance(response.data, dict):
        response.data.setdefault('category', ErrorCategory.CLIENT_ERROR if response.status_code < 500
                                 else ErrorCategory.SYSTEM_ERROR)
    return response

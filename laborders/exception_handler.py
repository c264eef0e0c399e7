"""
Unified exception handler.

Wired into DRF through the EXCEPTION_HANDLER setting. Error bodies share one
shape so clients can branch on the presence of "type":

{
    "type":    "validation_error" | "not_found" | "block" | "error",
    "code":    "MATERIAL_NOT_FOUND",
    "message": "There isn't any material with barcode 'BC-1'.",
    "detail":  { ... }  // optional
}
"""

from django.http import JsonResponse
from rest_framework.exceptions import ParseError
from rest_framework.exceptions import ValidationError as DRFValidationError
from rest_framework.views import exception_handler as drf_default_handler

from .exceptions import BaseAppException


def unified_exception_handler(exc, context):
    """
    DRF exception handler entry point.

    Precedence:
    1. BaseAppException and subclasses → unified body
    2. DRF ValidationError / ParseError → unified validation body, 422
    3. anything else → DRF default handling (None for non-API exceptions)
    """

    if isinstance(exc, BaseAppException):
        body = {
            'type': exc.type,
            'code': exc.code,
            'message': exc.message,
        }
        if exc.detail is not None:
            body['detail'] = exc.detail
        return JsonResponse(body, status=exc.http_status)

    if isinstance(exc, (DRFValidationError, ParseError)):
        body = {
            'type': 'validation_error',
            'code': 'VALIDATION_ERROR',
            'message': 'Request validation failed.',
            'detail': {'errors': exc.detail},
        }
        return JsonResponse(body, status=422)

    return drf_default_handler(exc, context)

"""
DRF ``EXCEPTION_HANDLER`` rendering chat errors and DRF's own errors in the
``{success, message, error}`` envelope.
"""

import logging

from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from marketchat.exceptions import ChatError, Forbidden, NotFound, StoreFailure, Unauthenticated

logger = logging.getLogger(__name__)


def error_payload(message, error_code):
    return {"success": False, "message": message, "error": error_code}


def chat_exception_handler(exc, context):
    """
    DRF ``EXCEPTION_HANDLER``: render chat errors and DRF errors in the
    ``{success, message, error}`` envelope.
    """
    if isinstance(exc, ChatError):
        if exc.status_code >= 500:
            logger.error("Request failed: %s", exc.message, exc_info=exc)
        return Response(error_payload(exc.message, exc.code), status=exc.status_code)

    response = drf_exception_handler(exc, context)
    if response is None:
        logger.exception("Unhandled error in %s", context.get("view").__class__.__name__, exc_info=exc)
        return Response(
            error_payload("Internal server error", StoreFailure.code),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    if isinstance(exc, drf_exceptions.ValidationError):
        message = "Invalid request"
        error = response.data
    elif isinstance(exc, (drf_exceptions.NotAuthenticated, drf_exceptions.AuthenticationFailed)):
        message = str(exc.detail)
        error = Unauthenticated.code
    elif isinstance(exc, drf_exceptions.PermissionDenied):
        message = str(exc.detail)
        error = Forbidden.code
    elif isinstance(exc, drf_exceptions.NotFound):
        message = str(exc.detail)
        error = NotFound.code
    else:
        message = str(getattr(exc, "detail", exc))
        error = getattr(exc, "default_code", "error")

    response.data = error_payload(message, error)
    return response

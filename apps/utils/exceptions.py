from rest_framework.views import exception_handler
from rest_framework.response import Response
from rest_framework import exceptions, status
import logging

logger = logging.getLogger(__name__)


class BusinessLogicException(Exception):
    """
    Raised when a domain rule is violated (e.g. 'Order must contain at least one item').

    Every subclass maps to exactly one HTTP status; `code` is the machine
    readable reason and `extra` is merged into the error body.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    default_code = "business_error"
    retryable = False

    def __init__(self, message, code=None, extra=None):
        self.message = message
        self.code = code or self.default_code
        self.extra = extra or {}
        super().__init__(message)


class BusinessValidationError(BusinessLogicException):
    """Malformed or missing input."""
    default_code = "validation_error"


class AuthorizationError(BusinessLogicException):
    """Role or branch scope violation."""
    status_code = status.HTTP_403_FORBIDDEN
    default_code = "unauthorized"


class NotFoundError(BusinessLogicException):
    status_code = status.HTTP_404_NOT_FOUND
    default_code = "not_found"


class StateError(BusinessLogicException):
    default_code = "invalid_transition"


class ConcurrencyError(BusinessLogicException):
    """
    The row changed between read and write. Safe to retry.
    """
    status_code = status.HTTP_409_CONFLICT
    default_code = "concurrent_modification"
    retryable = True


def custom_exception_handler(exc, context):
    if isinstance(exc, BusinessLogicException):
        body = {"error": exc.message, "code": exc.code}
        body.update(exc.extra)
        if exc.retryable:
            body["retryable"] = True
        return Response(body, status=exc.status_code)

    # Call REST framework's default exception handler first
    response = exception_handler(exc, context)

    # If response is None, it's an unhandled server error (500)
    if response is None:
        logger.error(f"Unhandled Exception: {exc}", exc_info=True)
        return Response(
            {"error": "Internal Server Error", "code": "server_error"},
            status=status.HTTP_500_INTERNAL_SERVER_ERROR
        )

    # Same envelope as business errors
    if isinstance(exc, exceptions.ValidationError):
        response.data = {
            "error": "Invalid request",
            "code": "validation_error",
            "details": response.data,
        }
    elif isinstance(response.data, dict) and "detail" in response.data:
        code = exc.get_codes() if isinstance(exc, exceptions.APIException) else None
        response.data = {
            "error": str(response.data["detail"]),
            "code": code if isinstance(code, str) else "error",
        }

    return response

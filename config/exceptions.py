"""
Error taxonomy shared by the patients, visits and reminders apps.

Every error is a DRF ``APIException`` so views can simply let it propagate:
``api_exception_handler`` renders it as ``{"detail", "code", ...extra}``.
Extra keyword arguments (``hours_remaining``, ``status`` ...) are the details
a caller needs to act on the error.
"""

from rest_framework import status
from rest_framework.exceptions import APIException
from rest_framework.views import exception_handler


class ClinicError(APIException):
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Request could not be processed."
    default_code = "error"
    retryable = False

    def __init__(self, detail=None, code=None, **extra):
        super().__init__(detail, code)
        self.extra = extra


class ValidationError(ClinicError):
    """Missing or malformed input. The caller must fix the request."""
    status_code = status.HTTP_400_BAD_REQUEST
    default_detail = "Invalid request."
    default_code = "validation_error"


class NotFoundError(ClinicError):
    """Patient or visit absent, archived, or owned by another clinician."""
    status_code = status.HTTP_404_NOT_FOUND
    default_detail = "Not found."
    default_code = "not_found"


class StateConflictError(ClinicError):
    """Expected business refusal (cooldown running, nothing due)."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "The request conflicts with the current state."
    default_code = "state_conflict"


class ConcurrencyError(ClinicError):
    """Lock contention. Nothing was written; safe to retry after a backoff."""
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Another request is updating this record. Please retry."
    default_code = "concurrency_conflict"
    retryable = True


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None or not isinstance(exc, ClinicError):
        return response

    data = response.data if isinstance(response.data, dict) else {"detail": response.data}
    data["code"] = getattr(exc.detail, "code", None) or exc.default_code
    data["retryable"] = exc.retryable
    data.update(exc.extra)
    response.data = data
    return response

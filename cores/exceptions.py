"""
Project-wide DRF exception handler.

Every error response has the shape ``{"error": <detail>, "kind": <kind>}``.
Serializer validation errors additionally carry the per-field messages
under ``"fields"``.
"""
import logging

from rest_framework import exceptions
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)

KIND_BY_STATUS = {
    400: "validation_error",
    401: "unauthenticated",
    403: "forbidden",
    404: "not_found",
    405: "method_not_allowed",
    409: "invalid_state",
    410: "expired",
}


def api_exception_handler(exc, context):
    response = exception_handler(exc, context)
    if response is None:
        # Unhandled errors propagate to Django's 500 handling
        return None

    request = context.get("request")
    path = request.path if request is not None else "-"
    kind = getattr(exc, "kind", None) or KIND_BY_STATUS.get(response.status_code, "error")

    if isinstance(exc, exceptions.ValidationError):
        body = {"error": "Invalid request data.", "kind": kind, "fields": response.data}
    else:
        detail = response.data.get("detail") if isinstance(response.data, dict) else response.data
        body = {"error": str(detail), "kind": kind}

    logger.warning("%s %s -> %s (%s): %s", request.method if request else "-", path,
                   response.status_code, kind, body["error"])
    response.data = body
    return response


class ResourceInUse(exceptions.APIException):
    """Deleting a row that recorded exam activity still points at."""
    status_code = 409
    kind = "invalid_state"
    default_detail = "This record is referenced by exam attempts and cannot be deleted."
    default_code = "resource_in_use"

"""Error taxonomy for the orders subsystem and its DRF exception handler.

Every failure raised by the domain carries a stable machine-readable code
and a short human message. The handler at the bottom of this module is
registered as ``REST_FRAMEWORK["EXCEPTION_HANDLER"]`` and renders all
failures with the same envelope::

    {"detail": "ORDER_NOT_CANCELLABLE", "message": "..."}

Unexpected exceptions are logged with the current request id and rendered
as ``SERVER_ERROR`` so no store or gateway internals reach the client.
"""

import logging

from django.http import Http404
from rest_framework import exceptions as drf_exceptions
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


class DomainError(Exception):
    """Base class for failures that map onto an HTTP response.

    Attributes:
        code: Stable upper-case error code returned as ``detail``.
        message: Human readable explanation.
        http_status: Status code used when rendering the error.
        details: Optional extra payload (for example field errors).
    """

    http_status = status.HTTP_400_BAD_REQUEST
    default_code = "BAD_REQUEST"

    def __init__(self, code: str | None = None, message: str = "", http_status: int | None = None,
                 details: dict | None = None):
        self.code = code or self.default_code
        self.message = message or self.code.replace("_", " ").capitalize()
        if http_status is not None:
            self.http_status = http_status
        self.details = details or {}
        super().__init__(self.code)


class ValidationError(DomainError):
    default_code = "VALIDATION_ERROR"


class InvalidAmount(ValidationError):
    default_code = "INVALID_AMOUNT"


class NotFound(DomainError):
    http_status = status.HTTP_404_NOT_FOUND
    default_code = "NOT_FOUND"


class Forbidden(DomainError):
    http_status = status.HTTP_403_FORBIDDEN
    default_code = "FORBIDDEN"


class Conflict(DomainError):
    """The current state of an entity does not satisfy a precondition.

    State preconditions (double-cancel, invalid transition) render as 400;
    races and uniqueness violations pass ``http_status=409``.
    """

    default_code = "CONFLICT"


class GatewayError(DomainError):
    default_code = "GATEWAY_ERROR"


class InvalidSignature(GatewayError):
    default_code = "INVALID_SIGNATURE"


class RefundExceedsCapture(GatewayError):
    default_code = "REFUND_EXCEEDS_CAPTURE"


class GatewayUnavailable(GatewayError):
    http_status = status.HTTP_502_BAD_GATEWAY
    default_code = "GATEWAY_UNAVAILABLE"


class ServerError(DomainError):
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_code = "SERVER_ERROR"


# DRF exceptions re-keyed onto the same envelope.
_DRF_CODES = {
    drf_exceptions.NotAuthenticated: "NOT_AUTHENTICATED",
    drf_exceptions.AuthenticationFailed: "NOT_AUTHENTICATED",
    drf_exceptions.PermissionDenied: "PERMISSION_DENIED",
    drf_exceptions.Throttled: "THROTTLED",
    drf_exceptions.ParseError: "MALFORMED_REQUEST",
    drf_exceptions.UnsupportedMediaType: "UNSUPPORTED_MEDIA_TYPE",
    drf_exceptions.MethodNotAllowed: "METHOD_NOT_ALLOWED",
    drf_exceptions.NotFound: "NOT_FOUND",
    Http404: "NOT_FOUND",
}


def render_error(err: DomainError) -> Response:
    """Build the response body for a ``DomainError``."""
    body = {"detail": err.code, "message": err.message}
    if err.details:
        body.update(err.details)
    return Response(body, status=err.http_status)


def api_exception_handler(exc, context):
    """DRF exception handler producing ``{"detail": CODE, "message": ...}``.

    Args:
        exc: The raised exception.
        context: DRF handler context (contains the view and request).

    Returns:
        Response: Always a response; unexpected errors become a 500.
    """
    if isinstance(exc, DomainError):
        return render_error(exc)

    response = drf_exception_handler(exc, context)
    if response is not None:
        code = next(
            (c for cls, c in _DRF_CODES.items() if isinstance(exc, cls)),
            "BAD_REQUEST",
        )
        message = exc.detail if isinstance(getattr(exc, "detail", None), str) else code
        response.data = {"detail": code, "message": str(message)}
        return response

    request = context.get("request")
    logger.exception(
        "unhandled error",
        extra={"path": getattr(request, "path", None), "error_type": type(exc).__name__},
    )
    return render_error(ServerError(message="Unexpected server error"))

# mos_core/common/api/exceptions.py

from __future__ import annotations

import logging
import uuid
from typing import Any

from django.conf import settings
from django.core.exceptions import ObjectDoesNotExist
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import (
    APIException,
    NotAuthenticated,
    NotFound,
    PermissionDenied,
    Throttled,
    ValidationError,
)
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)


def ensure_request_id(request) -> str:
    """
    Ensures request has a stable request_id attribute and returns it.
    Safe to call from middleware and DRF exception handler.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    """
    Canonical error envelope for Madrasah OS.
    Reusable from Django middleware (JsonResponse), plain views and DRF (Response).
    """
    rid = ensure_request_id(request)
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": rid,
        }
    }


class ConflictError(APIException):
    """
    409 Conflict that still flows through the global exception handler.
    Use when business rules block an action (e.g. regenerating a claimed student's code).
    """
    status_code = status.HTTP_409_CONFLICT
    default_detail = "Conflict."
    default_code = "conflict"

    def __init__(self, detail=None, code=None):
        super().__init__(detail=detail or self.default_detail, code=code or self.default_code)


# ordered: subclasses before their bases
_ERROR_CODES: tuple[tuple[type, str], ...] = (
    (ValidationError, "validation_error"),
    (NotAuthenticated, "not_authenticated"),
    (PermissionDenied, "permission_denied"),
    (Http404, "not_found"),
    (NotFound, "not_found"),
    (Throttled, "throttled"),
)


def _code_for(exc: Exception, http_status: int) -> str:
    for exc_class, code in _ERROR_CODES:
        if isinstance(exc, exc_class):
            return code
    if isinstance(exc, APIException):
        return getattr(exc, "default_code", None) or "api_error"
    return "server_error" if http_status >= 500 else "error"


def _message_and_details(data: Any) -> tuple[str, Any]:
    """
    {"detail": "x"}            -> ("x", None)
    {"detail": "x", "k": ...}  -> ("x", {"k": ...})
    ["x"]                      -> ("x", None)
    anything else (field errors) -> ("Request failed.", data)
    """
    if isinstance(data, dict) and "detail" in data:
        detail = data["detail"]
        # ValidationError({"detail": "x"}) arrives as {"detail": ["x"]}
        if isinstance(detail, list) and len(detail) == 1:
            detail = detail[0]
        rest = {k: v for k, v in data.items() if k != "detail"}
        return str(detail), (rest or None)
    if isinstance(data, list) and len(data) == 1:
        return str(data[0]), None
    return "Request failed.", data


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")

    # Scoped `.get()` lookups that miss are a 404, never a 500.
    if isinstance(exc, ObjectDoesNotExist):
        exc = NotFound()

    response = drf_exception_handler(exc, context)

    if response is None:
        view = context.get("view")
        logger.exception(
            "Unhandled API error in %s",
            view.__class__.__name__ if view is not None else "unknown view",
        )
        return Response(
            build_error_envelope(
                request=request,
                code="server_error",
                message="Internal server error.",
                details={"exception": str(exc)} if settings.DEBUG else None,
            ),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    message, details = _message_and_details(response.data)
    return Response(
        build_error_envelope(
            request=request,
            code=_code_for(exc, response.status_code),
            message=message,
            details=details,
        ),
        status=response.status_code,
        headers=response.headers,
    )

# clinic_core/common/api/exceptions.py

from __future__ import annotations

import logging
import uuid
from typing import Any, Optional

from django.core.exceptions import PermissionDenied as DjangoPermissionDenied
from django.http import Http404
from rest_framework import status
from rest_framework.exceptions import AuthenticationFailed, ValidationError
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

logger = logging.getLogger(__name__)

# DRF default_code values that clients see under a different name
_RENAMED_CODES = (
    (ValidationError, "validation_error"),
    (AuthenticationFailed, "not_authenticated"),
)


def ensure_request_id(request) -> str:
    """
    Returns the request's request_id, assigning one on first use so the
    middleware and the DRF handler report the same id.
    """
    rid = getattr(request, "request_id", None) if request is not None else None
    if not rid:
        rid = uuid.uuid4().hex
        if request is not None:
            setattr(request, "request_id", rid)
    return rid


def build_error_envelope(*, request=None, code: str, message: str, details: Any = None) -> dict[str, Any]:
    return {
        "error": {
            "code": code,
            "message": message,
            "details": details,
            "request_id": ensure_request_id(request),
        }
    }


def _code_for(exc: Exception) -> str:
    if isinstance(exc, Http404):
        return "not_found"
    if isinstance(exc, DjangoPermissionDenied):
        return "permission_denied"
    for cls, code in _RENAMED_CODES:
        if isinstance(exc, cls):
            return code
    return getattr(exc, "default_code", None) or "api_error"


def _split_detail(data: Any) -> tuple[str, Optional[Any]]:
    """
    {"detail": "..."} becomes the message; any sibling keys stay as details.
    Field-error payloads have no single message and go to details whole.
    """
    if isinstance(data, dict) and "detail" in data:
        rest = {k: v for k, v in data.items() if k != "detail"}
        return str(data["detail"]), rest or None
    return "Request failed.", data


def api_exception_handler(exc: Exception, context: dict[str, Any]):
    request = context.get("request")
    response = drf_exception_handler(exc, context)

    if response is None:
        logger.exception("Unhandled API error", exc_info=exc)
        return Response(
            build_error_envelope(request=request, code="server_error", message="Unexpected server error."),
            status=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    message, details = _split_detail(response.data)
    return Response(
        build_error_envelope(request=request, code=_code_for(exc), message=message, details=details),
        status=response.status_code,
        headers=response.headers,
    )

"""DRF exception handler that renders domain errors.

Domain errors become ``{"code": ..., "detail": ...}`` with the HTTP status
registered for their code.  Everything else falls through to DRF's default
handler (validation errors, authentication failures, throttling).
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import structlog
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler as drf_exception_handler

from modules.core.exceptions import DomainError

logger = structlog.get_logger(__name__)

STATUS_BY_CODE: Dict[str, int] = {
    "not_found": status.HTTP_404_NOT_FOUND,
    "product_not_found": status.HTTP_404_NOT_FOUND,
    "unauthorized": status.HTTP_403_FORBIDDEN,
    "invalid_status_transition": status.HTTP_409_CONFLICT,
    "insufficient_stock": status.HTTP_409_CONFLICT,
    "product_unavailable": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "mixed_farmer_order": status.HTTP_422_UNPROCESSABLE_ENTITY,
    "already_paid": status.HTTP_409_CONFLICT,
    "invalid_payment": status.HTTP_402_PAYMENT_REQUIRED,
}


def domain_exception_handler(exc: Exception, context: Dict[str, Any]) -> Optional[Response]:
    if isinstance(exc, DomainError):
        http_status = STATUS_BY_CODE.get(exc.code, status.HTTP_400_BAD_REQUEST)
        view = context.get("view")
        logger.info(
            "api.domain_error",
            code=exc.code,
            http_status=http_status,
            view=type(view).__name__ if view is not None else None,
        )
        return Response({"code": exc.code, "detail": str(exc)}, status=http_status)
    return drf_exception_handler(exc, context)

"""DRF exception handler rendering ride service errors as JSON responses."""

import logging

from rest_framework.response import Response
from rest_framework.views import exception_handler

from services.ride_management.exceptions import RideServiceError

logger = logging.getLogger(__name__)


def ride_exception_handler(exc, context):
    """
    Render RideServiceError subclasses as
    ``{"success": false, "error": <code>, "message": <text>}``.

    Everything else falls through to DRF's default handler.
    """
    if isinstance(exc, RideServiceError):
        view = context.get("view")
        logger.info(
            "%s rejected: %s (%s)",
            view.__class__.__name__ if view else "request", exc.error_code, exc.message,
        )
        return Response(
            {"success": False, "error": exc.error_code, "message": exc.message},
            status=exc.http_status,
        )
    return exception_handler(exc, context)

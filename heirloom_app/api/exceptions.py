"""Map question engine errors onto API responses."""

import logging

from django.core.exceptions import ValidationError as DjangoValidationError
from django_ratelimit.exceptions import Ratelimited
from rest_framework import status
from rest_framework.response import Response
from rest_framework.views import exception_handler

from heirloom_app.questions.errors import (
    ClaimConflict,
    EditWindowClosed,
    InvalidToken,
    ReminderNotAllowed,
    ReminderRateLimited,
)

logger = logging.getLogger(__name__)

LINK_NOT_FOUND = "Link not found."


def _validation_payload(exc: DjangoValidationError) -> dict:
    if hasattr(exc, "error_dict"):
        return {"errors": exc.message_dict}
    return {"detail": " ".join(exc.messages), "errors": {"non_field_errors": exc.messages}}


def api_exception_handler(exc, context):
    """DRF exception handler aware of the question engine's errors."""
    if isinstance(exc, InvalidToken):
        return Response({"detail": LINK_NOT_FOUND}, status=status.HTTP_404_NOT_FOUND)

    if isinstance(exc, EditWindowClosed):
        from .views import AnswerSerializer

        return Response(
            {
                "detail": str(exc),
                "read_only": True,
                "answer": AnswerSerializer(exc.answer).data,
            },
            status=status.HTTP_409_CONFLICT,
        )

    if isinstance(exc, (Ratelimited, ReminderRateLimited)):
        detail = str(exc) or "Too many requests. Try again later."
        return Response({"detail": detail}, status=status.HTTP_429_TOO_MANY_REQUESTS)

    if isinstance(exc, (ClaimConflict, ReminderNotAllowed)):
        return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

    if isinstance(exc, DjangoValidationError):
        return Response(_validation_payload(exc), status=status.HTTP_400_BAD_REQUEST)

    response = exception_handler(exc, context)
    if response is None:
        logger.error(f"Unhandled API error: {type(exc).__name__}", exc_info=exc)
    return response

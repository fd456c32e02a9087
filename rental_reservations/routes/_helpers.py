"""
Internal helpers shared by the route handlers.

Workflow errors carry a stable ``code``; these helpers turn them into HTTP
responses with that code in the body.
"""

from __future__ import annotations

from typing import Optional

from fastapi import HTTPException, status

from rental_reservations.errors import (
    AvailabilityConflictError,
    BookingNotFoundError,
    ConversationNotFoundError,
    DataAccessError,
    InvalidTransitionError,
    NotificationNotFoundError,
    PaymentProviderError,
    PaymentVerificationError,
    PermissionDeniedError,
    PropertyNotFoundError,
    ReservationError,
    ValidationError,
)
from rental_reservations.models.enums import BookingStatus

_STATUS_BY_ERROR: tuple[tuple[type[ReservationError], int], ...] = (
    (ValidationError, status.HTTP_400_BAD_REQUEST),
    (AvailabilityConflictError, status.HTTP_409_CONFLICT),
    (InvalidTransitionError, status.HTTP_409_CONFLICT),
    (BookingNotFoundError, status.HTTP_404_NOT_FOUND),
    (PropertyNotFoundError, status.HTTP_404_NOT_FOUND),
    (NotificationNotFoundError, status.HTTP_404_NOT_FOUND),
    (ConversationNotFoundError, status.HTTP_404_NOT_FOUND),
    (PermissionDeniedError, status.HTTP_403_FORBIDDEN),
    (PaymentVerificationError, status.HTTP_402_PAYMENT_REQUIRED),
    (PaymentProviderError, status.HTTP_502_BAD_GATEWAY),
    (DataAccessError, status.HTTP_503_SERVICE_UNAVAILABLE),
)

CHECKOUT_STATUS_BY_CODE: dict[str, int] = {
    "validation_error": status.HTTP_400_BAD_REQUEST,
    "property_not_found": status.HTTP_404_NOT_FOUND,
    "dates_unavailable": status.HTTP_409_CONFLICT,
    "temporary_failure": status.HTTP_503_SERVICE_UNAVAILABLE,
}


def status_for(error: ReservationError) -> int:
    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(error, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def to_http_exception(error: ReservationError) -> HTTPException:
    """
    Convert a workflow error into an HTTPException.

    Args:
        error: Error raised by a service

    Returns:
        HTTPException: With ``detail={"code": ..., "message": ...}``
    """
    return HTTPException(
        status_code=status_for(error),
        detail={"code": error.code, "message": error.message},
    )


def parse_status_or_400(value: Optional[str]) -> Optional[BookingStatus]:
    """
    Parse a booking status query parameter ("all" or empty means no filter).

    Raises:
        HTTPException: 400 if the value is not a booking status
    """
    if not value or value.lower() == "all":
        return None
    try:
        return BookingStatus(value.upper())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown booking status '{value}'",
        )

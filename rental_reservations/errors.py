"""
Error taxonomy for the reservation workflow.

Every error carries a stable ``code`` that routes and the checkout boundary
put in structured responses, so clients never have to parse messages.

    ReservationError
    ├── ValidationError
    │   ├── InvalidDateRange
    │   └── GuestCountError
    ├── AvailabilityConflictError
    ├── InvalidTransitionError
    │   └── HoldExpiredError
    ├── BookingNotFoundError
    ├── PropertyNotFoundError
    ├── PermissionDeniedError
    ├── PaymentVerificationError
    ├── PaymentProviderError
    ├── NotificationDeliveryError
    ├── NotificationNotFoundError
    ├── ConversationNotFoundError
    └── DataAccessError
"""

from __future__ import annotations


class ReservationError(Exception):
    """Base class for all workflow errors."""

    code = "reservation_error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.__class__.__doc__ or self.code
        super().__init__(self.message)


class ValidationError(ReservationError):
    """Request data is invalid."""

    code = "validation_error"


class InvalidDateRange(ValidationError):
    """Check-in date must be before check-out date."""

    code = "invalid_date_range"


class GuestCountError(ValidationError):
    """Guest counts are outside what the property allows."""

    code = "invalid_guest_count"


class AvailabilityConflictError(ReservationError):
    """Selected dates are no longer available, please choose another range."""

    code = "dates_unavailable"


class InvalidTransitionError(ReservationError):
    """Booking status change is not allowed."""

    code = "invalid_transition"


class HoldExpiredError(InvalidTransitionError):
    """Payment arrived after the booking hold expired and the dates were taken."""

    code = "hold_expired"


class BookingNotFoundError(ReservationError):
    """Booking not found."""

    code = "booking_not_found"


class PropertyNotFoundError(ReservationError):
    """Property not found."""

    code = "property_not_found"


class PermissionDeniedError(ReservationError):
    """You do not have permission to perform this action."""

    code = "permission_denied"


class PaymentVerificationError(ReservationError):
    """Payment event could not be verified."""

    code = "payment_verification_failed"


class PaymentProviderError(ReservationError):
    """Payment provider request failed."""

    code = "payment_provider_error"


class NotificationDeliveryError(ReservationError):
    """Notification could not be recorded."""

    code = "notification_delivery_failed"


class NotificationNotFoundError(ReservationError):
    """Notification not found or you don't have permission."""

    code = "notification_not_found"


class ConversationNotFoundError(ReservationError):
    """Conversation not found."""

    code = "conversation_not_found"


class DataAccessError(ReservationError):
    """Something went wrong, please try again."""

    code = "temporary_failure"

"""
Checkout boundary.

``start_checkout`` is what the booking form calls. It never raises for the
failures a guest can cause or a retry can fix; instead it returns a
``CheckoutResult`` with a stable ``error_code`` the client can switch on:

    validation_error      input rejected, fix the form
    property_not_found    the listing is gone
    dates_unavailable     someone else holds the dates
    temporary_failure     database or payment provider trouble, try again
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from rental_reservations.db.readers.bookings import get_booking_by_payment_reference
from rental_reservations.db.readers.properties import get_property
from rental_reservations.domain.pricing import compute_quote
from rental_reservations.domain.records import BookingRecord, DateRange, GuestCounts
from rental_reservations.errors import (
    BookingNotFoundError,
    DataAccessError,
    HoldExpiredError,
    InvalidTransitionError,
    PaymentProviderError,
    PaymentVerificationError,
    PropertyNotFoundError,
    ReservationError,
    ValidationError,
)
from rental_reservations.models.enums import BookingStatus
from rental_reservations.services.payments import CheckoutSession, PaymentGateway
from rental_reservations.services.reservations import (
    ConfirmationOutcome,
    attach_payment_reference,
    confirm_booking,
    create_pending_booking,
    record_late_payment_refund,
    release_failed_checkout,
)

logger = structlog.get_logger(__name__)

TEMPORARY_FAILURE = "temporary_failure"


@dataclass(frozen=True)
class CheckoutRequest:
    property_id: UUID
    check_in: date
    check_out: date
    adults: int = 1
    children: int = 0
    infants: int = 0
    guest_note: Optional[str] = None


@dataclass(frozen=True)
class CheckoutResult:
    ok: bool
    booking: Optional[BookingRecord] = None
    session_url: Optional[str] = None
    error_code: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, code: str, message: str) -> "CheckoutResult":
        return cls(ok=False, error_code=code, error=message)

    def to_dict(self) -> dict[str, Any]:
        if self.ok:
            assert self.booking is not None
            return {
                "success": True,
                "booking": self.booking.to_dict(),
                "session_url": self.session_url,
            }
        return {"success": False, "error_code": self.error_code, "error": self.error}


def error_code_for(error: ReservationError) -> str:
    """Collapse the error taxonomy to the codes checkout clients handle."""
    if isinstance(error, ValidationError):
        return ValidationError.code
    if isinstance(error, (DataAccessError, PaymentProviderError)):
        return TEMPORARY_FAILURE
    return error.code


def start_checkout(
    engine: Engine,
    guest_id: UUID,
    request: CheckoutRequest,
    payment_gateway: PaymentGateway,
) -> CheckoutResult:
    """
    Price the stay, hold the dates and open a provider checkout session.

    The price always comes from the property's stored rate, never from the
    client. If the provider session cannot be created the PENDING booking is
    released straight away so its dates are not held by a checkout that can
    never complete.

    Args:
        engine: SQLAlchemy engine
        guest_id: Authenticated guest
        request: Property, dates, guest counts and note
        payment_gateway: Payment provider adapter

    Returns:
        CheckoutResult: ``ok`` with the booking and redirect URL, or an error code
    """
    log = logger.bind(guest_id=str(guest_id), property_id=str(request.property_id))

    try:
        dates = DateRange(request.check_in, request.check_out)
        counts = GuestCounts(request.adults, request.children, request.infants)
        try:
            with engine.connect() as conn:
                prop = get_property(conn, request.property_id)
        except SQLAlchemyError as e:
            raise DataAccessError() from e
        if prop is None:
            raise PropertyNotFoundError()

        quote = compute_quote(
            prop.base_price, prop.discount_percentage, dates.check_in, dates.check_out
        )
        booking = create_pending_booking(
            engine,
            guest_id,
            prop.id,
            dates,
            counts,
            quote,
            guest_note=request.guest_note,
        )
    except ReservationError as e:
        log.info("checkout_rejected", error_code=e.code, error=e.message)
        return CheckoutResult.failure(error_code_for(e), e.message)

    try:
        session = payment_gateway.create_checkout_session(booking, prop.title)
        attach_payment_reference(engine, booking.id, session.id)
    except ReservationError as e:
        log.error(
            "checkout_session_failed",
            booking_id=str(booking.id),
            error_code=e.code,
            error=e.message,
        )
        try:
            release_failed_checkout(engine, booking.id)
        except DataAccessError:
            # expire_pending_bookings frees it once expires_at passes
            log.error("checkout_release_deferred", booking_id=str(booking.id))
        return CheckoutResult.failure(TEMPORARY_FAILURE, "Failed to create checkout session")

    log.info(
        "checkout_started",
        booking_id=str(booking.id),
        booking_number=booking.booking_number,
        session_id=session.id,
    )
    return CheckoutResult(ok=True, booking=booking, session_url=session.url)


def complete_checkout(
    engine: Engine,
    session_id: str,
    payment_gateway: PaymentGateway,
    guest_id: Optional[UUID] = None,
) -> ConfirmationOutcome:
    """
    Confirm a booking from the checkout success redirect.

    The webhook usually gets there first; in that case the booking is
    returned as already confirmed without asking the provider again.

    Args:
        engine: SQLAlchemy engine
        session_id: Checkout session id from the redirect URL
        payment_gateway: Payment provider adapter
        guest_id: When given, the booking must belong to this guest

    Raises:
        BookingNotFoundError: If no booking (of this guest) carries the session
        PaymentVerificationError: If the provider does not report the session as paid
        PaymentProviderError: If the provider cannot be reached
        HoldExpiredError: If the hold expired, the dates are gone and the payment was refunded
        InvalidTransitionError: If the booking was cancelled
        DataAccessError: On database failure
    """
    try:
        with engine.connect() as conn:
            booking = get_booking_by_payment_reference(conn, session_id)
    except SQLAlchemyError as e:
        raise DataAccessError() from e

    if booking is None or (guest_id is not None and booking.guest_id != guest_id):
        raise BookingNotFoundError()
    if booking.status in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
        return ConfirmationOutcome(booking=booking, newly_confirmed=False)

    session = payment_gateway.retrieve_session(session_id)
    if not session.is_paid:
        logger.info(
            "checkout_not_paid",
            session_id=session_id,
            payment_status=session.payment_status,
        )
        raise PaymentVerificationError("Payment not completed")

    return settle_paid_session(engine, session, payment_gateway)


def settle_paid_session(
    engine: Engine, session: CheckoutSession, payment_gateway: PaymentGateway
) -> ConfirmationOutcome:
    """
    Confirm the booking a paid session belongs to, or refund the payment.

    The refund only happens when the hold expired and somebody else booked
    the dates before the payment arrived.

    Raises:
        BookingNotFoundError: If no booking carries the session
        HoldExpiredError: After the payment was refunded
        InvalidTransitionError: If the booking was cancelled
        PaymentProviderError: If the refund could not be issued
        DataAccessError: On database failure
    """
    try:
        return confirm_booking(engine, session.id, session.payment_intent_id)
    except HoldExpiredError as e:
        log = logger.bind(
            session_id=session.id,
            payment_intent_id=session.payment_intent_id,
            booking_number=session.metadata.get("booking_number"),
        )
        if session.payment_intent_id is None:
            log.error("late_payment_without_intent", error=e.message)
            raise InvalidTransitionError(e.message) from e
        payment_gateway.refund_payment(
            session.payment_intent_id, session.metadata.get("booking_number", "")
        )
        log.error("late_payment_refunded", error=e.message)
        record_late_payment_refund(engine, session.id, session.payment_intent_id)
        raise

"""
Reservation workflow: the booking state machine and its side effects.

    PENDING ──► CONFIRMED ──► COMPLETED
       │            │
       └──► CANCELLED ◄┘

A booking is created PENDING when checkout starts and holds its dates until
it is confirmed, cancelled or expires. Every transition is a
compare-and-swap on the current status, so concurrent callers (webhook and
success redirect, two cancels) agree on a single winner.

Side effects of a confirmation are split by how much they matter:

- conversation link and confirmation email (outbox row) commit with the
  status change;
- in-app notifications are written after commit and never undo it.

A payment can land after the expiry sweep gave up its hold, because the
provider keeps a checkout session open for at least thirty minutes. Such a
booking is confirmed anyway when its dates are still free; otherwise
``HoldExpiredError`` tells the caller to send the money back.
"""

from __future__ import annotations

import secrets
import string
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional
from uuid import UUID

import structlog
from dateutil.relativedelta import relativedelta
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from rental_reservations.config import PENDING_BOOKING_TTL_MINUTES
from rental_reservations.db.readers.bookings import (
    booking_number_exists,
    get_booking,
    get_booking_by_number,
    get_booking_by_payment_reference,
    list_expired_pending_ids,
    list_guest_bookings,
)
from rental_reservations.db.readers.outbox import get_confirmation_email_status
from rental_reservations.db.readers.properties import get_property
from rental_reservations.db.readers.users import get_user
from rental_reservations.db.writers import bookings as booking_writer
from rental_reservations.db.writers.outbox import enqueue_event
from rental_reservations.domain.availability import has_conflict
from rental_reservations.domain.pricing import PricingQuote, format_amount
from rental_reservations.domain.records import BookingRecord, DateRange, GuestCounts
from rental_reservations.errors import (
    AvailabilityConflictError,
    BookingNotFoundError,
    DataAccessError,
    GuestCountError,
    HoldExpiredError,
    InvalidTransitionError,
    NotificationDeliveryError,
    PermissionDeniedError,
    PropertyNotFoundError,
    ReservationError,
    ValidationError,
)
from rental_reservations.metrics import (
    booking_conflicts,
    booking_transitions,
    bookings_created,
    notification_failures,
)
from rental_reservations.models.bookings import NO_OVERLAP_CONSTRAINT
from rental_reservations.models.enums import (
    BookingStatus,
    NotificationType,
    OutboxKind,
    UserRole,
)
from rental_reservations.services.messaging import ensure_conversation
from rental_reservations.services.notifications import emit
from rental_reservations.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING: frozenset({BookingStatus.CONFIRMED, BookingStatus.CANCELLED}),
    BookingStatus.CONFIRMED: frozenset({BookingStatus.COMPLETED, BookingStatus.CANCELLED}),
    BookingStatus.COMPLETED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

CANCELLABLE_STATUSES = tuple(
    status for status, targets in ALLOWED_TRANSITIONS.items() if BookingStatus.CANCELLED in targets
)

BOOKING_NUMBER_PREFIX = "BK-"
BOOKING_NUMBER_ALPHABET = string.ascii_uppercase + string.digits
BOOKING_NUMBER_LENGTH = 8

EXPIRED_REASON = "expired"
LATE_PAYMENT_REFUNDED_REASON = "late_payment_refunded"
PAYMENT_SESSION_FAILED_REASON = "payment_session_failed"

TIMEFRAMES = ("all", "today", "week", "month", "year")


@dataclass(frozen=True)
class ConfirmationOutcome:
    """Result of ``confirm_booking``."""

    booking: BookingRecord
    newly_confirmed: bool
    notifications_emitted: bool = True
    outbox_event_id: Optional[UUID] = None


def can_transition(current: BookingStatus, target: BookingStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def ensure_transition(current: BookingStatus, target: BookingStatus) -> None:
    """
    Raises:
        InvalidTransitionError: If ``current`` cannot move to ``target``
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Booking cannot move from {current.value} to {target.value}"
        )


def generate_booking_number(conn: Connection, attempts: int = 5) -> str:
    """
    Generate an unused booking number such as ``BK-7Q2M9XKD``.

    Raises:
        DataAccessError: If no free number was found after ``attempts`` tries
    """
    for _ in range(attempts):
        suffix = "".join(
            secrets.choice(BOOKING_NUMBER_ALPHABET) for _ in range(BOOKING_NUMBER_LENGTH)
        )
        candidate = f"{BOOKING_NUMBER_PREFIX}{suffix}"
        if not booking_number_exists(conn, candidate):
            return candidate
    raise DataAccessError("Could not allocate a booking number")


def _is_overlap_violation(error: IntegrityError) -> bool:
    diag = getattr(error.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint:
        return constraint == NO_OVERLAP_CONSTRAINT
    return NO_OVERLAP_CONSTRAINT in str(error.orig)


def create_pending_booking(
    engine: Engine,
    guest_id: UUID,
    property_id: UUID,
    dates: DateRange,
    guest_counts: GuestCounts,
    quote: PricingQuote,
    guest_note: Optional[str] = None,
) -> BookingRecord:
    """
    Atomically check availability and insert a PENDING booking.

    The property row is locked for the duration of the transaction so two
    guests racing for the same dates are serialized; the second one sees the
    first one's hold and gets ``AvailabilityConflictError``. On PostgreSQL the
    exclusion constraint backs this up for writers that skip the lock.

    Args:
        engine: SQLAlchemy engine
        guest_id: Authenticated guest
        property_id: Property to book
        dates: Stay range
        guest_counts: Adults, children and infants
        quote: Price computed for exactly these dates
        guest_note: Optional note for the host

    Returns:
        BookingRecord: The new PENDING booking

    Raises:
        PropertyNotFoundError: If the property does not exist
        AvailabilityConflictError: If the property is unlisted or the dates are held
        GuestCountError: If the party exceeds the property's capacity
        ValidationError: If the quote was computed for different dates
        DataAccessError: On database failure
    """
    if (quote.check_in, quote.check_out) != (dates.check_in, dates.check_out):
        raise ValidationError("Price quote does not match the selected dates")

    log = logger.bind(
        guest_id=str(guest_id),
        property_id=str(property_id),
        check_in=dates.check_in.isoformat(),
        check_out=dates.check_out.isoformat(),
    )
    now = utc_now()
    booking_id = uuid.uuid4()

    try:
        with engine.begin() as conn:
            prop = get_property(conn, property_id, for_update=True)
            if prop is None:
                raise PropertyNotFoundError()
            if not prop.is_available:
                raise AvailabilityConflictError("This property is not currently accepting bookings")
            if guest_counts.occupying > prop.max_guests:
                raise GuestCountError(
                    f"This property allows at most {prop.max_guests} guests"
                )
            if has_conflict(conn, property_id, dates):
                booking_conflicts.labels(source="overlap_check").inc()
                log.info("booking_dates_unavailable")
                raise AvailabilityConflictError()

            booking_number = generate_booking_number(conn)
            booking_writer.insert_booking(
                conn,
                {
                    "id": booking_id,
                    "booking_number": booking_number,
                    "guest_id": guest_id,
                    "property_id": property_id,
                    "check_in_date": dates.check_in,
                    "check_out_date": dates.check_out,
                    "adults": guest_counts.adults,
                    "children": guest_counts.children,
                    "infants": guest_counts.infants,
                    "base_price": quote.base_price,
                    "discount_percentage": quote.discount_percentage,
                    "total_amount": quote.total_price,
                    "currency": prop.currency,
                    "status": BookingStatus.PENDING,
                    "guest_note": guest_note,
                    "expires_at": now + timedelta(minutes=PENDING_BOOKING_TTL_MINUTES),
                },
            )
            booking = get_booking(conn, booking_id)
    except IntegrityError as e:
        if _is_overlap_violation(e):
            booking_conflicts.labels(source="constraint").inc()
            log.info("booking_overlap_constraint_violated")
            raise AvailabilityConflictError() from e
        log.error("booking_insert_failed", error=str(e))
        raise DataAccessError() from e
    except SQLAlchemyError as e:
        log.error("booking_insert_failed", error=str(e))
        raise DataAccessError() from e

    assert booking is not None
    bookings_created.inc()
    log.info(
        "booking_created",
        booking_id=str(booking.id),
        booking_number=booking.booking_number,
        total_amount=str(booking.total_amount),
    )
    return booking


def attach_payment_reference(engine: Engine, booking_id: UUID, payment_reference: str) -> None:
    """
    Record the checkout session id on a PENDING booking.

    Raises:
        BookingNotFoundError: If the booking does not exist
        InvalidTransitionError: If the booking is no longer PENDING
        DataAccessError: On database failure
    """
    try:
        with engine.begin() as conn:
            updated = booking_writer.set_payment_reference(conn, booking_id, payment_reference)
            if not updated:
                booking = get_booking(conn, booking_id)
                if booking is None:
                    raise BookingNotFoundError()
                raise InvalidTransitionError(
                    f"Booking {booking.booking_number} is {booking.status.value}, not PENDING"
                )
    except SQLAlchemyError as e:
        logger.error("payment_reference_attach_failed", booking_id=str(booking_id), error=str(e))
        raise DataAccessError() from e

    logger.info(
        "payment_reference_attached",
        booking_id=str(booking_id),
        payment_reference=payment_reference,
    )


def _confirmation_snapshot(conn: Connection, booking: BookingRecord) -> dict[str, Any]:
    prop = get_property(conn, booking.property_id)
    guest = get_user(conn, booking.guest_id)
    host = get_user(conn, prop.host_id) if prop else None
    return {
        "booking": booking.to_dict(),
        "display_total": format_amount(booking.total_amount, booking.currency),
        "nights": booking.dates.nights,
        "property": {
            "id": str(booking.property_id),
            "title": prop.title if prop else None,
        },
        "guest": {
            "id": str(booking.guest_id),
            "name": guest.name if guest else None,
            "email": guest.email if guest else None,
        },
        "host": {
            "id": str(host.id) if host else None,
            "name": host.name if host else None,
        },
    }


def _revive_expired_hold(
    conn: Connection,
    booking: BookingRecord,
    payment_intent_id: Optional[str],
    now: datetime,
) -> bool:
    """
    Confirm a paid booking the expiry sweep already cancelled.

    Raises:
        HoldExpiredError: If another booking took the dates in the meantime
    """
    get_property(conn, booking.property_id, for_update=True)
    if has_conflict(conn, booking.property_id, booking.dates, exclude_booking_id=booking.id):
        booking_conflicts.labels(source="late_payment").inc()
        raise HoldExpiredError(
            f"Booking {booking.booking_number} expired and its dates were booked by someone else"
        )
    assert booking.payment_reference is not None
    return bool(
        booking_writer.confirm_expired(
            conn, booking.payment_reference, payment_intent_id, EXPIRED_REASON, now
        )
    )


def confirm_booking(
    engine: Engine, payment_reference: str, payment_intent_id: Optional[str] = None
) -> ConfirmationOutcome:
    """
    Transition the booking holding ``payment_reference`` to CONFIRMED.

    Idempotent: a booking that is already CONFIRMED (or COMPLETED) is returned
    with ``newly_confirmed=False`` and no side effects are repeated, so the
    webhook and the success redirect can both call this safely.

    A booking the expiry sweep cancelled is confirmed as well when its dates
    are still free, since the guest has paid for it.

    Args:
        engine: SQLAlchemy engine
        payment_reference: Checkout session id stored on the booking
        payment_intent_id: Captured payment id reported by the provider

    Returns:
        ConfirmationOutcome

    Raises:
        BookingNotFoundError: If no booking carries the reference
        HoldExpiredError: If the hold expired and the dates are taken
        InvalidTransitionError: If the booking was cancelled
        DataAccessError: On database failure
    """
    log = logger.bind(payment_reference=payment_reference)
    now = utc_now()
    newly_confirmed = False
    revived = False
    outbox_event_id: Optional[UUID] = None

    try:
        with engine.begin() as conn:
            updated = booking_writer.confirm_pending(
                conn, payment_reference, payment_intent_id, now
            )
            booking = get_booking_by_payment_reference(conn, payment_reference)
            if booking is None:
                raise BookingNotFoundError(f"No booking for payment reference {payment_reference}")

            if (
                not updated
                and booking.status == BookingStatus.CANCELLED
                and booking.cancellation_reason == EXPIRED_REASON
            ):
                updated = revived = _revive_expired_hold(conn, booking, payment_intent_id, now)
                if not revived:
                    booking = get_booking(conn, booking.id)
                    assert booking is not None

            if updated:
                newly_confirmed = True
                prop = get_property(conn, booking.property_id)
                if prop is not None:
                    conversation_id, _ = ensure_conversation(conn, booking.guest_id, prop.host_id)
                    booking_writer.set_conversation(conn, booking.id, conversation_id)
                booking = get_booking(conn, booking.id)
                assert booking is not None
                outbox_event_id = enqueue_event(
                    conn,
                    OutboxKind.BOOKING_CONFIRMATION_EMAIL,
                    _confirmation_snapshot(conn, booking),
                    booking_id=booking.id,
                )
            elif booking.status not in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
                raise InvalidTransitionError(
                    f"Booking {booking.booking_number} is {booking.status.value} "
                    "and cannot be confirmed"
                )
    except IntegrityError as e:
        if _is_overlap_violation(e):
            booking_conflicts.labels(source="constraint").inc()
            log.info("expired_hold_overlap_constraint_violated")
            raise HoldExpiredError() from e
        log.error("booking_confirmation_failed", error=str(e))
        raise DataAccessError() from e
    except SQLAlchemyError as e:
        log.error("booking_confirmation_failed", error=str(e))
        raise DataAccessError() from e

    if not newly_confirmed:
        log.info(
            "booking_already_confirmed",
            booking_id=str(booking.id),
            booking_number=booking.booking_number,
            status=booking.status.value,
        )
        return ConfirmationOutcome(booking=booking, newly_confirmed=False)

    from_status = BookingStatus.CANCELLED if revived else BookingStatus.PENDING
    booking_transitions.labels(from_status=from_status.value, to_status="CONFIRMED").inc()
    if revived:
        log.warning(
            "expired_hold_revived",
            booking_id=str(booking.id),
            booking_number=booking.booking_number,
        )
    log.info(
        "booking_confirmed",
        booking_id=str(booking.id),
        booking_number=booking.booking_number,
        conversation_id=str(booking.conversation_id) if booking.conversation_id else None,
    )

    emitted = _notify_parties(engine, booking, NotificationType.BOOKING_CONFIRMED)
    return ConfirmationOutcome(
        booking=booking,
        newly_confirmed=True,
        notifications_emitted=emitted,
        outbox_event_id=outbox_event_id,
    )


def record_late_payment_refund(
    engine: Engine, payment_reference: str, payment_intent_id: Optional[str]
) -> None:
    """
    Mark an expired booking whose late payment was refunded.

    The new cancellation reason keeps a redelivered webhook from trying to
    revive the booking again.

    Raises:
        DataAccessError: On database failure
    """
    try:
        with engine.begin() as conn:
            booking_writer.mark_refunded(
                conn,
                payment_reference,
                payment_intent_id,
                LATE_PAYMENT_REFUNDED_REASON,
                utc_now(),
            )
    except SQLAlchemyError as e:
        logger.error(
            "late_payment_refund_not_recorded",
            payment_reference=payment_reference,
            error=str(e),
        )
        raise DataAccessError() from e


def _notification_texts(
    type: NotificationType, booking: BookingRecord, property_title: str
) -> tuple[tuple[str, str], tuple[str, str]]:
    """(title, message) for the host and for the guest."""
    number = booking.booking_number
    if type == NotificationType.BOOKING_CONFIRMED:
        return (
            ("New Booking Confirmed", f"You have a new booking ({number}) for {property_title}"),
            (
                "Booking Confirmed",
                f"Your booking ({number}) for {property_title} has been confirmed",
            ),
        )
    return (
        ("Booking Cancelled", f"Booking ({number}) for {property_title} has been cancelled"),
        ("Booking Cancelled", f"Your booking ({number}) for {property_title} has been cancelled"),
    )


def _notify_parties(engine: Engine, booking: BookingRecord, type: NotificationType) -> bool:
    """
    Notify host and guest about a committed transition.

    Failures are logged and counted but never raised; the transition they
    describe has already been committed.

    Returns:
        bool: True if both notifications were recorded
    """
    try:
        with engine.begin() as conn:
            prop = get_property(conn, booking.property_id)
            if prop is None:
                raise PropertyNotFoundError()
            (host_title, host_message), (guest_title, guest_message) = _notification_texts(
                type, booking, prop.title
            )
            emit(conn, prop.host_id, type, host_title, host_message, booking_id=booking.id)
            emit(conn, booking.guest_id, type, guest_title, guest_message, booking_id=booking.id)
    except (ReservationError, SQLAlchemyError) as e:
        failure = NotificationDeliveryError(
            f"{type.value} notifications for {booking.booking_number} failed"
        )
        notification_failures.labels(type=type.value).inc()
        logger.error(
            "notification_delivery_failed",
            booking_id=str(booking.id),
            booking_number=booking.booking_number,
            type=type.value,
            code=failure.code,
            error=str(e),
        )
        return False
    return True


def cancel_booking(
    engine: Engine, booking_id: UUID, actor_id: UUID, reason: Optional[str] = None
) -> BookingRecord:
    """
    Cancel a PENDING or CONFIRMED booking.

    Args:
        engine: SQLAlchemy engine
        booking_id: Booking to cancel
        actor_id: User requesting the cancellation (guest, host or admin)
        reason: Optional free-text reason

    Returns:
        BookingRecord: The cancelled booking

    Raises:
        BookingNotFoundError: If the booking does not exist
        PermissionDeniedError: If the actor is neither guest, host nor admin
        InvalidTransitionError: If the booking is COMPLETED or already CANCELLED
        DataAccessError: On database failure
    """
    now = utc_now()
    try:
        with engine.begin() as conn:
            booking = get_booking(conn, booking_id)
            if booking is None:
                raise BookingNotFoundError()
            _ensure_can_manage(conn, booking, actor_id)
            ensure_transition(booking.status, BookingStatus.CANCELLED)

            previous = booking.status
            updated = booking_writer.cancel(
                conn, booking_id, CANCELLABLE_STATUSES, reason, actor_id, now
            )
            if not updated:
                # status changed between the read and the update
                current = get_booking(conn, booking_id)
                status = current.status.value if current else "missing"
                raise InvalidTransitionError(f"Booking cannot move from {status} to CANCELLED")
            booking = get_booking(conn, booking_id)
    except SQLAlchemyError as e:
        logger.error("booking_cancellation_failed", booking_id=str(booking_id), error=str(e))
        raise DataAccessError() from e

    assert booking is not None
    booking_transitions.labels(from_status=previous.value, to_status="CANCELLED").inc()
    logger.info(
        "booking_cancelled",
        booking_id=str(booking_id),
        booking_number=booking.booking_number,
        previous_status=previous.value,
        actor_id=str(actor_id),
    )
    _notify_parties(engine, booking, NotificationType.BOOKING_CANCELLED)
    return booking


def _ensure_can_manage(conn: Connection, booking: BookingRecord, user_id: UUID) -> None:
    if user_id == booking.guest_id:
        return
    prop = get_property(conn, booking.property_id)
    if prop is not None and user_id == prop.host_id:
        return
    user = get_user(conn, user_id)
    if user is not None and user.role == UserRole.ADMIN:
        return
    raise PermissionDeniedError()


def expire_pending_bookings(engine: Engine, now: Optional[datetime] = None) -> int:
    """
    Cancel PENDING bookings whose hold has expired, releasing their dates.

    No notifications are sent; the guest never completed payment.

    Returns:
        int: Number of bookings expired
    """
    now = now or utc_now()
    try:
        with engine.begin() as conn:
            expired = 0
            for booking_id in list_expired_pending_ids(conn, now):
                expired += booking_writer.cancel(
                    conn, booking_id, (BookingStatus.PENDING,), EXPIRED_REASON, None, now
                )
    except SQLAlchemyError as e:
        logger.error("pending_expiry_failed", error=str(e))
        raise DataAccessError() from e

    if expired:
        booking_transitions.labels(from_status="PENDING", to_status="CANCELLED").inc(expired)
    logger.info("pending_bookings_expired", count=expired)
    return expired


def release_failed_checkout(engine: Engine, booking_id: UUID) -> bool:
    """
    Cancel a PENDING booking whose payment session could not be created.

    Returns:
        bool: True if the booking was released, False if it was no longer PENDING
    """
    try:
        with engine.begin() as conn:
            released = booking_writer.cancel(
                conn,
                booking_id,
                (BookingStatus.PENDING,),
                PAYMENT_SESSION_FAILED_REASON,
                None,
                utc_now(),
            )
    except SQLAlchemyError as e:
        logger.error("checkout_release_failed", booking_id=str(booking_id), error=str(e))
        raise DataAccessError() from e

    if released:
        booking_transitions.labels(from_status="PENDING", to_status="CANCELLED").inc()
        logger.info("checkout_released", booking_id=str(booking_id))
    return bool(released)


def timeframe_start(timeframe: str, now: Optional[datetime] = None) -> Optional[datetime]:
    """
    Earliest creation time for a bookings timeframe filter.

    Example:
        >>> timeframe_start("month", datetime(2024, 3, 31, 12, 0))
        datetime.datetime(2024, 2, 29, 12, 0)
    """
    now = now or utc_now()
    if timeframe == "today":
        return now.replace(hour=0, minute=0, second=0, microsecond=0)
    if timeframe == "week":
        return now - timedelta(weeks=1)
    if timeframe == "month":
        return now - relativedelta(months=1)
    if timeframe == "year":
        return now - relativedelta(years=1)
    if timeframe == "all":
        return None
    raise ValidationError(
        f"Unknown timeframe '{timeframe}', expected one of {', '.join(TIMEFRAMES)}"
    )


def list_bookings(
    engine: Engine,
    guest_id: UUID,
    status: Optional[BookingStatus] = None,
    timeframe: str = "all",
) -> list[BookingRecord]:
    """A guest's bookings, optionally filtered by status and creation timeframe."""
    since = timeframe_start(timeframe)
    try:
        with engine.connect() as conn:
            return list_guest_bookings(conn, guest_id, status=status, created_since=since)
    except SQLAlchemyError as e:
        logger.error("booking_list_failed", guest_id=str(guest_id), error=str(e))
        raise DataAccessError() from e


def _visible_booking(
    conn: Connection, booking: Optional[BookingRecord], user_id: UUID
) -> BookingRecord:
    if booking is None:
        raise BookingNotFoundError()
    try:
        _ensure_can_manage(conn, booking, user_id)
    except PermissionDeniedError as e:
        raise BookingNotFoundError() from e
    return booking


def get_booking_details(
    engine: Engine, booking_id: UUID, user_id: UUID
) -> tuple[BookingRecord, Optional[str]]:
    """
    Fetch a booking visible to ``user_id`` with its confirmation email state.

    Returns:
        tuple: The booking and "pending", "sent", "failed" or None

    Raises:
        BookingNotFoundError: If missing or not visible to the user
    """
    try:
        with engine.connect() as conn:
            booking = _visible_booking(conn, get_booking(conn, booking_id), user_id)
            email_status = get_confirmation_email_status(conn, booking_id)
    except SQLAlchemyError as e:
        logger.error("booking_fetch_failed", booking_id=str(booking_id), error=str(e))
        raise DataAccessError() from e
    return booking, email_status


def find_booking_by_number(
    engine: Engine, booking_number: str, user_id: UUID
) -> tuple[BookingRecord, Optional[str]]:
    """
    Look a booking up by its human-facing number, e.g. from a confirmation email.

    Visibility is the same as for ``get_booking_details``.

    Raises:
        BookingNotFoundError: If missing or not visible to the user
        DataAccessError: On database failure
    """
    number = booking_number.strip().upper()
    try:
        with engine.connect() as conn:
            booking = _visible_booking(conn, get_booking_by_number(conn, number), user_id)
            email_status = get_confirmation_email_status(conn, booking.id)
    except SQLAlchemyError as e:
        logger.error("booking_fetch_failed", booking_number=number, error=str(e))
        raise DataAccessError() from e
    return booking, email_status

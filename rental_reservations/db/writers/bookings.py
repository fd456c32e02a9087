from datetime import datetime
from typing import Any, Iterable, Optional
from uuid import UUID

from sqlalchemy import insert, update
from sqlalchemy.engine import Connection

from rental_reservations.models.bookings import Booking
from rental_reservations.models.enums import BookingStatus
from rental_reservations.utils.datetime import utc_now


def insert_booking(conn: Connection, values: dict[str, Any]) -> None:
    """
    Insert a booking row.

    The caller supplies the id and every workflow field; timestamps default
    to now. On PostgreSQL an overlapping PENDING/CONFIRMED row makes this raise
    IntegrityError through the exclusion constraint.

    Args:
        conn (Connection): Connection inside the booking transaction.
        values (dict[str, Any]): Column values for the new booking.
    """
    now = utc_now()
    row = {"created_at": now, "updated_at": now, **values}
    conn.execute(insert(Booking).values(**row))


def set_payment_reference(conn: Connection, booking_id: UUID, payment_reference: str) -> int:
    """
    Store the checkout session id on a PENDING booking.

    Returns:
        int: Number of rows updated (0 if the booking is gone or no longer PENDING).
    """
    stmt = (
        update(Booking)
        .where(Booking.id == booking_id, Booking.status == BookingStatus.PENDING)
        .values(payment_reference=payment_reference, updated_at=utc_now())
    )
    return conn.execute(stmt).rowcount


def confirm_pending(
    conn: Connection,
    payment_reference: str,
    payment_intent_id: Optional[str],
    now: datetime,
) -> int:
    """
    Compare-and-swap PENDING -> CONFIRMED for the booking holding a payment reference.

    Only one of several concurrent callers can see rowcount 1; the rest
    observe a booking that is no longer PENDING.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        payment_reference (str): Checkout session id stored on the booking.
        payment_intent_id (Optional[str]): Captured payment id from the provider.
        now (datetime): Confirmation timestamp.

    Returns:
        int: 1 if this call performed the transition, else 0.
    """
    stmt = (
        update(Booking)
        .where(
            Booking.payment_reference == payment_reference,
            Booking.status == BookingStatus.PENDING,
        )
        .values(
            status=BookingStatus.CONFIRMED,
            payment_intent_id=payment_intent_id,
            confirmed_at=now,
            expires_at=None,
            updated_at=now,
        )
    )
    return conn.execute(stmt).rowcount


def cancel(
    conn: Connection,
    booking_id: UUID,
    from_statuses: Iterable[BookingStatus],
    reason: Optional[str],
    cancelled_by: Optional[UUID],
    now: datetime,
) -> int:
    """
    Compare-and-swap a booking to CANCELLED from one of ``from_statuses``.

    Returns:
        int: 1 if the booking was cancelled by this call, else 0.
    """
    stmt = (
        update(Booking)
        .where(Booking.id == booking_id, Booking.status.in_(list(from_statuses)))
        .values(
            status=BookingStatus.CANCELLED,
            cancellation_reason=reason,
            cancelled_by=cancelled_by,
            cancelled_at=now,
            expires_at=None,
            updated_at=now,
        )
    )
    return conn.execute(stmt).rowcount


def set_conversation(conn: Connection, booking_id: UUID, conversation_id: UUID) -> None:
    conn.execute(
        update(Booking)
        .where(Booking.id == booking_id)
        .values(conversation_id=conversation_id, updated_at=utc_now())
    )


def confirm_expired(
    conn: Connection,
    payment_reference: str,
    payment_intent_id: Optional[str],
    expired_reason: str,
    now: datetime,
) -> int:
    """
    Compare-and-swap an expired hold straight to CONFIRMED once its payment lands.

    Only bookings the expiry sweep cancelled qualify; a booking a guest or
    host cancelled stays cancelled. The caller must have checked that the
    dates are still free under the property lock.

    Returns:
        int: 1 if this call revived the booking, else 0.
    """
    stmt = (
        update(Booking)
        .where(
            Booking.payment_reference == payment_reference,
            Booking.status == BookingStatus.CANCELLED,
            Booking.cancellation_reason == expired_reason,
        )
        .values(
            status=BookingStatus.CONFIRMED,
            payment_intent_id=payment_intent_id,
            confirmed_at=now,
            cancellation_reason=None,
            cancelled_by=None,
            cancelled_at=None,
            updated_at=now,
        )
    )
    return conn.execute(stmt).rowcount


def mark_refunded(
    conn: Connection,
    payment_reference: str,
    payment_intent_id: Optional[str],
    reason: str,
    now: datetime,
) -> int:
    """Record that the payment of a CANCELLED booking was sent back."""
    stmt = (
        update(Booking)
        .where(
            Booking.payment_reference == payment_reference,
            Booking.status == BookingStatus.CANCELLED,
        )
        .values(payment_intent_id=payment_intent_id, cancellation_reason=reason, updated_at=now)
    )
    return conn.execute(stmt).rowcount

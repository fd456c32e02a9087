from datetime import date, datetime
from typing import Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from rental_reservations.domain.records import BookingRecord
from rental_reservations.models.bookings import Booking
from rental_reservations.models.enums import BLOCKING_STATUSES, BookingStatus
from rental_reservations.models.properties import Property


def find_overlapping_bookings(
    conn: Connection,
    property_id: UUID,
    check_in: date,
    check_out: date,
    exclude_booking_id: Optional[UUID] = None,
    limit: Optional[int] = None,
) -> list[BookingRecord]:
    """
    Return PENDING/CONFIRMED bookings whose stay overlaps [check_in, check_out).

    Two half-open ranges overlap when each starts before the other ends, so a
    booking checking out on ``check_in`` does not block.

    Args:
        conn (Connection): An active SQLAlchemy database connection.
        property_id (UUID): Property to check.
        check_in (date): Requested arrival.
        check_out (date): Requested departure.
        exclude_booking_id (Optional[UUID]): Booking to leave out of the check.
        limit (Optional[int]): Stop after this many matches.

    Returns:
        list[BookingRecord]: Overlapping bookings, earliest first.
    """
    stmt = (
        select(Booking)
        .where(
            Booking.property_id == property_id,
            Booking.status.in_(BLOCKING_STATUSES),
            Booking.check_in_date < check_out,
            Booking.check_out_date > check_in,
        )
        .order_by(Booking.check_in_date)
    )
    if exclude_booking_id is not None:
        stmt = stmt.where(Booking.id != exclude_booking_id)
    if limit is not None:
        stmt = stmt.limit(limit)

    return [BookingRecord.from_row(row) for row in conn.execute(stmt).mappings()]


def get_booking(conn: Connection, booking_id: UUID) -> Optional[BookingRecord]:
    row = conn.execute(select(Booking).where(Booking.id == booking_id)).mappings().fetchone()
    return BookingRecord.from_row(row) if row else None


def get_booking_by_payment_reference(
    conn: Connection, payment_reference: str
) -> Optional[BookingRecord]:
    """
    Fetch the booking a checkout session belongs to.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        payment_reference (str): Payment provider checkout session id.

    Returns:
        Optional[BookingRecord]: Booking or None if no booking carries the reference.
    """
    row = (
        conn.execute(select(Booking).where(Booking.payment_reference == payment_reference))
        .mappings()
        .fetchone()
    )
    return BookingRecord.from_row(row) if row else None


def get_booking_by_number(conn: Connection, booking_number: str) -> Optional[BookingRecord]:
    row = (
        conn.execute(select(Booking).where(Booking.booking_number == booking_number))
        .mappings()
        .fetchone()
    )
    return BookingRecord.from_row(row) if row else None


def booking_number_exists(conn: Connection, booking_number: str) -> bool:
    result = conn.execute(select(Booking.id).where(Booking.booking_number == booking_number))
    return result.fetchone() is not None


def list_guest_bookings(
    conn: Connection,
    guest_id: UUID,
    status: Optional[BookingStatus] = None,
    created_since: Optional[datetime] = None,
) -> list[BookingRecord]:
    """
    List a guest's bookings, most recent stay first.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        guest_id (UUID): Guest whose bookings to list.
        status (Optional[BookingStatus]): Only bookings in this status.
        created_since (Optional[datetime]): Only bookings created at or after this time.

    Returns:
        list[BookingRecord]: Matching bookings ordered by check-in descending.
    """
    stmt = select(Booking).where(Booking.guest_id == guest_id)
    if status is not None:
        stmt = stmt.where(Booking.status == status)
    if created_since is not None:
        stmt = stmt.where(Booking.created_at >= created_since)
    stmt = stmt.order_by(Booking.check_in_date.desc())

    return [BookingRecord.from_row(row) for row in conn.execute(stmt).mappings()]


def list_expired_pending_ids(conn: Connection, now: datetime) -> list[UUID]:
    """Ids of PENDING bookings whose hold deadline is before ``now``."""
    result = conn.execute(
        select(Booking.id).where(
            Booking.status == BookingStatus.PENDING,
            Booking.expires_at.is_not(None),
            Booking.expires_at < now,
        )
    )
    return [row[0] for row in result]


def count_host_bookings(
    conn: Connection,
    host_id: UUID,
    status: BookingStatus,
    check_in_on: Optional[date] = None,
    check_out_on: Optional[date] = None,
    check_in_from: Optional[date] = None,
) -> int:
    """
    Count bookings in one status across the properties a host owns.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        host_id (UUID): Owner of the properties.
        status (BookingStatus): Only bookings in this status.
        check_in_on (Optional[date]): Only bookings arriving on this day.
        check_out_on (Optional[date]): Only bookings leaving on this day.
        check_in_from (Optional[date]): Only bookings arriving on or after this day.

    Returns:
        int: Number of matching bookings.
    """
    stmt = (
        select(func.count())
        .select_from(Booking)
        .join(Property, Booking.property_id == Property.id)
        .where(Property.host_id == host_id, Booking.status == status)
    )
    if check_in_on is not None:
        stmt = stmt.where(Booking.check_in_date == check_in_on)
    if check_out_on is not None:
        stmt = stmt.where(Booking.check_out_date == check_out_on)
    if check_in_from is not None:
        stmt = stmt.where(Booking.check_in_date >= check_in_from)
    return int(conn.execute(stmt).scalar_one())


def list_host_bookings(
    conn: Connection,
    host_id: UUID,
    status: BookingStatus,
    check_in_from: Optional[date] = None,
    overlapping: Optional[tuple[date, date]] = None,
    limit: Optional[int] = None,
) -> list[BookingRecord]:
    """
    List bookings in one status across a host's properties, earliest arrival first.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        host_id (UUID): Owner of the properties.
        status (BookingStatus): Only bookings in this status.
        check_in_from (Optional[date]): Only bookings arriving on or after this day.
        overlapping (Optional[tuple[date, date]]): Only stays overlapping [start, end).
        limit (Optional[int]): Return at most this many bookings.

    Returns:
        list[BookingRecord]: Matching bookings ordered by check-in ascending.
    """
    stmt = (
        select(Booking)
        .join(Property, Booking.property_id == Property.id)
        .where(Property.host_id == host_id, Booking.status == status)
    )
    if check_in_from is not None:
        stmt = stmt.where(Booking.check_in_date >= check_in_from)
    if overlapping is not None:
        start, end = overlapping
        stmt = stmt.where(Booking.check_in_date < end, Booking.check_out_date > start)
    stmt = stmt.order_by(Booking.check_in_date)
    if limit is not None:
        stmt = stmt.limit(limit)

    return [BookingRecord.from_row(row) for row in conn.execute(stmt).mappings()]


def list_host_booking_creation_times(
    conn: Connection, host_id: UUID, since: datetime
) -> list[datetime]:
    """Creation times of every booking on a host's properties made at or after ``since``."""
    result = conn.execute(
        select(Booking.created_at)
        .join(Property, Booking.property_id == Property.id)
        .where(Property.host_id == host_id, Booking.created_at >= since)
    )
    return [row[0] for row in result]

"""
Availability of a property for a stay.

Stays are half-open ``[check_in, check_out)``: a guest checking out on the
15th does not block a guest checking in on the 15th. Only PENDING and
CONFIRMED bookings hold dates.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from rental_reservations.db.readers.bookings import find_overlapping_bookings
from rental_reservations.db.readers.properties import get_property
from rental_reservations.domain.records import DateRange
from rental_reservations.metrics import availability_checks

logger = structlog.get_logger(__name__)


def ranges_overlap(a_start: date, a_end: date, b_start: date, b_end: date) -> bool:
    """
    Half-open interval overlap.

    Example:
        >>> june = date(2024, 6, 10), date(2024, 6, 15)
        >>> ranges_overlap(*june, date(2024, 6, 15), date(2024, 6, 20))
        False
        >>> ranges_overlap(*june, date(2024, 6, 14), date(2024, 6, 20))
        True
    """
    return a_start < b_end and b_start < a_end


def has_conflict(
    conn: Connection,
    property_id: UUID,
    stay: DateRange,
    exclude_booking_id: Optional[UUID] = None,
) -> bool:
    """
    Whether any blocking booking overlaps ``stay``.

    Unlike ``is_available`` this raises on database errors, so it is the one
    to use inside a booking transaction where a failure must abort the write.
    """
    overlapping = find_overlapping_bookings(
        conn,
        property_id,
        stay.check_in,
        stay.check_out,
        exclude_booking_id=exclude_booking_id,
        limit=1,
    )
    return bool(overlapping)


def is_available(
    db: Engine | Connection,
    property_id: UUID,
    check_in: date | datetime | str,
    check_out: date | datetime | str,
    exclude_booking_id: Optional[UUID] = None,
) -> bool:
    """
    Check whether a property can be booked for the given dates.

    Fails closed: a missing or unlisted property and any data-access error
    all report "not available" so a database outage never lets a conflicting
    booking through.

    Args:
        db: Engine (a connection is opened) or an already open Connection
        property_id: Property to check
        check_in: Arrival date; datetimes are reduced to their date
        check_out: Departure date; datetimes are reduced to their date
        exclude_booking_id: Booking to ignore, e.g. when re-checking it

    Returns:
        bool: True only if no PENDING/CONFIRMED booking overlaps the stay

    Raises:
        InvalidDateRange: If check_in is not before check_out
    """
    stay = DateRange(check_in, check_out)

    try:
        if isinstance(db, Engine):
            with db.connect() as conn:
                available = _check(conn, property_id, stay, exclude_booking_id)
        else:
            available = _check(db, property_id, stay, exclude_booking_id)
    except SQLAlchemyError as e:
        logger.error(
            "availability_check_failed",
            property_id=str(property_id),
            check_in=stay.check_in.isoformat(),
            check_out=stay.check_out.isoformat(),
            error=str(e),
        )
        availability_checks.labels(result="error").inc()
        return False

    availability_checks.labels(result="available" if available else "unavailable").inc()
    return available


def _check(
    conn: Connection, property_id: UUID, stay: DateRange, exclude_booking_id: Optional[UUID]
) -> bool:
    prop = get_property(conn, property_id)
    if prop is None:
        logger.info("availability_property_not_found", property_id=str(property_id))
        return False
    if not prop.is_available:
        return False
    return not has_conflict(conn, property_id, stay, exclude_booking_id)

"""
Unit tests for availability checks.
"""

from __future__ import annotations

import uuid
from datetime import date
from typing import Callable
from unittest.mock import MagicMock

import pytest
from sqlalchemy.engine import Engine
from sqlalchemy.exc import OperationalError

from rental_reservations.domain.availability import is_available, ranges_overlap
from rental_reservations.domain.records import BookingRecord
from rental_reservations.errors import InvalidDateRange
from rental_reservations.services.reservations import cancel_booking


def june(day: int) -> date:
    return date(2024, 6, day)


@pytest.mark.unit
def test_ranges_overlap_is_half_open() -> None:
    assert not ranges_overlap(june(10), june(15), june(15), june(20))
    assert not ranges_overlap(june(15), june(20), june(10), june(15))
    assert ranges_overlap(june(10), june(15), june(11), june(12))


@pytest.mark.unit
def test_empty_calendar_is_available(sqlite_engine: Engine, property_id: uuid.UUID) -> None:
    assert is_available(sqlite_engine, property_id, date(2030, 6, 10), date(2030, 6, 15))


@pytest.mark.unit
@pytest.mark.parametrize(
    ("check_in", "check_out", "expected"),
    [
        (date(2030, 6, 15), date(2030, 6, 20), True),  # arrives on the departure day
        (date(2030, 6, 5), date(2030, 6, 10), True),  # leaves on the arrival day
        (date(2030, 6, 14), date(2030, 6, 16), False),
        (date(2030, 6, 8), date(2030, 6, 11), False),
        (date(2030, 6, 11), date(2030, 6, 12), False),
        (date(2030, 6, 1), date(2030, 6, 30), False),
    ],
)
def test_pending_booking_blocks_overlapping_stays(
    sqlite_engine: Engine,
    property_id: uuid.UUID,
    make_pending_booking: Callable[..., BookingRecord],
    check_in: date,
    check_out: date,
    expected: bool,
) -> None:
    make_pending_booking(date(2030, 6, 10), date(2030, 6, 15))

    assert is_available(sqlite_engine, property_id, check_in, check_out) is expected


@pytest.mark.unit
def test_cancelled_booking_releases_dates(
    sqlite_engine: Engine,
    property_id: uuid.UUID,
    guest_id: uuid.UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking(date(2030, 6, 10), date(2030, 6, 15))
    cancel_booking(sqlite_engine, booking.id, guest_id)

    assert is_available(sqlite_engine, property_id, date(2030, 6, 10), date(2030, 6, 15))


@pytest.mark.unit
def test_excluded_booking_does_not_block_itself(
    sqlite_engine: Engine,
    property_id: uuid.UUID,
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    booking = make_pending_booking(date(2030, 6, 10), date(2030, 6, 15))

    assert is_available(
        sqlite_engine,
        property_id,
        date(2030, 6, 12),
        date(2030, 6, 14),
        exclude_booking_id=booking.id,
    )


@pytest.mark.unit
def test_bookings_on_other_properties_do_not_block(
    sqlite_engine: Engine,
    make_property: Callable[..., uuid.UUID],
    make_pending_booking: Callable[..., BookingRecord],
) -> None:
    make_pending_booking(date(2030, 6, 10), date(2030, 6, 15))
    other = make_property(title="Harbour Loft")

    assert is_available(sqlite_engine, other, date(2030, 6, 10), date(2030, 6, 15))


@pytest.mark.unit
def test_unknown_property_is_not_available(sqlite_engine: Engine) -> None:
    assert not is_available(sqlite_engine, uuid.uuid4(), date(2030, 6, 10), date(2030, 6, 15))


@pytest.mark.unit
def test_unlisted_property_is_not_available(
    sqlite_engine: Engine, make_property: Callable[..., uuid.UUID]
) -> None:
    unlisted = make_property(is_available=False)

    assert not is_available(sqlite_engine, unlisted, date(2030, 6, 10), date(2030, 6, 15))


@pytest.mark.unit
def test_database_error_fails_closed() -> None:
    """An outage reports "not available" instead of raising."""
    broken = MagicMock(spec=Engine)
    broken.connect.side_effect = OperationalError("SELECT 1", {}, Exception("server closed"))

    assert is_available(broken, uuid.uuid4(), date(2030, 6, 10), date(2030, 6, 15)) is False


@pytest.mark.unit
def test_invalid_range_raises(sqlite_engine: Engine, property_id: uuid.UUID) -> None:
    with pytest.raises(InvalidDateRange):
        is_available(sqlite_engine, property_id, date(2030, 6, 15), date(2030, 6, 10))


@pytest.mark.unit
def test_accepts_an_open_connection(sqlite_engine: Engine, property_id: uuid.UUID) -> None:
    with sqlite_engine.connect() as conn:
        assert is_available(conn, property_id, "2030-06-10", "2030-06-15")

"""
Dashboard figures for guests and hosts.

Guest stats are computed from the guest's own bookings in a creation
timeframe. The host overview is scoped to the properties the host owns and
looks at stay dates relative to today (UTC).
"""

from __future__ import annotations

import calendar
from collections import Counter
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from rental_reservations.db.readers.bookings import (
    count_host_bookings,
    list_guest_bookings,
    list_host_booking_creation_times,
    list_host_bookings,
)
from rental_reservations.db.readers.properties import count_host_properties, get_property
from rental_reservations.domain.pricing import round_to_currency
from rental_reservations.domain.records import BookingRecord
from rental_reservations.errors import DataAccessError
from rental_reservations.models.enums import BookingStatus
from rental_reservations.services.reservations import timeframe_start
from rental_reservations.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

SPENDING_STATUSES = (BookingStatus.CONFIRMED, BookingStatus.COMPLETED)
RECENT_DAYS = 30
UPCOMING_LIMIT = 10


@dataclass(frozen=True)
class BookingStats:
    booking_count: int
    total_spent: dict[str, Decimal]
    active_stays: int
    upcoming_stays: int
    by_status: dict[str, int]
    next_check_in: Optional[dict[str, Any]] = None
    next_check_out: Optional[dict[str, Any]] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "booking_count": self.booking_count,
            "total_spent": {
                currency: str(amount) for currency, amount in self.total_spent.items()
            },
            "active_stays": self.active_stays,
            "upcoming_stays": self.upcoming_stays,
            "by_status": self.by_status,
            "next_check_in": self.next_check_in,
            "next_check_out": self.next_check_out,
        }


@dataclass(frozen=True)
class ReservationOverview:
    pending_requests: int
    today_check_ins: int
    today_check_outs: int
    upcoming_count: int
    occupancy_rate: int
    upcoming: list[BookingRecord] = field(default_factory=list)
    daily_bookings: list[tuple[date, int]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "pending_requests": self.pending_requests,
            "today_check_ins": self.today_check_ins,
            "today_check_outs": self.today_check_outs,
            "upcoming_count": self.upcoming_count,
            "occupancy_rate": self.occupancy_rate,
            "upcoming": [booking.to_dict() for booking in self.upcoming],
            "daily_bookings": [
                {"date": day.isoformat(), "bookings": count} for day, count in self.daily_bookings
            ],
        }


def _is_active(booking: BookingRecord, today: date) -> bool:
    return (
        booking.status == BookingStatus.CONFIRMED
        and booking.check_in_date <= today < booking.check_out_date
    )


def _is_upcoming(booking: BookingRecord, today: date) -> bool:
    return booking.status == BookingStatus.CONFIRMED and booking.check_in_date > today


def booking_stats(
    engine: Engine,
    guest_id: UUID,
    timeframe: str = "all",
    now: Optional[datetime] = None,
) -> BookingStats:
    """
    Summarize a guest's bookings created in ``timeframe``.

    Spending is summed per currency over CONFIRMED and COMPLETED bookings.
    A stay is active from its check-in day up to, but not including, its
    check-out day.

    Args:
        engine: SQLAlchemy engine
        guest_id: Guest whose bookings to summarize
        timeframe: all, today, week, month or year
        now: Reference time, defaults to the current UTC time

    Returns:
        BookingStats

    Raises:
        ValidationError: If the timeframe is unknown
        DataAccessError: On database failure
    """
    now = now or utc_now()
    today = now.date()
    since = timeframe_start(timeframe, now)

    try:
        with engine.connect() as conn:
            bookings = list_guest_bookings(conn, guest_id, created_since=since)

            spent: dict[str, Decimal] = {}
            for booking in bookings:
                if booking.status in SPENDING_STATUSES:
                    spent[booking.currency] = (
                        spent.get(booking.currency, Decimal("0")) + booking.total_amount
                    )

            active = sorted(
                (b for b in bookings if _is_active(b, today)), key=lambda b: b.check_out_date
            )
            upcoming = sorted(
                (b for b in bookings if _is_upcoming(b, today)), key=lambda b: b.check_in_date
            )

            next_check_in = None
            if upcoming:
                prop = get_property(conn, upcoming[0].property_id)
                next_check_in = {
                    "date": upcoming[0].check_in_date.isoformat(),
                    "property_title": prop.title if prop else None,
                }
            next_check_out = None
            if active:
                prop = get_property(conn, active[0].property_id)
                next_check_out = {
                    "date": active[0].check_out_date.isoformat(),
                    "days_left": (active[0].check_out_date - today).days,
                    "property_title": prop.title if prop else None,
                }
    except SQLAlchemyError as e:
        logger.error("booking_stats_failed", guest_id=str(guest_id), error=str(e))
        raise DataAccessError() from e

    counts = Counter(booking.status.value for booking in bookings)
    return BookingStats(
        booking_count=len(bookings),
        total_spent={
            currency: round_to_currency(amount, currency) for currency, amount in spent.items()
        },
        active_stays=len(active),
        upcoming_stays=len(upcoming),
        by_status={status.value: counts.get(status.value, 0) for status in BookingStatus},
        next_check_in=next_check_in,
        next_check_out=next_check_out,
    )


def _booked_nights(bookings: list[BookingRecord], start: date, end: date) -> int:
    nights = 0
    for booking in bookings:
        first = max(booking.check_in_date, start)
        last = min(booking.check_out_date, end)
        nights += max((last - first).days, 0)
    return nights


def host_reservation_overview(
    engine: Engine,
    host_id: UUID,
    now: Optional[datetime] = None,
    upcoming_limit: int = UPCOMING_LIMIT,
) -> ReservationOverview:
    """
    Reservation overview across the properties ``host_id`` owns.

    Occupancy is the share of property-nights in the current calendar month
    taken by CONFIRMED stays, as a whole percentage. ``daily_bookings`` counts
    bookings created on each of the last 30 days, oldest first.

    Raises:
        DataAccessError: On database failure
    """
    now = now or utc_now()
    today = now.date()
    month_start = today.replace(day=1)
    days_in_month = calendar.monthrange(today.year, today.month)[1]
    month_end = month_start + timedelta(days=days_in_month)
    first_day = today - timedelta(days=RECENT_DAYS - 1)
    confirmed = BookingStatus.CONFIRMED

    try:
        with engine.connect() as conn:
            property_count = count_host_properties(conn, host_id)
            pending = count_host_bookings(conn, host_id, BookingStatus.PENDING)
            check_ins = count_host_bookings(conn, host_id, confirmed, check_in_on=today)
            check_outs = count_host_bookings(conn, host_id, confirmed, check_out_on=today)
            upcoming_count = count_host_bookings(conn, host_id, confirmed, check_in_from=today)
            upcoming = list_host_bookings(
                conn, host_id, confirmed, check_in_from=today, limit=upcoming_limit
            )
            this_month = list_host_bookings(
                conn, host_id, confirmed, overlapping=(month_start, month_end)
            )
            created = list_host_booking_creation_times(
                conn,
                host_id,
                datetime.combine(first_day, datetime.min.time(), tzinfo=now.tzinfo),
            )
    except SQLAlchemyError as e:
        logger.error("reservation_overview_failed", host_id=str(host_id), error=str(e))
        raise DataAccessError() from e

    capacity = property_count * days_in_month
    occupancy = (
        round(_booked_nights(this_month, month_start, month_end) * 100 / capacity)
        if capacity
        else 0
    )
    per_day = Counter(created_at.date() for created_at in created)
    return ReservationOverview(
        pending_requests=pending,
        today_check_ins=check_ins,
        today_check_outs=check_outs,
        upcoming_count=upcoming_count,
        occupancy_rate=occupancy,
        upcoming=upcoming,
        daily_bookings=[
            (first_day + timedelta(days=i), per_day.get(first_day + timedelta(days=i), 0))
            for i in range(RECENT_DAYS)
        ],
    )

# models/bookings.py

import uuid

from sqlalchemy import DDL, CheckConstraint, Column, Date, DateTime, Enum, ForeignKey, Index
from sqlalchemy import Integer, Numeric, String, Text, Uuid, event
from sqlalchemy.sql import func

from rental_reservations.config import DEFAULT_CURRENCY, SCHEMA
from rental_reservations.models.base import Base
from rental_reservations.models.enums import BookingStatus

# Name of the PostgreSQL exclusion constraint that rejects overlapping holds.
# Referenced by the workflow when translating IntegrityError into a conflict.
NO_OVERLAP_CONSTRAINT = "bookings_no_overlap_per_property"


class Booking(Base):
    """
    ORM model for a guest's reservation of a property.

    A booking is created PENDING when the guest starts checkout, becomes
    CONFIRMED only when the payment webhook (or the checkout success redirect)
    proves the payment, and may be CANCELLED from PENDING or CONFIRMED.
    COMPLETED is set by an external batch job and is read-only here.

    Stay dates are half-open: the check-out day is free for the next guest.
    PENDING and CONFIRMED rows for the same property never overlap; on
    PostgreSQL this is backed by the ``bookings_no_overlap_per_property``
    exclusion constraint created below and in the initial migration.
    """

    __tablename__ = "bookings"
    __table_args__ = (
        CheckConstraint("check_out_date > check_in_date", name="ck_bookings_date_order"),
        CheckConstraint("adults >= 1", name="ck_bookings_adults_positive"),
        CheckConstraint("children >= 0 AND infants >= 0", name="ck_bookings_counts_non_negative"),
        CheckConstraint("total_amount >= 0", name="ck_bookings_total_non_negative"),
        Index("ix_bookings_property_status", "property_id", "status"),
        {"schema": SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    booking_number = Column(String(20), nullable=False, unique=True)
    guest_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    property_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.properties.id", ondelete="CASCADE"),
        nullable=False,
    )
    conversation_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.conversations.id", ondelete="SET NULL"),
        nullable=True,
    )
    check_in_date = Column(Date, nullable=False)
    check_out_date = Column(Date, nullable=False)
    adults = Column(Integer, nullable=False, default=1)
    children = Column(Integer, nullable=False, default=0)
    infants = Column(Integer, nullable=False, default=0)
    base_price = Column(Numeric(18, 6), nullable=False)
    discount_percentage = Column(Numeric(5, 2), nullable=True)
    total_amount = Column(Numeric(18, 6), nullable=False)
    currency = Column(String(3), nullable=False, default=DEFAULT_CURRENCY)
    status = Column(
        Enum(BookingStatus, name="booking_status", native_enum=False, length=20),
        nullable=False,
        default=BookingStatus.PENDING,
    )
    payment_reference = Column(String(255), nullable=True, unique=True)  # checkout session id
    payment_intent_id = Column(String(255), nullable=True)
    guest_note = Column(Text, nullable=True)
    cancellation_reason = Column(String(100), nullable=True)
    cancelled_by = Column(Uuid, nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=True)
    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


event.listen(
    Booking.__table__,
    "after_create",
    DDL(
        f"""
        ALTER TABLE {SCHEMA}.bookings
        ADD CONSTRAINT {NO_OVERLAP_CONSTRAINT}
        EXCLUDE USING gist (
            property_id WITH =,
            daterange(check_in_date, check_out_date, '[)') WITH &&
        )
        WHERE (status IN ('PENDING', 'CONFIRMED'))
        """
    ).execute_if(dialect="postgresql"),
)

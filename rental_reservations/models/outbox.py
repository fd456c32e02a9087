import uuid

from sqlalchemy import JSON, Column, DateTime, Enum, ForeignKey, Index, Integer, Text, Uuid
from sqlalchemy.sql import func

from rental_reservations.config import SCHEMA
from rental_reservations.models.base import Base
from rental_reservations.models.enums import OutboxKind, OutboxStatus


class OutboxEvent(Base):
    """
    ORM model for a side effect queued by a booking transition.

    The event row is written in the same transaction as the status change, so
    a committed confirmation always has its email queued. The dispatcher sends
    it later and records the outcome; failures never touch the booking.

    The payload is a full snapshot (booking, property, guest) taken at
    transition time so the email does not depend on later edits.

    A dispatcher leases the events it claims for ``OUTBOX_LEASE_SECONDS`` and
    delivers them outside any transaction; an event whose dispatcher died is
    picked up again once the lease runs out.
    """

    __tablename__ = "outbox_events"
    __table_args__ = (
        Index("ix_outbox_events_status_created", "status", "created_at"),
        {"schema": SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    kind = Column(
        Enum(OutboxKind, name="outbox_kind", native_enum=False, length=64),
        nullable=False,
    )
    booking_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.bookings.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    payload = Column(JSON, nullable=False)
    status = Column(
        Enum(OutboxStatus, name="outbox_status", native_enum=False, length=16),
        nullable=False,
        default=OutboxStatus.PENDING,
    )
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    # set when a dispatcher claims the event; other dispatchers skip it until then
    leased_until = Column(DateTime(timezone=True), nullable=True)
    processed_at = Column(DateTime(timezone=True), nullable=True)

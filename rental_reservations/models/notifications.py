import uuid

from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, String, Text
from sqlalchemy import UniqueConstraint, Uuid
from sqlalchemy.sql import func

from rental_reservations.config import SCHEMA
from rental_reservations.models.base import Base
from rental_reservations.models.enums import NotificationType


class Notification(Base):
    """
    ORM model for an in-app notification addressed to one user.

    Rows are written by the reservation workflow and messaging; only the
    recipient flips ``is_read``. The unique constraint keeps booking status
    notifications exactly-once per recipient and booking (NULL booking_id rows,
    such as message notifications, are not constrained).
    """

    __tablename__ = "notifications"
    __table_args__ = (
        UniqueConstraint(
            "recipient_id", "type", "booking_id", name="uq_notifications_recipient_type_booking"
        ),
        {"schema": SCHEMA},
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    recipient_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    type = Column(
        Enum(NotificationType, name="notification_type", native_enum=False, length=32),
        nullable=False,
    )
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    booking_id = Column(
        Uuid,
        ForeignKey(f"{SCHEMA}.bookings.id", ondelete="CASCADE"),
        nullable=True,
    )
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

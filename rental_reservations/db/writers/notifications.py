import uuid
from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy import insert, select, update
from sqlalchemy.engine import Connection
from sqlalchemy.exc import IntegrityError

from rental_reservations.domain.records import NotificationRecord
from rental_reservations.models.enums import NotificationType
from rental_reservations.models.notifications import Notification
from rental_reservations.utils.datetime import utc_now

logger = structlog.get_logger(__name__)


def _find_booking_notification(
    conn: Connection, recipient_id: UUID, type: NotificationType, booking_id: UUID
) -> Optional[NotificationRecord]:
    row = (
        conn.execute(
            select(Notification).where(
                Notification.recipient_id == recipient_id,
                Notification.type == type,
                Notification.booking_id == booking_id,
            )
        )
        .mappings()
        .fetchone()
    )
    return NotificationRecord.from_row(row) if row else None


def insert_notification(
    conn: Connection,
    recipient_id: UUID,
    type: NotificationType,
    title: str,
    message: str,
    booking_id: Optional[UUID] = None,
) -> NotificationRecord:
    """
    Insert a notification row.

    Booking notifications are unique per (recipient, type, booking). When the
    row already exists the existing one is returned instead of a duplicate.

    Args:
        conn (Connection): SQLAlchemy DB connection inside a transaction.
        recipient_id (UUID): User the notification is addressed to.
        type (NotificationType): Notification type.
        title (str): Short title.
        message (str): Body text.
        booking_id (Optional[UUID]): Booking the notification refers to.

    Returns:
        NotificationRecord: The stored notification.
    """
    if booking_id is not None:
        existing = _find_booking_notification(conn, recipient_id, type, booking_id)
        if existing is not None:
            logger.debug(
                "notification_already_exists",
                recipient_id=str(recipient_id),
                type=type.value,
                booking_id=str(booking_id),
            )
            return existing

    row = {
        "id": uuid.uuid4(),
        "recipient_id": recipient_id,
        "type": type,
        "title": title,
        "message": message,
        "is_read": False,
        "booking_id": booking_id,
        "created_at": utc_now(),
    }
    try:
        with conn.begin_nested():
            conn.execute(insert(Notification).values(**row))
    except IntegrityError:
        # lost a race against another emitter for the same booking notification
        if booking_id is None:
            raise
        existing = _find_booking_notification(conn, recipient_id, type, booking_id)
        if existing is None:
            raise
        return existing

    return NotificationRecord.from_row(row)


def mark_read(conn: Connection, recipient_id: UUID, notification_id: UUID) -> int:
    """
    Mark one of the recipient's notifications as read.

    Returns:
        int: 1 if a notification owned by ``recipient_id`` matched, else 0.
    """
    stmt = (
        update(Notification)
        .where(Notification.id == notification_id, Notification.recipient_id == recipient_id)
        .values(is_read=True)
    )
    return conn.execute(stmt).rowcount


def mark_all_read(conn: Connection, recipient_id: UUID) -> int:
    stmt = (
        update(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
        .values(is_read=True)
    )
    return conn.execute(stmt).rowcount

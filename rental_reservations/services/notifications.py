"""
In-app notifications: recording them and tracking read state.

Delivery (push, SMS, email) is not handled here; a notification is a row the
recipient's client reads. Booking notifications are exactly-once per
recipient, type and booking.
"""

from __future__ import annotations

from typing import Optional
from uuid import UUID

import structlog
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from rental_reservations.db.readers.notifications import count_unread, list_for_recipient
from rental_reservations.db.writers.notifications import (
    insert_notification,
    mark_all_read,
    mark_read,
)
from rental_reservations.domain.records import NotificationRecord
from rental_reservations.errors import DataAccessError, NotificationNotFoundError
from rental_reservations.models.enums import NotificationType

logger = structlog.get_logger(__name__)


def emit(
    conn: Connection,
    recipient_id: UUID,
    type: NotificationType,
    title: str,
    message: str,
    booking_id: Optional[UUID] = None,
) -> NotificationRecord:
    """
    Record a notification for one recipient.

    Args:
        conn: Connection inside the caller's transaction
        recipient_id: User to notify
        type: Notification type
        title: Short title
        message: Body text
        booking_id: Booking the notification refers to, if any

    Returns:
        NotificationRecord: The stored (or already existing) notification

    Raises:
        DataAccessError: If the row could not be written
    """
    try:
        record = insert_notification(conn, recipient_id, type, title, message, booking_id)
    except SQLAlchemyError as e:
        logger.error(
            "notification_emit_failed",
            recipient_id=str(recipient_id),
            type=type.value,
            booking_id=str(booking_id) if booking_id else None,
            error=str(e),
        )
        raise DataAccessError(f"Could not record {type.value} notification") from e

    logger.debug(
        "notification_emitted",
        notification_id=str(record.id),
        recipient_id=str(recipient_id),
        type=type.value,
    )
    return record


def list_notifications(
    engine: Engine, recipient_id: UUID, limit: int = 50
) -> tuple[list[NotificationRecord], int]:
    """Newest notifications for a recipient plus their unread count."""
    with engine.connect() as conn:
        notifications = list_for_recipient(conn, recipient_id, limit=limit)
        unread = count_unread(conn, recipient_id)
    return notifications, unread


def mark_notification_read(engine: Engine, recipient_id: UUID, notification_id: UUID) -> None:
    """
    Mark a notification as read for its recipient.

    Raises:
        NotificationNotFoundError: If the notification does not exist or
            belongs to someone else
    """
    with engine.begin() as conn:
        updated = mark_read(conn, recipient_id, notification_id)

    if not updated:
        raise NotificationNotFoundError()


def mark_all_notifications_read(engine: Engine, recipient_id: UUID) -> int:
    with engine.begin() as conn:
        updated = mark_all_read(conn, recipient_id)

    logger.info("notifications_marked_read", recipient_id=str(recipient_id), count=updated)
    return updated

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.engine import Connection

from rental_reservations.domain.records import NotificationRecord
from rental_reservations.models.notifications import Notification


def list_for_recipient(
    conn: Connection, recipient_id: UUID, limit: int = 50
) -> list[NotificationRecord]:
    """
    Return a recipient's notifications, newest first.

    Args:
        conn (Connection): SQLAlchemy DB connection.
        recipient_id (UUID): User the notifications are addressed to.
        limit (int): Maximum number of rows.

    Returns:
        list[NotificationRecord]: Notifications ordered by created_at descending.
    """
    stmt = (
        select(Notification)
        .where(Notification.recipient_id == recipient_id)
        .order_by(Notification.created_at.desc(), Notification.id)
        .limit(limit)
    )
    return [NotificationRecord.from_row(row) for row in conn.execute(stmt).mappings()]


def count_unread(conn: Connection, recipient_id: UUID) -> int:
    result = conn.execute(
        select(func.count())
        .select_from(Notification)
        .where(Notification.recipient_id == recipient_id, Notification.is_read.is_(False))
    )
    return int(result.scalar_one())

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import or_, select
from sqlalchemy.engine import Connection

from rental_reservations.models.enums import OutboxKind, OutboxStatus
from rental_reservations.models.outbox import OutboxEvent


def find_claimable_events(
    conn: Connection, batch_size: int, now: datetime
) -> list[dict[str, Any]]:
    """
    Lock and return a batch of PENDING, unleased outbox events, oldest first.

    On PostgreSQL ``SKIP LOCKED`` lets several dispatchers run side by side
    without picking the same event. The row locks only last until the caller
    has leased the events.

    Args:
        conn (Connection): Connection inside an open transaction.
        batch_size (int): Maximum number of events to claim.
        now (datetime): Leases ending before this time have run out.

    Returns:
        list[dict[str, Any]]: Event rows (id, kind, booking_id, payload, attempts).
    """
    stmt = (
        select(
            OutboxEvent.id,
            OutboxEvent.kind,
            OutboxEvent.booking_id,
            OutboxEvent.payload,
            OutboxEvent.attempts,
        )
        .where(
            OutboxEvent.status == OutboxStatus.PENDING,
            or_(OutboxEvent.leased_until.is_(None), OutboxEvent.leased_until < now),
        )
        .order_by(OutboxEvent.created_at, OutboxEvent.id)
        .limit(batch_size)
        .with_for_update(skip_locked=True)
    )
    return [dict(row) for row in conn.execute(stmt).mappings()]


def get_confirmation_email_status(conn: Connection, booking_id: UUID) -> Optional[str]:
    """
    Delivery state of a booking's confirmation email.

    Returns:
        Optional[str]: "pending", "sent" or "failed", or None if none was queued.
    """
    row = conn.execute(
        select(OutboxEvent.status)
        .where(
            OutboxEvent.booking_id == booking_id,
            OutboxEvent.kind == OutboxKind.BOOKING_CONFIRMATION_EMAIL,
        )
        .order_by(OutboxEvent.created_at.desc())
        .limit(1)
    ).fetchone()
    if row is None:
        return None
    return OutboxStatus(row[0]).value.lower()
